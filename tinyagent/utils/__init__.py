"""
Utilities Module
================

Common utilities shared across the runtime:
- logger: Context-aware logging with levels
- config: Centralized configuration management
"""

from tinyagent.utils.logger import Logger, logger, redirect_output
from tinyagent.utils.config import get_config, Config

__all__ = ["Logger", "logger", "redirect_output", "get_config", "Config"]
