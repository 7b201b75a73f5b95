"""
Tools System
============

Tools are functions the model can ask the runtime to call. They come from
two places:

1. Built-in pseudo-tools owned by the agent loop itself (see builtins.py)
2. External tool providers, processes speaking the Model Context Protocol
   (MCP) over stdio, registered at startup under a provider name.

The registry only tracks which tools are *available* and routes calls to the
provider that owns them. Built-ins are listed in the catalog so the model
can see them, but their behaviour lives in the agent loop.

This module provides:
- AvailableTool: one entry in the tool catalog
- BUILTIN_TOOLS: the fixed built-in set, in catalog order
- ClientsRegistry: provider connections and tool routing
"""

from tinyagent.tools.builtins import (
    ASK_QUESTION,
    BUILTIN_TOOL_NAMES,
    BUILTIN_TOOLS,
    INTERACTION_SERVER,
    TASK_COMPLETE,
    AvailableTool,
)
from tinyagent.tools.registry import ClientsRegistry

__all__ = [
    "AvailableTool",
    "BUILTIN_TOOLS",
    "BUILTIN_TOOL_NAMES",
    "INTERACTION_SERVER",
    "TASK_COMPLETE",
    "ASK_QUESTION",
    "ClientsRegistry",
]
