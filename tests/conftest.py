"""Shared fixtures."""

import os
import sys
from pathlib import Path

import pytest

from tinyagent.utils import config as config_module

FIXTURES_DIR = Path(__file__).parent / "fixtures"

CONFIG_ENV_VARS = (
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "OPENAI_MODEL",
    "OPENAI_HELPER_MODEL",
    "OPENAI_EMBEDDING_MODEL",
    "AGENT_SYSTEM_PROMPT",
    "AGENT_MAX_INTERACTIONS",
    "ENABLE_STREAMING",
    "PERFORM_RAG_QUERIES",
    "SAVE_CONVERSATIONS",
    "LLM_TIMEOUT_SECONDS",
    "TOOL_TIMEOUT_SECONDS",
    "RAG_ENABLED",
    "RAG_FILESYSTEM_INDEXING",
    "WORKSPACE_DIR",
    "RAG_CHUNK_SIZE",
    "RAG_CHUNK_OVERLAP_PERCENTAGE",
    "RAG_TOP_K",
    "RAG_SYNC_INTERVAL_MINUTES",
    "DATA_DIR",
    "MCP_SERVERS_FILE",
    "LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every config variable, ignore any .env file and drop the cached config."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config_module, "load_dotenv", lambda *args, **kwargs: False)
    config_module.reset_config()
    yield monkeypatch
    config_module.reset_config()


@pytest.fixture
def hello_world_server():
    """(command, args, env) that start the hello-world fixture provider."""
    return sys.executable, [str(FIXTURES_DIR / "hello_world_server.py")], dict(os.environ)
