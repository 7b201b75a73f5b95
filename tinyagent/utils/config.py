"""
Configuration Management
========================

Centralized configuration for the runtime. Every environment variable is
read, validated and typed here; the rest of the code only sees the frozen
dataclasses returned by `get_config()`.

Tool providers are described in a JSON file pointed to by MCP_SERVERS_FILE:

    {
      "mcpServers": {
        "filesystem": {
          "command": "npx",
          "args": ["-y", "@modelcontextprotocol/server-filesystem", "./workspace"],
          "env": {}
        }
      }
    }

Usage:
    from tinyagent.utils.config import get_config

    config = get_config()
    print(config.openai.model)
    print(config.agent.max_interactions)
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


DEFAULT_SYSTEM_PROMPT = """You are TinyAgent, a helpful assistant that solves tasks with the tools available to you.

Guidelines:
- Break the task into small steps and use tools to carry them out
- Ask the user a question with the ask_question tool when information is missing
- Call the task_complete tool once the task given by the user is complete
- Be concise in your final answer"""


def _required(name: str) -> str:
    """Value of a variable that must be set; raises ValueError otherwise."""
    value = os.getenv(name)
    if not value:
        raise ValueError(
            f"Environment variable {name} is required.\n"
            "Set it in the environment or in your .env file."
        )
    return value


def _optional(name: str, default: str) -> str:
    """Variable value, or `default` when unset."""
    return os.getenv(name, default)


def _optional_int(name: str, default: int) -> int:
    """Integer variable; unset or unparsable values give `default`."""
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        print(f"Warning: {name} is not a valid integer, using default: {default}")
        return default


def _optional_float(name: str, default: float | None) -> float | None:
    """Float variable; unset or unparsable values give `default`."""
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        print(f"Warning: {name} is not a valid number, using default: {default}")
        return default


def _optional_bool(name: str, default: bool) -> bool:
    """True if the variable is 'true' (case-insensitive)."""
    value = os.getenv(name)
    if not value:
        return default
    return value.lower() == "true"


# ==============================================================================
# Configuration Dataclasses
# ==============================================================================

@dataclass(frozen=True)
class OpenAIConfig:
    """Chat-completion and embedding provider configuration."""
    api_key: str
    base_url: str | None     # For OpenAI-compatible endpoints
    model: str               # Main model driving the agent loop
    helper_model: str        # Cheaper model for RAG queries and titles
    embedding_model: str


@dataclass(frozen=True)
class AgentConfig:
    """Agent loop behaviour."""
    system_prompt: str
    max_interactions: int
    enable_streaming: bool
    perform_rag_queries: bool          # Generate retrieval queries before answering
    save_conversations: bool
    llm_timeout_seconds: float | None  # None means no timeout
    tool_timeout_seconds: float | None


@dataclass(frozen=True)
class RAGConfig:
    """Retrieval configuration."""
    enabled: bool
    filesystem_indexing: bool
    workspace_dir: Path
    chunk_size: int
    chunk_overlap_percentage: int
    top_k: int
    sync_interval_minutes: int  # 0 disables the background re-sync

    @property
    def chunk_overlap(self) -> int:
        """Overlap in characters derived from the percentage."""
        return (self.chunk_size * self.chunk_overlap_percentage) // 100


@dataclass(frozen=True)
class StorageConfig:
    """Where the vector store and conversations live on disk."""
    data_dir: Path

    @property
    def vectorstore_dir(self) -> Path:
        return self.data_dir / "vectorstore"

    @property
    def conversations_dir(self) -> Path:
        return self.data_dir / "conversations"


@dataclass(frozen=True)
class McpServerConfig:
    """One tool provider to spawn at startup."""
    name: str
    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    transport: str = "stdio"


@dataclass(frozen=True)
class Config:
    """
    Root configuration object.

    Access via:
        config = get_config()
        config.openai.model
        config.rag.chunk_size
    """
    openai: OpenAIConfig
    agent: AgentConfig
    rag: RAGConfig
    storage: StorageConfig
    mcp_servers: list[McpServerConfig]
    log_level: str


def load_mcp_servers(path: Path) -> list[McpServerConfig]:
    """
    Read tool provider definitions from a JSON file.

    Args:
        path: File with a top-level "mcpServers" mapping

    Returns:
        Provider configs in file order

    Raises:
        ValueError: If an entry has no command
    """
    with open(path) as f:
        data = json.load(f)

    servers = []
    for name, entry in data.get("mcpServers", {}).items():
        if not entry.get("command"):
            raise ValueError(f"MCP server '{name}' in {path} has no command")
        servers.append(McpServerConfig(
            name=name,
            command=entry["command"],
            args=list(entry.get("args", [])),
            env=dict(entry.get("env", {})),
            transport=entry.get("transport", "stdio"),
        ))
    return servers


def load_config() -> Config:
    """
    Load and validate all configuration from the environment.

    Returns:
        Config: The validated configuration

    Raises:
        ValueError: If required configuration is missing
    """
    load_dotenv()

    # Project root: tinyagent/utils/config.py -> three levels up
    project_root = Path(__file__).parent.parent.parent

    model = _optional("OPENAI_MODEL", "gpt-4o-mini")

    mcp_servers_file = os.getenv("MCP_SERVERS_FILE")
    mcp_servers = load_mcp_servers(Path(mcp_servers_file)) if mcp_servers_file else []

    return Config(
        openai=OpenAIConfig(
            api_key=_required("OPENAI_API_KEY"),
            base_url=os.getenv("OPENAI_BASE_URL"),
            model=model,
            helper_model=_optional("OPENAI_HELPER_MODEL", model),
            embedding_model=_optional("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"),
        ),
        agent=AgentConfig(
            system_prompt=_optional("AGENT_SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT),
            max_interactions=_optional_int("AGENT_MAX_INTERACTIONS", 10),
            enable_streaming=_optional_bool("ENABLE_STREAMING", False),
            perform_rag_queries=_optional_bool("PERFORM_RAG_QUERIES", False),
            save_conversations=_optional_bool("SAVE_CONVERSATIONS", False),
            llm_timeout_seconds=_optional_float("LLM_TIMEOUT_SECONDS", None),
            tool_timeout_seconds=_optional_float("TOOL_TIMEOUT_SECONDS", None),
        ),
        rag=RAGConfig(
            enabled=_optional_bool("RAG_ENABLED", True),
            filesystem_indexing=_optional_bool("RAG_FILESYSTEM_INDEXING", False),
            workspace_dir=Path(_optional("WORKSPACE_DIR", str(project_root / "workspace"))),
            chunk_size=_optional_int("RAG_CHUNK_SIZE", 500),
            chunk_overlap_percentage=_optional_int("RAG_CHUNK_OVERLAP_PERCENTAGE", 15),
            top_k=_optional_int("RAG_TOP_K", 5),
            sync_interval_minutes=_optional_int("RAG_SYNC_INTERVAL_MINUTES", 0),
        ),
        storage=StorageConfig(
            data_dir=Path(_optional("DATA_DIR", str(project_root / "data"))),
        ),
        mcp_servers=mcp_servers,
        log_level=_optional("LOG_LEVEL", "info"),
    )


# ==============================================================================
# Singleton
# ==============================================================================

_config_instance: Config | None = None


def get_config() -> Config:
    """Process-wide configuration, loaded from the environment on first use."""
    global _config_instance
    if _config_instance is None:
        _config_instance = load_config()
    return _config_instance


def reset_config() -> None:
    """Forget the cached configuration so the next get_config() reloads it."""
    global _config_instance
    _config_instance = None
