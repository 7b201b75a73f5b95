"""
Memory Tool Server
==================

Exposes the knowledge base to agents as an MCP tool provider over stdio.

Tools:
- retrieve_memory(query, limit=5): search stored memories and files
- store_memory(memory): save a text snippet for later retrieval

stdout carries the protocol, so all logging goes to stderr.

Run with:
    python -m tinyagent.rag.server

Or after installing:
    tinyagent-memory-server
"""

import sys

from mcp.server.fastmcp import FastMCP

from tinyagent.rag import RAGManager
from tinyagent.utils.config import get_config
from tinyagent.utils.logger import Logger, redirect_output

logger = Logger("MemoryServer")

STORED_MESSAGE = "✅ Memory stored successfully."

mcp = FastMCP("RAG")

_rag: RAGManager | None = None


def get_rag() -> RAGManager:
    """The RAG system backing the tools, built from config on first use."""
    global _rag
    if _rag is None:
        _rag = RAGManager.from_config(get_config())
    return _rag


def set_rag(rag: RAGManager | None) -> None:
    global _rag
    _rag = rag


@mcp.tool()
async def retrieve_memory(query: str, limit: int = 5) -> list[str]:
    """Search the knowledge base to retrieve stored memories relevant to a query

    Args:
        query: The search query used to retrieve relevant memories from the knowledge base
        limit: The maximum number of results to return
    """
    results = await get_rag().query(query, limit)
    logger.debug(f"retrieve_memory returned {len(results)} results")
    return [result.content for result in results]


@mcp.tool()
async def store_memory(memory: str) -> str:
    """Store a new memory in the knowledge base so it can be retrieved later

    Args:
        memory: The memory or text snippet to store in the knowledge base for future retrieval
    """
    memory_id = await get_rag().create_memory(memory)
    logger.info(f"Stored memory {memory_id}")
    return STORED_MESSAGE


def run():
    """Synchronous entry point for the tinyagent-memory-server command."""
    redirect_output(sys.stderr)
    logger.info("Starting memory tool server on stdio")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    run()
