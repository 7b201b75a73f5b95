"""
TinyAgent - Main Entry Point
============================

This is the main entry point for the terminal chat. It:
1. Loads configuration
2. Initializes the RAG system and syncs the workspace
3. Registers the tool providers (concurrently)
4. Creates the agent, the conversation store and the chat service
5. Runs the interactive chat until /exit, then closes every provider

Run with:
    python -m tinyagent.main

Or after installing:
    tinyagent
"""

import asyncio
import os
import signal
import sys
import time

from openai import AsyncOpenAI

from tinyagent.utils.config import Config, McpServerConfig, get_config
from tinyagent.utils.logger import Logger

main_logger = Logger("Main")

# Names the first-party providers are registered under
MEMORY_SERVER_NAME = "memory"
SMART_FETCH_SERVER_NAME = "smart-fetch"


def first_party_server(name: str, module: str) -> McpServerConfig:
    """A provider shipped with TinyAgent, run with the current interpreter."""
    return McpServerConfig(name=name, command=sys.executable, args=["-m", module])


def memory_server_config() -> McpServerConfig:
    return first_party_server(MEMORY_SERVER_NAME, "tinyagent.rag.server")


def smart_fetch_server_config() -> McpServerConfig:
    return first_party_server(SMART_FETCH_SERVER_NAME, "tinyagent.tools.smart_fetch")


async def register_providers(registry, servers: list[McpServerConfig]) -> None:
    """
    Register every provider concurrently.

    Providers inherit the current environment, with their own env on top.
    A provider that fails to start fails startup.
    """
    async def register(server: McpServerConfig) -> None:
        env = {**os.environ, **server.env}
        await registry.register(server.transport, server.name, server.command, server.args, env)
        main_logger.info(f"{server.name} client initialized")

    start = time.monotonic()
    await asyncio.gather(*(register(server) for server in servers))
    main_logger.info(
        f"{len(servers)} MCP clients initialized in {time.monotonic() - start:.2f}s"
    )


async def main():
    """
    Main async entry point.

    Initializes all components and runs the chat.
    """
    main_logger.info("Starting TinyAgent...")

    registry = None
    rag = None

    try:
        # 1. Load configuration
        # This validates that all required env vars are set
        main_logger.info("Loading configuration...")
        config: Config = get_config()

        # 2. Initialize RAG system
        if config.rag.enabled:
            main_logger.info("Initializing RAG system...")
            from tinyagent.rag import RAGManager
            rag = RAGManager.from_config(config)

            if config.rag.filesystem_indexing:
                main_logger.info("Syncing workspace...")
                await rag.sync()
                if config.rag.sync_interval_minutes > 0:
                    rag.listen_for_changes(config.rag.sync_interval_minutes)

        # 3. Register tool providers
        main_logger.info("Registering tool providers...")
        from tinyagent.tools import ClientsRegistry
        registry = ClientsRegistry(call_timeout=config.agent.tool_timeout_seconds)

        servers = [smart_fetch_server_config(), *config.mcp_servers]
        if rag is not None:
            servers.append(memory_server_config())
        await register_providers(registry, servers)

        # 4. Create the agent
        main_logger.info("Creating agent...")
        from tinyagent.agent import TinyAgent
        agent = TinyAgent(
            registry=registry,
            rag=rag,
            max_interactions=config.agent.max_interactions,
            model=config.openai.model,
            llm_timeout=config.agent.llm_timeout_seconds,
            rag_top_k=config.rag.top_k,
        )

        conversations = None
        if config.agent.save_conversations:
            from tinyagent.conversations import ConversationsStorage
            conversations = ConversationsStorage(config.storage.conversations_dir)

        # 5. Start the chat
        from tinyagent.chat import ChatCLI, ChatService
        service = ChatService(
            agent,
            AsyncOpenAI(api_key=config.openai.api_key, base_url=config.openai.base_url),
            conversations=conversations,
            model=config.openai.model,
            helper_model=config.openai.helper_model,
            enable_streaming=config.agent.enable_streaming,
        )
        cli = ChatCLI(
            service,
            system_prompt=config.agent.system_prompt,
            rag=rag,
            perform_rag_queries=config.agent.perform_rag_queries,
        )

        # Set up graceful shutdown
        loop = asyncio.get_running_loop()
        main_task = asyncio.current_task()
        loop.add_signal_handler(signal.SIGTERM, main_task.cancel)

        await cli.run()

    except (KeyboardInterrupt, EOFError, asyncio.CancelledError):
        main_logger.info("Received interrupt signal")
    except Exception as e:
        main_logger.error("Failed to start TinyAgent", e)
        await _shutdown(registry, rag)
        sys.exit(1)

    await _shutdown(registry, rag)


async def _shutdown(registry, rag):
    """
    Graceful shutdown handler.

    Args:
        registry: The tool registry (None if startup failed before it existed)
        rag: The RAG manager, if any
    """
    main_logger.info("Shutting down...")

    if rag is not None:
        rag.stop_listening()

    if registry is not None:
        await registry.cleanup()

    main_logger.info("Shutdown complete")


def run():
    """
    Synchronous entry point.

    This is called when running with the `tinyagent` command.
    """
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
