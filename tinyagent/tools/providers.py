"""
Tool Provider Connections
=========================

A tool provider is an external process that exposes a catalog of tools over
the Model Context Protocol. We spawn it, speak JSON-RPC over its stdin/stdout,
and discard whatever it prints on stderr.

Each connection lives in its own background task. The MCP client stack is
built from nested async context managers (process, streams, session), and
those must be entered and exited by the same task. Keeping them inside one
long-lived task lets the registry open and close providers from anywhere,
including concurrently.

    connect()  ->  background task enters stdio_client + ClientSession
                   initializes, signals ready, waits for close
    close()    ->  sets the close event and awaits the task

Results are converted from MCP SDK models to plain JSON-compatible data, so
callers never depend on SDK types.
"""

import asyncio
import os
from contextlib import AsyncExitStack
from typing import Any, Protocol

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

from tinyagent.utils.logger import Logger

logger = Logger("Provider")


class ToolProvider(Protocol):
    """What the registry needs from a provider connection."""

    name: str

    async def list_tools(self) -> list[dict[str, Any]]:
        """Return [{"name", "description", "inputSchema"}, ...]."""
        ...

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        ...

    async def close(self) -> None:
        ...


class StdioProvider:
    """
    A provider process reached over stdio.

    Example:
        provider = await StdioProvider.connect(
            name="filesystem",
            command="npx",
            args=["-y", "@modelcontextprotocol/server-filesystem", "./workspace"],
            env={"PATH": os.environ["PATH"]},
        )

        tools = await provider.list_tools()
        result = await provider.call_tool("list_directory", {"path": "."})

        await provider.close()
    """

    def __init__(self, name: str, params: StdioServerParameters):
        self.name = name
        self._params = params
        self._session: ClientSession | None = None
        self._closing = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._log = logger.child(name)

    @classmethod
    async def connect(
        cls,
        name: str,
        command: str,
        args: list[str],
        env: dict[str, str] | None = None
    ) -> "StdioProvider":
        """
        Spawn the provider and complete the MCP handshake.

        Args:
            name: Provider name (for logs)
            command: Executable to run
            args: Command line arguments
            env: Environment for the child process

        Returns:
            A connected provider

        Raises:
            Whatever the process spawn or handshake raised
        """
        provider = cls(name, StdioServerParameters(command=command, args=list(args), env=env))
        ready: asyncio.Future = asyncio.get_running_loop().create_future()
        provider._task = asyncio.create_task(provider._serve(ready), name=f"mcp-{name}")
        await ready
        provider._log.debug("Connected", {"command": command, "args": args})
        return provider

    async def _serve(self, ready: asyncio.Future) -> None:
        """Own the connection for its whole lifetime."""
        try:
            async with AsyncExitStack() as stack:
                errlog = stack.enter_context(open(os.devnull, "w"))
                read, write = await stack.enter_async_context(
                    stdio_client(self._params, errlog=errlog)
                )
                session = await stack.enter_async_context(ClientSession(read, write))
                await session.initialize()

                self._session = session
                ready.set_result(None)

                await self._closing.wait()
        except Exception as e:
            if not ready.done():
                ready.set_exception(e)
                return
            raise
        finally:
            self._session = None

    def _require_session(self) -> ClientSession:
        if self._session is None:
            raise RuntimeError(f"Provider '{self.name}' is not connected")
        return self._session

    async def list_tools(self) -> list[dict[str, Any]]:
        result = await self._require_session().list_tools()
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "inputSchema": tool.inputSchema,
            }
            for tool in result.tools
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        result = await self._require_session().call_tool(name, arguments)
        return result.model_dump(mode="json", by_alias=True, exclude_none=True)

    async def close(self) -> None:
        """Shut the session down and wait for the process to exit."""
        if self._task is None:
            return
        self._closing.set()
        task, self._task = self._task, None
        await task
        self._log.debug("Closed")
