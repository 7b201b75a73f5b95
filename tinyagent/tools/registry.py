"""
Clients Registry
================

Holds the live connections to tool providers and presents one catalog.

Catalog order is always:
    1. built-in tools (task_complete, ask_question)
    2. each provider in registration order
    3. each provider's tools in the order the provider lists them

The catalog is rebuilt from the providers on every get_tools() call, and
call_tool() re-resolves the owner of a tool from that live catalog. A tool a
provider drops between listing and calling therefore fails lookup at call
time instead of reaching a stale route.

If two providers expose the same function name, the first one in catalog
order owns it and the duplicate is left out with a warning.
"""

import asyncio
from typing import Any, Awaitable, Callable

from tinyagent.agent.messages import ToolCallRequest
from tinyagent.errors import CallTimeout, ClientNotRegistered, ToolNotFound, UnsupportedTransport
from tinyagent.tools.builtins import BUILTIN_TOOL_NAMES, BUILTIN_TOOLS, AvailableTool
from tinyagent.tools.providers import StdioProvider, ToolProvider
from tinyagent.utils.logger import Logger

logger = Logger("Registry")

# Builds a provider connection: (name, command, args, env) -> provider
Connector = Callable[[str, str, list[str], dict[str, str]], Awaitable[ToolProvider]]

DEFAULT_CONNECTORS: dict[str, Connector] = {
    "stdio": StdioProvider.connect,
}

# What call_tool returns for a built-in; the agent loop runs those itself
BUILTIN_NOOP_RESULT = None


class ClientsRegistry:
    """
    Named tool-provider connections and tool routing.

    Example:
        registry = ClientsRegistry()

        await registry.register(
            "stdio", "hello", "python", ["hello_server.py"], {"PATH": os.environ["PATH"]}
        )

        tools = await registry.get_tools()
        result = await registry.call_tool(
            ToolCallRequest(id="call-1", name="hello-world", arguments='{"name": "Alice"}')
        )

        await registry.cleanup()
    """

    def __init__(
        self,
        connectors: dict[str, Connector] | None = None,
        call_timeout: float | None = None
    ):
        """
        Initialize an empty registry.

        Args:
            connectors: Transport kind -> connection factory (defaults to stdio only)
            call_timeout: Seconds allowed per provider tool call; None waits forever
        """
        self._connectors = dict(connectors) if connectors is not None else dict(DEFAULT_CONNECTORS)
        self._clients: dict[str, ToolProvider] = {}
        self.call_timeout = call_timeout

    async def register(
        self,
        transport_type: str,
        name: str,
        command: str,
        args: list[str],
        env: dict[str, str] | None = None
    ) -> None:
        """
        Connect to a provider and store it under `name`.

        A provider already registered under the same name is replaced and
        its connection closed.

        Raises:
            UnsupportedTransport: If transport_type has no connector
        """
        connector = self._connectors.get(transport_type)
        if connector is None:
            raise UnsupportedTransport(transport_type)

        client = await connector(name, command, list(args), dict(env or {}))

        # Replacing keeps the provider's slot in the catalog
        previous = self._clients.get(name)
        self._clients[name] = client
        logger.info(f"Registered provider '{name}' ({transport_type})")

        if previous is not None:
            logger.warning(f"Provider '{name}' was already registered, replacing it")
            await previous.close()

    def get_client_names(self) -> list[str]:
        """Registered provider names in registration order."""
        return list(self._clients.keys())

    async def get_tools(self) -> list[AvailableTool]:
        """
        Build the catalog: built-ins, then every provider's tools.

        Providers are listed concurrently. A provider that fails to list its
        tools fails the whole call.
        """
        clients = list(self._clients.items())
        listings = await asyncio.gather(
            *(client.list_tools() for _, client in clients)
        )

        tools: list[AvailableTool] = list(BUILTIN_TOOLS)
        seen = {tool.name for tool in tools}

        for (client_name, _), listed in zip(clients, listings):
            for tool in listed:
                if tool["name"] in seen:
                    logger.warning(
                        f"Tool '{tool['name']}' from '{client_name}' shadows an "
                        f"earlier tool with the same name, skipping"
                    )
                    continue
                seen.add(tool["name"])
                tools.append(AvailableTool(
                    client_name=client_name,
                    name=tool["name"],
                    description=tool.get("description"),
                    parameters=tool.get("inputSchema") or {"type": "object", "properties": {}},
                ))

        return tools

    async def call_tool(self, tool_call: ToolCallRequest) -> Any:
        """
        Route a tool call to the provider that owns it.

        Args:
            tool_call: The model's request

        Returns:
            The provider's result, or BUILTIN_NOOP_RESULT for a built-in

        Raises:
            InvalidToolArguments: If the arguments are not a JSON object
            ToolNotFound: If no tool in the current catalog has this name
            CallTimeout: If call_timeout is set and the provider is too slow
        """
        if tool_call.name in BUILTIN_TOOL_NAMES:
            return BUILTIN_NOOP_RESULT

        arguments = tool_call.parse_arguments()

        tools = await self.get_tools()
        matching = next((t for t in tools if t.name == tool_call.name), None)
        if matching is None:
            raise ToolNotFound(tool_call.name)

        client = self._clients.get(matching.client_name)
        if client is None:
            raise ClientNotRegistered(matching.client_name)

        logger.info(f"Calling tool '{tool_call.name}' on '{matching.client_name}'")
        call = client.call_tool(tool_call.name, arguments)
        if self.call_timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.call_timeout)
        except asyncio.TimeoutError as e:
            raise CallTimeout(
                f"Tool '{tool_call.name}' did not answer within {self.call_timeout}s"
            ) from e

    async def close_client(self, name: str) -> None:
        """
        Close one provider connection and forget it.

        Raises:
            ClientNotRegistered: If no provider has this name
        """
        client = self._clients.get(name)
        if client is None:
            raise ClientNotRegistered(name)
        await client.close()
        self._clients.pop(name, None)
        logger.info(f"Closed provider '{name}'")

    async def cleanup(self) -> None:
        """Close every provider concurrently."""
        await asyncio.gather(*(self.close_client(name) for name in self.get_client_names()))
