"""Error types raised by the agent runtime."""

from __future__ import annotations


class TinyAgentError(Exception):
    """Base error type for all runtime failures."""


class UnsupportedTransport(TinyAgentError):
    """A tool provider was registered with a transport we cannot speak."""

    def __init__(self, transport: str):
        self.transport = transport
        super().__init__(f"Unsupported transport type: {transport}")


class ClientNotRegistered(TinyAgentError):
    """A provider name was used that the registry does not hold."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f'Client "{name}" is not registered.')


class ToolNotFound(TinyAgentError):
    """No built-in or registered provider exposes the requested tool."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f'Tool "{name}" not found among registered clients.')


class MissingInputCallback(TinyAgentError):
    """The model asked the user a question but nobody is listening."""

    def __init__(self, tool_name: str = "ask_question"):
        self.tool_name = tool_name
        super().__init__(
            f"Function '{tool_name}' requires a request_input_from_user callback to be provided."
        )


class MalformedDesignerOutput(TinyAgentError):
    """The prompt designer reply does not contain exactly one prompt token."""


class MalformedPlanOutput(TinyAgentError):
    """The planner reply is not a JSON step list."""


class InvalidConversation(TinyAgentError):
    """A tool message does not answer any preceding tool call."""


class InvalidToolArguments(TinyAgentError):
    """The model sent tool arguments that are not a JSON object."""

    def __init__(self, tool_name: str, arguments: str):
        self.tool_name = tool_name
        self.arguments = arguments
        super().__init__(f"Arguments for '{tool_name}' must be a JSON object, got: {arguments}")


class CallTimeout(TinyAgentError):
    """A model request or tool call exceeded its configured timeout."""


__all__ = [
    "TinyAgentError",
    "UnsupportedTransport",
    "ClientNotRegistered",
    "ToolNotFound",
    "MissingInputCallback",
    "MalformedDesignerOutput",
    "MalformedPlanOutput",
    "InvalidConversation",
    "InvalidToolArguments",
    "CallTimeout",
]
