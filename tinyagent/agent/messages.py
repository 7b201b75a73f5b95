"""
Conversation Messages
=====================

Typed messages exchanged during an agent run, and the telemetry the run
records about every model and tool invocation.

Message roles form a closed set:

    SystemMessage     instructions for the model
    UserMessage       what the user said
    AssistantMessage  model output, optionally requesting tool calls
    ToolMessage       the result of one tool call, linked by tool_call_id

Only assistant messages carry tool_calls and only tool messages carry a
tool_call_id. A conversation is valid when every tool message answers a
call requested by an earlier assistant message.

All messages serialize to the OpenAI chat format with to_dict(), and
message_from_dict() reads that format back (e.g. from the conversation
store or from a chat client).
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from tinyagent.errors import InvalidConversation, InvalidToolArguments


@dataclass(frozen=True)
class ToolCallRequest:
    """
    A tool call requested by the model.

    Attributes:
        id: Call ID, echoed back by the matching ToolMessage
        name: Function name
        arguments: Raw JSON argument string as produced by the model
    """
    id: str
    name: str
    arguments: str = "{}"

    def parse_arguments(self) -> dict[str, Any]:
        """
        Parse the argument JSON; blank or absent arguments mean {}.

        Raises:
            InvalidToolArguments: If the text is not JSON or not a JSON object
        """
        if not self.arguments or not self.arguments.strip():
            return {}
        try:
            params = json.loads(self.arguments)
        except json.JSONDecodeError as e:
            raise InvalidToolArguments(self.name, self.arguments) from e
        if not isinstance(params, dict):
            raise InvalidToolArguments(self.name, self.arguments)
        return params

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ToolCallRequest":
        function = data.get("function", {})
        return cls(
            id=data.get("id", ""),
            name=function["name"],
            arguments=function.get("arguments") or "{}",
        )

    @classmethod
    def from_openai(cls, tool_call: Any) -> "ToolCallRequest":
        """Build from an OpenAI SDK tool call object."""
        return cls(
            id=tool_call.id,
            name=tool_call.function.name,
            arguments=tool_call.function.arguments or "{}",
        )


@dataclass
class SystemMessage:
    content: str
    role: ClassVar[str] = "system"

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass
class UserMessage:
    content: str
    role: ClassVar[str] = "user"

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass
class AssistantMessage:
    """Model output. content is None when the model only requested tools."""
    content: str | None = None
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    role: ClassVar[str] = "assistant"

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        return data

    @classmethod
    def from_openai(cls, message: Any) -> "AssistantMessage":
        """Build from an OpenAI SDK ChatCompletionMessage."""
        tool_calls = getattr(message, "tool_calls", None) or []
        return cls(
            content=message.content,
            tool_calls=[ToolCallRequest.from_openai(tc) for tc in tool_calls],
        )


@dataclass
class ToolMessage:
    tool_call_id: str
    content: str
    role: ClassVar[str] = "tool"

    def to_dict(self) -> dict:
        return {
            "role": self.role,
            "tool_call_id": self.tool_call_id,
            "content": self.content,
        }


ConversationMessage = Union[SystemMessage, UserMessage, AssistantMessage, ToolMessage]


def _content_to_text(content: Any) -> str | None:
    """Flatten OpenAI content-part lists to plain text."""
    if content is None or isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text", "") for part in content if isinstance(part, dict)
        )
    return str(content)


def message_from_dict(data: dict) -> ConversationMessage:
    """
    Read a message in OpenAI chat format.

    Raises:
        ValueError: If the role is unknown
    """
    role = data.get("role")
    content = _content_to_text(data.get("content"))

    if role == "system":
        return SystemMessage(content=content or "")
    if role == "user":
        return UserMessage(content=content or "")
    if role == "assistant":
        return AssistantMessage(
            content=content,
            tool_calls=[ToolCallRequest.from_dict(tc) for tc in data.get("tool_calls") or []],
        )
    if role == "tool":
        return ToolMessage(tool_call_id=data["tool_call_id"], content=content or "")
    raise ValueError(f"Unknown message role: {role!r}")


def to_message(message: "ConversationMessage | dict") -> ConversationMessage:
    """Accept either a message object or its dict form."""
    if isinstance(message, dict):
        return message_from_dict(message)
    return message


def validate_conversation(messages: list[ConversationMessage]) -> None:
    """
    Check that every tool message answers an earlier tool call.

    Raises:
        InvalidConversation: On the first orphan tool message
    """
    requested: set[str] = set()
    for index, message in enumerate(messages):
        if isinstance(message, AssistantMessage):
            requested.update(tc.id for tc in message.tool_calls)
        elif isinstance(message, ToolMessage) and message.tool_call_id not in requested:
            raise InvalidConversation(
                f"Tool message at position {index} references unknown "
                f"tool call '{message.tool_call_id}'"
            )


def to_json_text(value: Any) -> str:
    """JSON-encode a tool result, falling back to str() for unknown types."""
    return json.dumps(value, default=str)


# ==============================================================================
# Telemetry
# ==============================================================================

def now_ms() -> int:
    """Current time in milliseconds since the epoch."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class LLMCallTelemetry:
    """
    One model invocation.

    Timestamps are milliseconds since the epoch.
    """
    request_messages: tuple[dict, ...]
    response_message: AssistantMessage
    start_time: int
    end_time: int
    streamed: bool = False

    @property
    def duration_ms(self) -> int:
        return self.end_time - self.start_time

    def to_dict(self) -> dict:
        return {
            "requestMessages": list(self.request_messages),
            "responseMessage": self.response_message.to_dict(),
            "startTime": self.start_time,
            "endTime": self.end_time,
            "durationMs": self.duration_ms,
            "streamed": self.streamed,
        }


@dataclass(frozen=True)
class ToolCallTelemetry:
    """One tool invocation, built-ins included."""
    tool_call_id: str
    tool_name: str
    params: dict[str, Any]
    result: Any
    start_time: int
    end_time: int

    @property
    def duration_ms(self) -> int:
        return self.end_time - self.start_time

    def to_dict(self) -> dict:
        return {
            "toolCallId": self.tool_call_id,
            "toolName": self.tool_name,
            "params": self.params,
            "result": self.result,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "durationMs": self.duration_ms,
        }


@dataclass
class RunResult:
    """Everything a run produced: transcript plus telemetry, in order."""
    conversation: list[ConversationMessage]
    llm_calls: list[LLMCallTelemetry]
    tool_calls: list[ToolCallTelemetry]

    @property
    def last_message(self) -> ConversationMessage | None:
        return self.conversation[-1] if self.conversation else None

    def last_assistant_text(self) -> str:
        """Content of the last assistant message that has any, else ''."""
        for message in reversed(self.conversation):
            if isinstance(message, AssistantMessage) and message.content:
                return message.content
        return ""

    def conversation_dicts(self) -> list[dict]:
        return [message.to_dict() for message in self.conversation]
