"""
Tool Executor
=============

Runs the tool calls the model requested in one turn.

Built-in tools are handled here and never reach a provider:
- task_complete: counted as a completion acknowledgement, result is ""
- ask_question: forwarded to the user-input callback, whose answer is the result

Every other call goes to the ClientsRegistry. Errors are not caught: an
unknown tool or a missing user-input callback aborts the whole run rather
than feeding the model a made-up result.

Calls run sequentially, in the order the model asked for them, so
side-effecting tools see a consistent state and telemetry stays ordered.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from tinyagent.agent.messages import ToolCallRequest, ToolCallTelemetry, ToolMessage, now_ms, to_json_text
from tinyagent.errors import MissingInputCallback
from tinyagent.tools.builtins import ASK_QUESTION, TASK_COMPLETE
from tinyagent.utils.logger import Logger

if TYPE_CHECKING:
    from tinyagent.tools.registry import ClientsRegistry

logger = Logger("ToolExecutor")

# Asks the end user a question and returns the answer
InputCallback = Callable[[str], Awaitable[str]]


@dataclass
class ToolCallResult:
    """
    Outcome of one tool call.

    Attributes:
        telemetry: Timing and payload record
        completion_acknowledged: True when the call was task_complete
    """
    telemetry: ToolCallTelemetry
    completion_acknowledged: bool = False

    def to_message(self) -> ToolMessage:
        """The tool-role message answering the call, result JSON-encoded."""
        return ToolMessage(
            tool_call_id=self.telemetry.tool_call_id,
            content=to_json_text(self.telemetry.result),
        )


class ToolExecutor:
    """
    Executes model-requested tool calls.

    Example:
        executor = ToolExecutor(registry)

        for request in assistant_message.tool_calls:
            outcome = await executor.execute_one(request, request_input_from_user=ask)
            conversation.append(outcome.to_message())
    """

    def __init__(self, registry: "ClientsRegistry"):
        self.registry = registry

    async def execute_one(
        self,
        tool_call: ToolCallRequest,
        request_input_from_user: InputCallback | None = None
    ) -> ToolCallResult:
        """
        Execute a single tool call.

        Raises:
            MissingInputCallback: ask_question without a user-input callback
            InvalidToolArguments: The arguments are not a JSON object
            ToolNotFound: No provider exposes the tool
        """
        params = tool_call.parse_arguments()
        start = now_ms()
        acknowledged = False
        result: Any

        if tool_call.name == TASK_COMPLETE:
            logger.debug("Model acknowledged task completion")
            acknowledged = True
            result = ""
        elif tool_call.name == ASK_QUESTION:
            if request_input_from_user is None:
                raise MissingInputCallback(ASK_QUESTION)
            result = await request_input_from_user(params.get("questions", ""))
        else:
            logger.info(f"Executing tool: {tool_call.name}")
            result = await self.registry.call_tool(tool_call)

        telemetry = ToolCallTelemetry(
            tool_call_id=tool_call.id,
            tool_name=tool_call.name,
            params=params,
            result=result,
            start_time=start,
            end_time=now_ms(),
        )
        return ToolCallResult(telemetry=telemetry, completion_acknowledged=acknowledged)

