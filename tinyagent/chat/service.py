"""
Chat Service
============

Transport-agnostic request handlers for chat front ends.

Every handler answers with an acknowledgement dict:

    {"status": "ok", "result": ...}
    {"status": "error", "error": "message"}

While an answer is being generated, out-of-band events are pushed to the
caller's `on_event(name, payload)` callback, fire-and-forget:

    stream-answer      a text fragment (only when streaming is enabled)
    tool-call          a tool call the model requested, before it runs
    tool-call-result   the tool call's telemetry, after it ran

Error Handling:
    - Handlers never raise; failures are logged and acknowledged as errors
    - A failed answer also carries an apologetic assistant reply so the
      front end always has something to show
"""

import functools
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from tinyagent.agent.messages import AssistantMessage, ToolCallRequest, ToolCallTelemetry
from tinyagent.agent.planner import Plan, PlanStep, execute_plan
from tinyagent.utils.logger import Logger

if TYPE_CHECKING:
    from tinyagent.agent import TinyAgent
    from tinyagent.conversations import ConversationsStorage

logger = Logger("ChatService")

EventCallback = Callable[[str, Any], None]

APOLOGY = "Sorry, I encountered an error processing your request."

STREAM_ANSWER = "stream-answer"
TOOL_CALL = "tool-call"
TOOL_CALL_RESULT = "tool-call-result"


def ok(result: Any) -> dict:
    return {"status": "ok", "result": result}


def error(message: str, **extra: Any) -> dict:
    return {"status": "error", "error": message, **extra}


def handler(func: Callable[..., Awaitable[dict]]) -> Callable[..., Awaitable[dict]]:
    """Turn any exception escaping a handler into an error acknowledgement."""

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> dict:
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            logger.error(f"Error handling {func.__name__}", e)
            return error(str(e) or type(e).__name__)

    return wrapper


def _emit(on_event: EventCallback | None, name: str, payload: Any) -> None:
    if on_event is None:
        return
    try:
        on_event(name, payload)
    except Exception as e:
        logger.warning(f"Event listener failed on '{name}': {e}")


def _tool_listeners(on_event: EventCallback | None) -> dict[str, Callable]:
    """run() callbacks forwarding tool activity as events."""

    def on_tool_call(request: ToolCallRequest) -> None:
        _emit(on_event, TOOL_CALL, request.to_dict())

    def on_tool_call_result(telemetry: ToolCallTelemetry) -> None:
        _emit(on_event, TOOL_CALL_RESULT, telemetry.to_dict())

    return {"on_tool_call": on_tool_call, "on_tool_call_result": on_tool_call_result}


def _content_of(message: Any) -> str:
    content = getattr(message, "content", None)
    return content if isinstance(content, str) else ""


class ChatService:
    """
    Request handlers wrapping the agent, its registry and the conversation store.

    Example:
        service = ChatService(agent, AsyncOpenAI(), conversations=storage)

        ack = await service.generate_answer(
            [{"role": "user", "content": "What's in the workspace?"}],
            on_event=lambda name, payload: print(name, payload),
        )
        if ack["status"] == "ok":
            print(ack["result"]["content"])
    """

    def __init__(
        self,
        agent: "TinyAgent",
        client: Any,
        conversations: "ConversationsStorage | None" = None,
        model: str | None = None,
        helper_model: str | None = None,
        enable_streaming: bool = False
    ):
        """
        Initialize the service.

        Args:
            agent: The agent answering requests
            client: OpenAI-compatible client used for every model call
            conversations: Optional conversation store
            model: Model for answers, recipes and plans (agent default if None)
            helper_model: Cheaper model for RAG queries (model if None)
            enable_streaming: Push stream-answer events while answering
        """
        self.agent = agent
        self.client = client
        self.conversations = conversations
        self.model = model
        self.helper_model = helper_model or model
        self.enable_streaming = enable_streaming

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    @handler
    async def list_tools(self) -> dict:
        tools = await self.agent.get_clients_registry().get_tools()
        return ok([tool.to_dict() for tool in tools])

    @handler
    async def call_tool(self, tool_call: dict) -> dict:
        """Call a tool directly, bypassing the model."""
        request = ToolCallRequest.from_dict(tool_call)
        result = await self.agent.get_clients_registry().call_tool(request)
        return ok(result)

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------

    async def generate_answer(
        self,
        messages: list,
        rag_queries: list[str] | None = None,
        conversation_id: str | None = None,
        on_event: EventCallback | None = None,
        request_input_from_user: Callable[[str], Awaitable[str]] | None = None
    ) -> dict:
        """
        Run the agent on a conversation.

        Returns:
            ok({"content", "streamed", "conversation"}) or an error carrying
            an apologetic "result" in the same shape
        """
        try:
            return await self._generate_answer(
                messages, rag_queries, conversation_id, on_event, request_input_from_user
            )
        except Exception as e:
            logger.error("Error generating answer", e)
            apology = AssistantMessage(content=APOLOGY)
            return error(
                str(e) or type(e).__name__,
                result={"content": APOLOGY, "streamed": False, "conversation": [
                    *[m if isinstance(m, dict) else m.to_dict() for m in messages],
                    apology.to_dict(),
                ]},
            )

    async def _generate_answer(
        self,
        messages: list,
        rag_queries: list[str] | None,
        conversation_id: str | None,
        on_event: EventCallback | None,
        request_input_from_user: Callable[[str], Awaitable[str]] | None
    ) -> dict:
        # Save the user's side first so nothing is lost if the run fails
        if conversation_id and self.conversations is not None:
            await self.conversations.update_conversation(conversation_id, messages)

        streamed_parts: list[str] = []
        on_stream_chunk = None
        if self.enable_streaming:
            def on_stream_chunk(chunk: str) -> None:
                streamed_parts.append(chunk)
                _emit(on_event, STREAM_ANSWER, chunk)

        result = await self.agent.run(
            client=self.client,
            base_messages=messages,
            model=self.model,
            rag_queries=rag_queries,
            on_stream_chunk=on_stream_chunk,
            request_input_from_user=request_input_from_user,
            **_tool_listeners(on_event),
        )

        if conversation_id and self.conversations is not None:
            await self.conversations.update_conversation(conversation_id, result.conversation)

        return ok({
            "content": _content_of(result.last_message),
            "streamed": bool(streamed_parts),
            "conversation": result.conversation_dicts(),
        })

    @handler
    async def generate_recipe(self, conversation: list) -> dict:
        recipe = await self.agent.generate_recipe(self.client, conversation, model=self.model)
        return ok(recipe)

    @handler
    async def generate_rag_queries(self, messages: list) -> dict:
        queries = await self.agent.generate_rag_queries(
            self.client, messages, model=self.helper_model
        )
        return ok(queries)

    @handler
    async def generate_plan(self, messages: list) -> dict:
        plan = await self.agent.generate_plan(self.client, messages, model=self.model)
        return ok(plan.to_dict())

    @handler
    async def execute_plan(
        self,
        plan: dict,
        messages: list,
        on_event: EventCallback | None = None,
        on_step: Callable[[PlanStep], None] | None = None
    ) -> dict:
        """Run a plan produced by generate_plan against the agent."""
        steps = [PlanStep(**step) for step in plan.get("steps", [])]

        execution = await execute_plan(
            self.agent,
            self.client,
            Plan(steps=steps),
            messages,
            on_step=on_step,
            model=self.model,
            **_tool_listeners(on_event),
        )
        return ok({
            "content": _content_of(execution.history[-1]) if execution.history else "",
            "conversation": [m.to_dict() for m in execution.history],
        })

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def _require_store(self) -> "ConversationsStorage":
        if self.conversations is None:
            raise RuntimeError("Conversation storage is disabled")
        return self.conversations

    @handler
    async def create_conversation(self, name: str | None = None) -> dict:
        conversation = await self._require_store().create_conversation(name)
        return ok(conversation.to_dict())

    @handler
    async def list_conversations(self) -> dict:
        conversations = await self._require_store().list_conversations()
        return ok([c.to_dict() for c in conversations])

    @handler
    async def get_conversation(self, conversation_id: str) -> dict:
        conversation = await self._require_store().get_conversation(conversation_id)
        if conversation is None:
            return error("Conversation not found")
        return ok(conversation.to_dict())

    @handler
    async def rename_conversation(self, conversation_id: str, name: str) -> dict:
        if not await self._require_store().rename_conversation(conversation_id, name):
            return error("Conversation not found")
        return ok("Conversation renamed")

    @handler
    async def delete_conversation(self, conversation_id: str) -> dict:
        await self._require_store().delete_conversation(conversation_id)
        return ok("Conversation deleted")
