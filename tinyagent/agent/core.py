"""
Agent Core
==========

TinyAgent drives the conversation between a language model and the tools
registered in its ClientsRegistry.

Agent Loop:
    Initial messages
         │
         ▼
    Splice RAG context (optional, failures ignored)
         │
         ▼
    Fetch tool catalog (once per run)
         │
         ▼
    ┌──► LLM request with tools (streaming or not)
    │        │
    │        ▼
    │   ┌─── Has Tool Calls? ───┐
    │   │                       │
    │   Yes                     No
    │   │                       │
    │   ▼                       ▼
    │   Execute tools       Return transcript
    │   sequentially        and telemetry
    │   │
    └───┘

The loop stops when:
- the interaction budget is spent (not an error, partial progress is returned)
- the model has called task_complete `completion_threshold` times (default 2)
- the model answers without requesting any tool

Two acknowledgements are required because models often announce completion
one turn before they actually stop using tools. The threshold is tunable.

Streaming:
    With an on_stream_chunk callback the request is streamed and text
    fragments are forwarded as they arrive. As soon as a fragment carries
    tool-call data the stream is dropped and the same turn is requested
    again without streaming, so partial tool-call JSON is never acted upon.
"""

import asyncio
from typing import TYPE_CHECKING, Any, Callable

from tinyagent.agent.context import ContextAssembler
from tinyagent.agent.messages import (
    AssistantMessage,
    ConversationMessage,
    LLMCallTelemetry,
    RunResult,
    SystemMessage,
    ToolCallRequest,
    ToolCallTelemetry,
    UserMessage,
    now_ms,
    to_message,
    validate_conversation,
)
from tinyagent.agent.planner import Plan, parse_plan
from tinyagent.agent.prompts import (
    PLANNER_PROMPT,
    PROMPT_DESIGNER_SYSTEM_PROMPT,
    RAG_QUERIES_PROMPT,
    RECIPE_PROMPT,
    extract_system_prompt,
    get_plan_request,
    get_rag_queries_request,
    get_recipe_request,
    get_system_prompt_designer,
    parse_rag_queries,
)
from tinyagent.agent.tools_executor import InputCallback, ToolExecutor
from tinyagent.errors import CallTimeout, MalformedDesignerOutput
from tinyagent.utils.logger import Logger

if TYPE_CHECKING:
    from tinyagent.rag import RAGManager
    from tinyagent.tools.registry import ClientsRegistry

logger = Logger("Agent")


class TinyAgent:
    """
    The agent loop.

    Example:
        agent = TinyAgent(rag=rag)
        await agent.get_clients_registry().register(
            "stdio", "filesystem", "npx", ["-y", "@modelcontextprotocol/server-filesystem", "."]
        )

        result = await agent.run(
            client=AsyncOpenAI(),
            base_messages=[
                {"role": "system", "content": "You are a helpful assistant."},
                {"role": "user", "content": "List the files in the workspace"},
            ],
        )

        print(result.last_assistant_text())
    """

    # Derived operations make a single model call without tools
    DERIVED_MAX_INTERACTIONS = 1

    def __init__(
        self,
        registry: "ClientsRegistry | None" = None,
        rag: "RAGManager | None" = None,
        max_interactions: int = 10,
        model: str = "gpt-4o-mini",
        llm_timeout: float | None = None,
        completion_threshold: int = 2,
        rag_top_k: int = 5
    ):
        """
        Initialize the agent.

        Args:
            registry: Tool registry (a new empty one by default)
            rag: Optional RAG manager for context retrieval and recipes
            max_interactions: Model calls allowed per run
            model: Default chat model
            llm_timeout: Seconds allowed per model request; None waits forever
            completion_threshold: task_complete acknowledgements that end a run
            rag_top_k: Results retrieved per RAG query
        """
        if registry is None:
            from tinyagent.tools.registry import ClientsRegistry
            registry = ClientsRegistry()

        self.registry = registry
        self.rag = rag
        self.max_interactions = max_interactions
        self.model = model
        self.llm_timeout = llm_timeout
        self.completion_threshold = completion_threshold

        self.context_assembler = ContextAssembler(rag, top_k=rag_top_k)
        self.tool_executor = ToolExecutor(registry)

        logger.info(f"Agent initialized with model: {model}")

    def get_clients_registry(self) -> "ClientsRegistry":
        """The registry providers are registered on."""
        return self.registry

    async def run(
        self,
        client: Any,
        base_messages: list[ConversationMessage | dict],
        model: str | None = None,
        rag_queries: list[str] | None = None,
        on_stream_chunk: Callable[[str], None] | None = None,
        request_input_from_user: InputCallback | None = None,
        on_tool_call: Callable[[ToolCallRequest], None] | None = None,
        on_tool_call_result: Callable[[ToolCallTelemetry], None] | None = None,
        include_tools: bool = True,
        max_interactions: int | None = None
    ) -> RunResult:
        """
        Run the agent loop until the model is done or the budget runs out.

        Args:
            client: An openai.AsyncOpenAI (or compatible) client
            base_messages: Conversation prefix, message objects or OpenAI dicts
            model: Chat model for this run (defaults to the agent's)
            rag_queries: Knowledge base queries whose results are spliced in
            on_stream_chunk: Enables streaming; receives each text fragment
            request_input_from_user: Answers ask_question calls
            on_tool_call: Called before each tool call is executed
            on_tool_call_result: Called with each tool call's telemetry
            include_tools: Send the tool catalog to the model
            max_interactions: Override the agent's budget for this run

        Returns:
            RunResult with the full conversation and telemetry

        Raises:
            InvalidConversation: A base message answers no earlier tool call
            ToolNotFound: The model called a tool nobody provides
            MissingInputCallback: ask_question without request_input_from_user
            CallTimeout: llm_timeout elapsed on a model request
        """
        conversation = [to_message(m) for m in base_messages]
        validate_conversation(conversation)

        conversation = await self.context_assembler.assemble(conversation, rag_queries)

        tools: list[dict] = []
        if include_tools:
            catalog = await self.registry.get_tools()
            tools = [tool.to_openai_tool() for tool in catalog]
            logger.debug(f"Run started with {len(tools)} tools")

        budget = max_interactions if max_interactions is not None else self.max_interactions
        model = model or self.model

        llm_calls: list[LLMCallTelemetry] = []
        tool_calls: list[ToolCallTelemetry] = []
        interactions = 0
        acknowledgements = 0

        while interactions < budget and acknowledgements < self.completion_threshold:
            interactions += 1
            logger.debug(f"Interaction {interactions}/{budget}")

            telemetry = await self._call_model(client, model, conversation, tools, on_stream_chunk)
            llm_calls.append(telemetry)

            response = telemetry.response_message
            conversation.append(response)

            if not response.tool_calls:
                break

            for request in response.tool_calls:
                if on_tool_call is not None:
                    on_tool_call(request)

                outcome = await self.tool_executor.execute_one(request, request_input_from_user)
                if outcome.completion_acknowledged:
                    acknowledgements += 1

                tool_calls.append(outcome.telemetry)
                conversation.append(outcome.to_message())

                if on_tool_call_result is not None:
                    on_tool_call_result(outcome.telemetry)

        last = conversation[-1] if conversation else None
        answered = isinstance(last, AssistantMessage) and not last.tool_calls
        if not answered and acknowledgements < self.completion_threshold:
            logger.warning(f"Reached max interactions ({budget})")

        logger.info(
            f"Run finished: {len(llm_calls)} model calls, {len(tool_calls)} tool calls"
        )
        return RunResult(conversation=conversation, llm_calls=llm_calls, tool_calls=tool_calls)

    # ------------------------------------------------------------------
    # Model calls
    # ------------------------------------------------------------------

    async def _call_model(
        self,
        client: Any,
        model: str,
        conversation: list[ConversationMessage],
        tools: list[dict],
        on_stream_chunk: Callable[[str], None] | None
    ) -> LLMCallTelemetry:
        request_messages = tuple(m.to_dict() for m in conversation)
        params: dict[str, Any] = {"model": model, "messages": list(request_messages)}
        if tools:
            params["tools"] = tools
            params["tool_choice"] = "auto"

        start = now_ms()
        message = None
        streamed = False
        if on_stream_chunk is not None:
            message = await self._stream(client, params, on_stream_chunk)
            streamed = message is not None

        if message is None:
            response = await self._request(client, params)
            message = AssistantMessage.from_openai(response.choices[0].message)

        return LLMCallTelemetry(
            request_messages=request_messages,
            response_message=message,
            start_time=start,
            end_time=now_ms(),
            streamed=streamed,
        )

    async def _request(self, client: Any, params: dict[str, Any]) -> Any:
        call = client.chat.completions.create(**params)
        if self.llm_timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.llm_timeout)
        except asyncio.TimeoutError as e:
            raise CallTimeout(
                f"Model '{params['model']}' did not answer within {self.llm_timeout}s"
            ) from e

    async def _stream(
        self,
        client: Any,
        params: dict[str, Any],
        on_stream_chunk: Callable[[str], None]
    ) -> AssistantMessage | None:
        """
        Stream one turn.

        Returns:
            The assembled message, or None if the model started a tool call
        """
        stream = await self._request(client, {**params, "stream": True})
        parts: list[str] = []

        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta
            if getattr(delta, "tool_calls", None):
                logger.debug("Tool call in stream, re-requesting without streaming")
                await stream.close()
                return None
            if delta.content:
                on_stream_chunk(delta.content)
                parts.append(delta.content)

        return AssistantMessage(content="".join(parts))

    # ------------------------------------------------------------------
    # Derived operations
    # ------------------------------------------------------------------

    async def _complete(
        self,
        client: Any,
        system_prompt: str,
        user_prompt: str,
        model: str | None = None
    ) -> str | None:
        """One tool-less exchange; returns the assistant's text."""
        result = await self.run(
            client=client,
            base_messages=[SystemMessage(content=system_prompt), UserMessage(content=user_prompt)],
            model=model,
            include_tools=False,
            max_interactions=self.DERIVED_MAX_INTERACTIONS,
        )
        last = result.last_message
        if not isinstance(last, AssistantMessage):
            return None
        return last.content

    async def generate_system_prompt(
        self,
        client: Any,
        goal: str,
        context: str | None = None,
        model: str | None = None
    ) -> str:
        """
        Design a system prompt for an agent pursuing `goal`.

        Raises:
            MalformedDesignerOutput: If the reply is empty or lacks the prompt token
        """
        text = await self._complete(
            client,
            PROMPT_DESIGNER_SYSTEM_PROMPT,
            get_system_prompt_designer(goal, context),
            model,
        )
        if not text:
            raise MalformedDesignerOutput("The system prompt is empty.")
        return extract_system_prompt(text)

    async def generate_recipe(
        self,
        client: Any,
        conversation: list[ConversationMessage | dict],
        model: str | None = None
    ) -> str:
        """
        Summarize a finished task as a reusable markdown recipe.

        When a RAG manager is attached the recipe is also stored as a memory.
        """
        messages = [to_message(m).to_dict() for m in conversation]
        recipe = await self._complete(client, RECIPE_PROMPT, get_recipe_request(messages), model)
        recipe = recipe or ""

        if self.rag is not None and recipe.strip():
            memory_id = await self.rag.create_memory(recipe)
            logger.info(f"Recipe stored as memory {memory_id}")

        return recipe

    async def generate_rag_queries(
        self,
        client: Any,
        messages: list[ConversationMessage | dict],
        model: str | None = None,
        max_queries: int = 3
    ) -> list[str]:
        """Propose knowledge base queries for the conversation; [] if none."""
        conversation = [to_message(m).to_dict() for m in messages]
        text = await self._complete(
            client,
            RAG_QUERIES_PROMPT.format(max_queries=max_queries),
            get_rag_queries_request(conversation),
            model,
        )
        queries = parse_rag_queries(text, max_queries)
        if not queries:
            logger.debug("No RAG queries generated")
        return queries

    async def generate_plan(
        self,
        client: Any,
        messages: list[ConversationMessage | dict],
        model: str | None = None
    ) -> Plan:
        """
        Break the task in the conversation into steps.

        Raises:
            MalformedPlanOutput: If the reply is not a JSON step list
        """
        conversation = [to_message(m).to_dict() for m in messages]
        text = await self._complete(client, PLANNER_PROMPT, get_plan_request(conversation), model)
        plan = parse_plan(text)
        logger.info(f"Plan generated with {len(plan.steps)} steps")
        return plan
