"""Tests for the TinyAgent loop, its streaming path and the derived operations."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from tinyagent.agent import AssistantMessage, SystemMessage, TinyAgent, ToolMessage, UserMessage
from tinyagent.errors import (
    CallTimeout,
    InvalidConversation,
    InvalidToolArguments,
    MalformedDesignerOutput,
    MalformedPlanOutput,
    MissingInputCallback,
    ToolNotFound,
)
from tinyagent.rag import RAGResult
from tinyagent.tools import ClientsRegistry
from tests.fakes import (
    FakeProvider,
    FakeStream,
    completion,
    fake_connectors,
    make_client,
    text_chunk,
    tool_call,
    tool_call_chunk,
    tool_def,
)


BASE = [
    {"role": "system", "content": "You are a helpful assistant."},
    {"role": "user", "content": "What is the weather in Paris?"},
]


# ═══════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════

@pytest.fixture
def weather():
    return FakeProvider("weather", tools=[tool_def("get_weather")], results={
        "get_weather": lambda args: {"content": [{"type": "text", "text": f"Sunny in {args.get('city')}"}]},
    })


@pytest.fixture
async def registry(weather):
    registry = ClientsRegistry(connectors=fake_connectors({"weather-cmd": weather}))
    await registry.register("stdio", "weather", "weather-cmd", [])
    return registry


@pytest.fixture
def agent(registry):
    return TinyAgent(registry=registry, max_interactions=10, model="test-model")


def weather_call(call_id="w1", city="Paris"):
    return tool_call(call_id, "get_weather", json.dumps({"city": city}))


# ═══════════════════════════════════════════════════════════════
# Loop termination
# ═══════════════════════════════════════════════════════════════

class TestRunTermination:

    async def test_plain_answer_is_one_call(self, agent):
        client = make_client([completion("It is sunny.")])

        result = await agent.run(client=client, base_messages=BASE)

        assert len(result.llm_calls) == 1
        assert result.tool_calls == []
        assert len(result.conversation) == 3
        assert result.last_assistant_text() == "It is sunny."

    async def test_tool_messages_follow_assistant_in_order(self, agent, weather):
        client = make_client([
            completion(tool_calls=[weather_call("w1", "Paris"), weather_call("w2", "Rome")]),
            completion("Sunny in both."),
        ])

        result = await agent.run(client=client, base_messages=BASE)

        assistant, first, second = result.conversation[2:5]
        assert isinstance(assistant, AssistantMessage)
        assert [tc.id for tc in assistant.tool_calls] == ["w1", "w2"]
        assert isinstance(first, ToolMessage) and first.tool_call_id == "w1"
        assert isinstance(second, ToolMessage) and second.tool_call_id == "w2"
        assert "Sunny in Paris" in first.content
        assert "Sunny in Rome" in second.content
        assert weather.calls == [("get_weather", {"city": "Paris"}), ("get_weather", {"city": "Rome"})]
        assert result.last_assistant_text() == "Sunny in both."

    async def test_budget_of_one_stops_after_tools(self, agent, weather):
        client = make_client([completion(tool_calls=[weather_call()])])

        result = await agent.run(client=client, base_messages=BASE, max_interactions=1)

        assert len(result.llm_calls) == 1
        assert len(result.tool_calls) == 1
        assert isinstance(result.last_message, ToolMessage)
        assert len(weather.calls) == 1

    async def test_budget_is_never_exceeded(self, agent):
        client = make_client(lambda params: completion(tool_calls=[weather_call()]))

        result = await agent.run(client=client, base_messages=BASE, max_interactions=3)

        assert len(client.chat.completions.calls) == 3
        assert len(result.llm_calls) == 3

    async def test_two_completion_acknowledgements_end_the_run(self, agent):
        client = make_client([
            completion(tool_calls=[tool_call("t1", "task_complete")]),
            completion(tool_calls=[tool_call("t2", "task_complete")]),
            completion("never requested"),
        ])

        result = await agent.run(client=client, base_messages=BASE)

        assert len(result.llm_calls) == 2
        assert [t.tool_name for t in result.tool_calls] == ["task_complete", "task_complete"]
        assert all(t.result == "" for t in result.tool_calls)
        assert isinstance(result.last_message, ToolMessage)

    async def test_completion_threshold_is_tunable(self, registry):
        agent = TinyAgent(registry=registry, completion_threshold=1)
        client = make_client([completion(tool_calls=[tool_call("t1", "task_complete")])])

        result = await agent.run(client=client, base_messages=BASE)

        assert len(result.llm_calls) == 1

    async def test_input_messages_are_not_mutated(self, agent):
        base = [dict(m) for m in BASE]
        client = make_client([completion(tool_calls=[weather_call()]), completion("done")])

        await agent.run(client=client, base_messages=base)

        assert base == BASE


# ═══════════════════════════════════════════════════════════════
# Tools sent to the model
# ═══════════════════════════════════════════════════════════════

class TestToolCatalog:

    async def test_catalog_sent_with_auto_choice(self, agent):
        client = make_client([completion("ok")])

        await agent.run(client=client, base_messages=BASE)

        params = client.chat.completions.calls[0]
        assert params["model"] == "test-model"
        assert params["tool_choice"] == "auto"
        assert [t["function"]["name"] for t in params["tools"]] == [
            "task_complete", "ask_question", "get_weather",
        ]

    async def test_without_tools_no_tool_fields(self, agent):
        client = make_client([completion("ok")])

        await agent.run(client=client, base_messages=BASE, include_tools=False, model="other")

        params = client.chat.completions.calls[0]
        assert params["model"] == "other"
        assert "tools" not in params
        assert "tool_choice" not in params

    async def test_catalog_fetched_once_per_run(self, agent, registry):
        registry.get_tools = AsyncMock(wraps=registry.get_tools)
        client = make_client([
            completion(tool_calls=[tool_call("t1", "task_complete")]),
            completion("done"),
        ])

        await agent.run(client=client, base_messages=BASE)

        assert registry.get_tools.await_count == 1


# ═══════════════════════════════════════════════════════════════
# Built-in tools and errors
# ═══════════════════════════════════════════════════════════════

class TestBuiltinsAndErrors:

    async def test_ask_question_uses_the_callback(self, agent):
        ask = AsyncMock(return_value="Celsius please")
        client = make_client([
            completion(tool_calls=[tool_call("q1", "ask_question", '{"questions": "Which unit?"}')]),
            completion("20 degrees"),
        ])

        result = await agent.run(client=client, base_messages=BASE, request_input_from_user=ask)

        ask.assert_awaited_once_with("Which unit?")
        answer = result.conversation[3]
        assert isinstance(answer, ToolMessage)
        assert json.loads(answer.content) == "Celsius please"
        assert result.tool_calls[0].result == "Celsius please"

    async def test_ask_question_without_callback_fails(self, agent):
        client = make_client([
            completion(tool_calls=[tool_call("q1", "ask_question", '{"questions": "Which unit?"}')]),
        ])

        with pytest.raises(MissingInputCallback, match="request_input_from_user"):
            await agent.run(client=client, base_messages=BASE)

    @pytest.mark.parametrize("arguments", ['"what?"', "[]", "not json"])
    async def test_ask_question_with_non_object_arguments_fails(self, agent, arguments):
        ask = AsyncMock(return_value="Celsius please")
        client = make_client([
            completion(tool_calls=[tool_call("q1", "ask_question", arguments)]),
        ])

        with pytest.raises(InvalidToolArguments) as exc_info:
            await agent.run(client=client, base_messages=BASE, request_input_from_user=ask)

        assert exc_info.value.tool_name == "ask_question"
        ask.assert_not_awaited()

    async def test_unknown_tool_aborts_the_run(self, agent):
        client = make_client([completion(tool_calls=[tool_call("x1", "launch_rocket")])])

        with pytest.raises(ToolNotFound):
            await agent.run(client=client, base_messages=BASE)

    async def test_orphan_tool_message_is_rejected(self, agent):
        client = make_client([completion("ok")])
        base = BASE + [{"role": "tool", "tool_call_id": "nope", "content": "{}"}]

        with pytest.raises(InvalidConversation):
            await agent.run(client=client, base_messages=base)
        assert client.chat.completions.calls == []

    async def test_llm_timeout(self, registry):
        agent = TinyAgent(registry=registry, llm_timeout=0.01)

        async def hang(**params):
            await asyncio.sleep(1)

        client = make_client([])
        client.chat.completions.create = hang

        with pytest.raises(CallTimeout):
            await agent.run(client=client, base_messages=BASE)


# ═══════════════════════════════════════════════════════════════
# Callbacks and telemetry
# ═══════════════════════════════════════════════════════════════

class TestTelemetry:

    async def test_tool_callbacks_fire_in_order(self, agent):
        events = []
        client = make_client([completion(tool_calls=[weather_call()]), completion("done")])

        await agent.run(
            client=client,
            base_messages=BASE,
            on_tool_call=lambda request: events.append(("call", request.name)),
            on_tool_call_result=lambda telemetry: events.append(("result", telemetry.tool_name)),
        )

        assert events == [("call", "get_weather"), ("result", "get_weather")]

    async def test_llm_telemetry_snapshots_request(self, agent):
        client = make_client([completion(tool_calls=[weather_call()]), completion("done")])

        result = await agent.run(client=client, base_messages=BASE)

        first, second = result.llm_calls
        assert len(first.request_messages) == 2
        assert len(second.request_messages) == 4
        assert first.end_time >= first.start_time
        assert second.response_message.content == "done"

    async def test_tool_telemetry_records_params_and_result(self, agent):
        client = make_client([completion(tool_calls=[weather_call(city="Oslo")]), completion("done")])

        result = await agent.run(client=client, base_messages=BASE)

        telemetry = result.tool_calls[0]
        assert telemetry.tool_call_id == "w1"
        assert telemetry.params == {"city": "Oslo"}
        assert telemetry.result["content"][0]["text"] == "Sunny in Oslo"
        assert telemetry.to_dict()["durationMs"] >= 0


# ═══════════════════════════════════════════════════════════════
# Streaming
# ═══════════════════════════════════════════════════════════════

class TestStreaming:

    async def test_text_is_forwarded_as_it_arrives(self, agent):
        stream = FakeStream([text_chunk("Sunny "), text_chunk("today.")])
        client = make_client([stream])
        chunks = []

        result = await agent.run(client=client, base_messages=BASE, on_stream_chunk=chunks.append)

        assert chunks == ["Sunny ", "today."]
        assert result.last_assistant_text() == "Sunny today."
        assert result.llm_calls[0].streamed
        assert client.chat.completions.calls[0]["stream"] is True

    async def test_tool_call_in_stream_falls_back(self, agent, weather):
        stream = FakeStream([tool_call_chunk()])
        responses = [stream, completion(tool_calls=[weather_call()]), FakeStream([text_chunk("done")])]
        client = make_client(responses)

        result = await agent.run(client=client, base_messages=BASE, on_stream_chunk=lambda text: None)

        calls = client.chat.completions.calls
        assert calls[0]["stream"] is True
        assert "stream" not in calls[1]
        assert stream.closed
        assert not result.llm_calls[0].streamed
        assert result.llm_calls[1].streamed
        assert len(weather.calls) == 1
        assert result.last_assistant_text() == "done"


# ═══════════════════════════════════════════════════════════════
# Retrieved context
# ═══════════════════════════════════════════════════════════════

class TestRagContext:

    @pytest.fixture
    def rag(self):
        rag = MagicMock()
        rag.query = AsyncMock(return_value=[RAGResult(content="Paris is sunny", source="notes.md", score=0.9)])
        rag.format_results_for_context = MagicMock(return_value="CONTEXT")
        return rag

    async def test_context_follows_the_first_system_message(self, registry, rag):
        agent = TinyAgent(registry=registry, rag=rag)
        client = make_client([completion("ok")])

        result = await agent.run(client=client, base_messages=BASE, rag_queries=["weather"])

        assert isinstance(result.conversation[1], SystemMessage)
        assert result.conversation[1].content == "CONTEXT"
        assert isinstance(result.conversation[2], UserMessage)
        rag.query.assert_awaited_once_with("weather", 5)

    async def test_context_goes_first_without_system_message(self, registry, rag):
        agent = TinyAgent(registry=registry, rag=rag)
        client = make_client([completion("ok")])

        result = await agent.run(client=client, base_messages=BASE[1:], rag_queries=["weather"])

        assert result.conversation[0].content == "CONTEXT"

    async def test_no_queries_means_no_retrieval(self, registry, rag):
        agent = TinyAgent(registry=registry, rag=rag)
        client = make_client([completion("ok")])

        result = await agent.run(client=client, base_messages=BASE)

        rag.query.assert_not_awaited()
        assert len(result.conversation) == 3

    async def test_retrieval_errors_are_ignored(self, registry, rag):
        rag.query = AsyncMock(side_effect=RuntimeError("index offline"))
        agent = TinyAgent(registry=registry, rag=rag)
        client = make_client([completion("ok")])

        result = await agent.run(client=client, base_messages=BASE, rag_queries=["weather"])

        assert len(client.chat.completions.calls[0]["messages"]) == 2
        assert result.last_assistant_text() == "ok"


# ═══════════════════════════════════════════════════════════════
# Derived operations
# ═══════════════════════════════════════════════════════════════

class TestDerivedOperations:

    async def test_generate_system_prompt(self, agent):
        client = make_client([completion("Thinking...\nAGENT_SYSTEM_PROMPT\nYou are a travel agent.")])

        prompt = await agent.generate_system_prompt(client, "Book trips")

        assert prompt == "You are a travel agent."
        params = client.chat.completions.calls[0]
        assert "tools" not in params
        assert "Book trips" in params["messages"][1]["content"]

    async def test_generate_system_prompt_rejects_missing_token(self, agent):
        client = make_client([completion("You are a travel agent.")])

        with pytest.raises(MalformedDesignerOutput):
            await agent.generate_system_prompt(client, "Book trips")

    async def test_generate_system_prompt_rejects_empty_reply(self, agent):
        client = make_client([completion(None)])

        with pytest.raises(MalformedDesignerOutput, match="empty"):
            await agent.generate_system_prompt(client, "Book trips")

    async def test_generate_recipe_stores_memory(self, registry):
        rag = MagicMock()
        rag.create_memory = AsyncMock(return_value=1)
        agent = TinyAgent(registry=registry, rag=rag)
        client = make_client([completion("# Recipe\n1. Check the weather")])

        recipe = await agent.generate_recipe(client, BASE)

        assert recipe == "# Recipe\n1. Check the weather"
        rag.create_memory.assert_awaited_once_with(recipe)

    async def test_generate_recipe_without_rag(self, agent):
        client = make_client([completion("# Recipe")])

        assert await agent.generate_recipe(client, BASE) == "# Recipe"

    async def test_generate_rag_queries(self, agent):
        client = make_client([completion('```json\n["paris weather", "", "forecast", "extra"]\n```')])

        queries = await agent.generate_rag_queries(client, BASE, max_queries=2)

        assert queries == ["paris weather", "forecast"]

    async def test_generate_rag_queries_tolerates_garbage(self, agent):
        client = make_client([completion("I do not know")])

        assert await agent.generate_rag_queries(client, BASE) == []

    async def test_generate_plan(self, agent):
        plan_json = json.dumps({"steps": [
            {"step_number": 1, "system_prompt": "You research.", "user_prompt": "Find flights"},
            {"step_number": 2, "system_prompt": "You book.", "user_prompt": "Book the cheapest"},
        ]})
        client = make_client([completion(plan_json)])

        plan = await agent.generate_plan(client, BASE)

        assert [s.user_prompt for s in plan.steps] == ["Find flights", "Book the cheapest"]

    async def test_generate_plan_rejects_prose(self, agent):
        client = make_client([completion("First, find flights.")])

        with pytest.raises(MalformedPlanOutput):
            await agent.generate_plan(client, BASE)
