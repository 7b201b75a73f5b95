"""Test doubles for the OpenAI client, tool providers and embedders."""

from types import SimpleNamespace
from typing import Any, Callable


# ═══════════════════════════════════════════════════════════════
# OpenAI chat completions
# ═══════════════════════════════════════════════════════════════

def tool_call(call_id: str, name: str, arguments: str = "{}") -> SimpleNamespace:
    return SimpleNamespace(
        id=call_id,
        type="function",
        function=SimpleNamespace(name=name, arguments=arguments),
    )


def completion(content: str | None = None, tool_calls: list | None = None) -> SimpleNamespace:
    """A non-streaming chat completion response."""
    message = SimpleNamespace(role="assistant", content=content, tool_calls=tool_calls or None)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def text_chunk(text: str) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text, tool_calls=None))])


def tool_call_chunk() -> SimpleNamespace:
    partial = [SimpleNamespace(index=0, id="call-x", function=SimpleNamespace(name="hel", arguments=""))]
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=None, tool_calls=partial))])


class FakeStream:
    """Async iterator over stream chunks, recording whether it was closed."""

    def __init__(self, chunks: list):
        self._chunks = list(chunks)
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._chunks:
            raise StopAsyncIteration
        return self._chunks.pop(0)

    async def close(self) -> None:
        self.closed = True


class FakeCompletions:
    """
    Stand-in for client.chat.completions.

    Responses are served in order; a callable is invoked with the request
    parameters instead. Every request is recorded in `calls`.
    """

    def __init__(self, responses: list | Callable[[dict], Any]):
        self._responses = responses if callable(responses) else list(responses)
        self.calls: list[dict] = []

    async def create(self, **params: Any) -> Any:
        self.calls.append(params)
        if callable(self._responses):
            return self._responses(params)
        return self._responses.pop(0)


def make_client(responses: list | Callable[[dict], Any]) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions(responses)))


# ═══════════════════════════════════════════════════════════════
# Tool providers
# ═══════════════════════════════════════════════════════════════

class FakeProvider:
    """In-process tool provider."""

    def __init__(self, name: str, tools: list[dict] | None = None, results: dict | None = None):
        self.name = name
        self.tools = list(tools or [])
        self.results = dict(results or {})
        self.calls: list[tuple[str, dict]] = []
        self.closed = False
        self.list_error: Exception | None = None

    async def list_tools(self) -> list[dict]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.tools)

    async def call_tool(self, name: str, arguments: dict) -> Any:
        self.calls.append((name, arguments))
        result = self.results.get(name, {"content": [{"type": "text", "text": f"{name} ok"}]})
        return result(arguments) if callable(result) else result

    async def close(self) -> None:
        self.closed = True


def tool_def(name: str, description: str = "", schema: dict | None = None) -> dict:
    return {
        "name": name,
        "description": description or f"The {name} tool",
        "inputSchema": schema or {"type": "object", "properties": {}},
    }


def fake_connectors(providers: dict[str, FakeProvider]) -> dict:
    """A "stdio" connector that hands out providers keyed by command."""

    async def connect(name: str, command: str, args: list[str], env: dict[str, str]) -> FakeProvider:
        provider = providers[command]
        provider.name = name
        return provider

    return {"stdio": connect}


# ═══════════════════════════════════════════════════════════════
# Embeddings
# ═══════════════════════════════════════════════════════════════

class KeywordEmbedder:
    """
    Embeds text as keyword counts, so similarity follows shared words.

    Good enough to make retrieval order predictable in tests.
    """

    def __init__(self, vocabulary: list[str]):
        self.vocabulary = [word.lower() for word in vocabulary]
        self.calls: list[list[str]] = []

    async def embed(self, texts):
        self.calls.append(list(texts))
        vectors = []
        for text in texts:
            lowered = text.lower()
            vector = [float(lowered.count(word)) for word in self.vocabulary]
            # Keep every vector non-zero so cosine similarity is defined
            vector.append(0.01)
            vectors.append(vector)
        return vectors
