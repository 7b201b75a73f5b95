"""Tests for the RAG facade, workspace sync and the memory tool server."""

import os
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from tinyagent.rag import LocalVectorStore, MockEmbedder, RAGManager, RAGResult
from tinyagent.rag.embeddings import OpenAIEmbedder
from tinyagent.rag import server
from tests.fakes import KeywordEmbedder


VOCABULARY = ["deploy", "database", "tuesday", "staging", "coffee"]


# ═══════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════

@pytest.fixture
def embedder():
    return KeywordEmbedder(VOCABULARY)


@pytest.fixture
def rag(embedder):
    return RAGManager(embedder=embedder, vectorstore=LocalVectorStore(), chunk_size=200)


@pytest.fixture
def workspace(tmp_path):
    directory = tmp_path / "workspace"
    directory.mkdir()
    (directory / "deploy.md").write_text("We deploy to staging every tuesday.")
    (directory / "notes.txt").write_text("The database backup runs nightly.")
    (directory / "image.png").write_bytes(b"\x89PNG")
    return directory


@pytest.fixture
def workspace_rag(embedder, workspace):
    return RAGManager(
        embedder=embedder,
        vectorstore=LocalVectorStore(),
        workspace_dir=workspace,
        chunk_size=200,
    )


# ═══════════════════════════════════════════════════════════════
# Embeddings
# ═══════════════════════════════════════════════════════════════

class TestOpenAIEmbedder:

    @pytest.fixture
    def client(self):
        async def create(model, input):
            return SimpleNamespace(data=[SimpleNamespace(embedding=[float(len(t))]) for t in input])

        client = MagicMock()
        client.embeddings.create = AsyncMock(side_effect=create)
        return client

    async def test_only_unseen_texts_are_sent(self, client):
        embedder = OpenAIEmbedder(api_key="sk-test", client=client)

        first = await embedder.embed(["ab", "abc", "ab"])
        second = await embedder.embed(["abc", "abcd"])

        assert first == [[2.0], [3.0], [2.0]]
        assert second == [[3.0], [4.0]]
        sent = [call.kwargs["input"] for call in client.embeddings.create.await_args_list]
        assert sent == [["ab", "abc"], ["abcd"]]

    async def test_fully_cached_batch_makes_no_request(self, client):
        embedder = OpenAIEmbedder(api_key="sk-test", client=client)
        await embedder.embed(["ab"])

        assert await embedder.embed(["ab"]) == [[2.0]]
        assert client.embeddings.create.await_count == 1

    async def test_mock_embedder_is_deterministic(self):
        embedder = MockEmbedder(vector_size=8)

        first, again, other = await embedder.embed(["hello", "hello", "world"])

        assert first == again
        assert first != other
        assert len(first) == 8


# ═══════════════════════════════════════════════════════════════
# Memories
# ═══════════════════════════════════════════════════════════════

class TestMemories:

    async def test_created_memory_is_retrievable(self, rag):
        await rag.create_memory("Coffee machine is on the third floor")
        memory_id = await rag.create_memory("The staging database lives on db-2")

        [top, *_] = await rag.query("where is the staging database?", k=2)

        assert top.content == "The staging database lives on db-2"
        assert top.source == "memory"
        assert (await rag.get_memory(memory_id)).text == "The staging database lives on db-2"

    async def test_update_replaces_chunks(self, rag):
        memory_id = await rag.create_memory("deploy on tuesday")

        record = await rag.update_memory(memory_id, "deploy on staging")

        assert record.text == "deploy on staging"
        results = await rag.query("deploy", k=5)
        assert [r.content for r in results] == ["deploy on staging"]

    async def test_update_unknown_memory(self, rag):
        assert await rag.update_memory(42, "anything") is None

    async def test_delete_memory(self, rag):
        memory_id = await rag.create_memory("coffee")

        assert await rag.delete_memory(memory_id) is True
        assert await rag.delete_memory(memory_id) is False
        assert await rag.query("coffee") == []

    async def test_list_memories_newest_first(self, rag):
        first = await rag.create_memory("first")
        second = await rag.create_memory("second")
        (await rag.get_memory(first)).created_at = datetime(2024, 1, 1)
        (await rag.get_memory(second)).created_at = datetime(2024, 6, 1)

        assert [record.id for record in await rag.list_memories()] == [second, first]

    async def test_long_memory_is_chunked(self, rag, embedder):
        text = " ".join(["deploy"] * 100)

        await rag.create_memory(text)

        assert len(embedder.calls[-1]) > 1
        assert all(len(chunk) <= 200 for chunk in embedder.calls[-1])


# ═══════════════════════════════════════════════════════════════
# Context formatting
# ═══════════════════════════════════════════════════════════════

class TestFormatResults:

    def test_no_results_is_empty(self, rag):
        assert rag.format_results_for_context([]) == ""

    def test_results_listed_with_sources(self, rag):
        results = [
            RAGResult(content="Deploy on tuesday", source="deploy.md", score=0.9),
            RAGResult(content="db-2", source="memory", score=0.5),
        ]

        text = rag.format_results_for_context(results, max_results=1)

        assert text.splitlines() == [
            "## Relevant context from the knowledge base",
            "- [deploy.md] Deploy on tuesday",
        ]


# ═══════════════════════════════════════════════════════════════
# Workspace sync
# ═══════════════════════════════════════════════════════════════

class TestSync:

    async def test_indexes_supported_files(self, workspace_rag, workspace):
        report = await workspace_rag.sync()

        assert sorted(report.indexed) == [str(workspace / "deploy.md"), str(workspace / "notes.txt")]
        assert report.skipped == [str(workspace / "image.png")]

        [top] = await workspace_rag.query("database", k=1)
        assert top.source == str(workspace / "notes.txt")

    async def test_unchanged_files_are_skipped(self, workspace_rag, workspace, embedder):
        await workspace_rag.sync()
        calls_after_first_sync = len(embedder.calls)

        report = await workspace_rag.sync()

        assert report.indexed == []
        assert len(embedder.calls) == calls_after_first_sync

    async def test_modified_file_is_reindexed(self, workspace_rag, workspace):
        await workspace_rag.sync()
        path = workspace / "notes.txt"
        path.write_text("Coffee beans arrive on tuesday.")
        stat = path.stat()
        os.utime(path, (stat.st_atime, stat.st_mtime + 10))

        report = await workspace_rag.sync()

        assert report.indexed == [str(path)]
        [top] = await workspace_rag.query("coffee", k=1)
        assert top.content == "Coffee beans arrive on tuesday."

    async def test_deleted_file_is_deindexed(self, workspace_rag, workspace):
        await workspace_rag.sync()
        (workspace / "deploy.md").unlink()

        report = await workspace_rag.sync()

        assert report.deleted == [str(workspace / "deploy.md")]
        sources = {r.source for r in await workspace_rag.query("deploy", k=10)}
        assert str(workspace / "deploy.md") not in sources

    async def test_without_workspace_sync_does_nothing(self, rag):
        report = await rag.sync()

        assert report.indexed == report.skipped == report.deleted == []

    async def test_reindex_all_drops_memories(self, workspace_rag):
        await workspace_rag.create_memory("coffee")

        report = await workspace_rag.reindex_all()

        assert len(report.indexed) == 2
        assert await workspace_rag.list_memories() == []

    async def test_listen_for_changes_schedules_one_job(self, workspace_rag):
        workspace_rag.listen_for_changes(5)
        try:
            jobs = workspace_rag._scheduler.get_jobs()
            assert [job.id for job in jobs] == ["rag-sync"]
        finally:
            workspace_rag.stop_listening()

        assert workspace_rag._scheduler is None


# ═══════════════════════════════════════════════════════════════
# Memory tool server
# ═══════════════════════════════════════════════════════════════

class TestMemoryServer:

    @pytest.fixture(autouse=True)
    def server_rag(self):
        rag = RAGManager(embedder=MockEmbedder(vector_size=16), vectorstore=LocalVectorStore())
        server.set_rag(rag)
        yield rag
        server.set_rag(None)

    async def test_tools_are_listed(self):
        tools = await server.mcp.list_tools()

        assert sorted(tool.name for tool in tools) == ["retrieve_memory", "store_memory"]

    async def test_store_then_retrieve(self, server_rag):
        assert await server.store_memory("Deploys happen on Tuesdays") == server.STORED_MESSAGE

        assert await server.retrieve_memory("Deploys happen on Tuesdays", limit=1) == [
            "Deploys happen on Tuesdays"
        ]
        assert len(await server_rag.list_memories()) == 1

    async def test_retrieve_from_empty_store(self):
        assert await server.retrieve_memory("anything") == []
