"""
RAG (Retrieval Augmented Generation) System
============================================

A small knowledge base the agent can draw on before answering.

Two kinds of sources feed it:
- workspace files, kept in sync with a directory on disk
- memories, free-text snippets stored by the user or generated by the agent
  (for instance a recipe distilled from a finished task)

Ingestion:  text -> chunks (chunking.py) -> vectors (embeddings.py) -> store (vectorstore.py)
Retrieval:  query -> vector -> top-k most similar chunks

Components:
- chunking.py: recursive, overlap-aware text splitter
- embeddings.py: OpenAI and mock embedders
- vectorstore.py: local numpy-backed vector store
- adapters.py: text and PDF loaders
- indexer.py: workspace sync
- server.py: the knowledge base exposed as an MCP tool provider
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from tinyagent.rag.adapters import FileAdapter, PdfAdapter, TextAdapter
from tinyagent.rag.chunking import TextChunk, chunk_text, split_text
from tinyagent.rag.embeddings import Embedder, MockEmbedder, OpenAIEmbedder
from tinyagent.rag.indexer import SyncReport, WorkspaceIndexer
from tinyagent.rag.vectorstore import LocalVectorStore, MemoryRecord, VectorStore
from tinyagent.utils.config import Config
from tinyagent.utils.logger import Logger

logger = Logger("RAG")


@dataclass
class RAGResult:
    """
    A single search result.

    Attributes:
        content: The chunk text
        source: File path, or "memory" for stored memories
        score: Cosine similarity (higher is more similar)
    """
    content: str
    source: str
    score: float

    def to_dict(self) -> dict:
        return {"content": self.content, "source": self.source, "score": self.score}


class RAGManager:
    """
    Main interface for the RAG system.

    Example:
        rag = RAGManager(
            embedder=OpenAIEmbedder(api_key="sk-..."),
            vectorstore=LocalVectorStore(Path("data/vectorstore")),
            workspace_dir=Path("workspace"),
        )

        await rag.sync()
        memory_id = await rag.create_memory("The staging DB lives on db-2")

        for result in await rag.query("where is staging", k=3):
            print(f"[{result.source}] {result.content[:80]}")
    """

    def __init__(
        self,
        embedder: Embedder,
        vectorstore: VectorStore,
        workspace_dir: Path | None = None,
        adapters: list[FileAdapter] | None = None,
        chunk_size: int = 500,
        chunk_overlap: int | None = None
    ):
        """
        Initialize the RAG manager.

        Args:
            embedder: Embedding provider
            vectorstore: Chunk storage
            workspace_dir: Directory indexed by sync(); None disables file indexing
            adapters: File adapters (default: text + PDF)
            chunk_size: Maximum characters per chunk
            chunk_overlap: Characters shared between neighbouring chunks
        """
        self.embedder = embedder
        self.vectorstore = vectorstore
        self.workspace_dir = workspace_dir
        self.indexer = WorkspaceIndexer(
            embedder=embedder,
            vectorstore=vectorstore,
            adapters=adapters,
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
        )
        self._scheduler: AsyncIOScheduler | None = None

        logger.info("RAG system initialized")

    @classmethod
    def from_config(cls, config: Config) -> "RAGManager":
        """Build the RAG system from the application configuration."""
        embedder = OpenAIEmbedder(
            api_key=config.openai.api_key,
            model=config.openai.embedding_model,
            base_url=config.openai.base_url,
        )
        return cls(
            embedder=embedder,
            vectorstore=LocalVectorStore(config.storage.vectorstore_dir),
            workspace_dir=config.rag.workspace_dir if config.rag.filesystem_indexing else None,
            chunk_size=config.rag.chunk_size,
            chunk_overlap=config.rag.chunk_overlap,
        )

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def query(self, text: str, k: int = 5) -> list[RAGResult]:
        """
        Find the k chunks most similar to the text.

        Args:
            text: The search query
            k: Maximum number of results

        Returns:
            Results sorted by relevance
        """
        logger.debug(f"RAG query: '{text[:50]}'")

        [embedding] = await self.embedder.embed([text])
        rows = await self.vectorstore.query(embedding, k)

        return [RAGResult(content=r.content, source=r.source, score=r.score) for r in rows]

    def format_results_for_context(
        self,
        results: list[RAGResult],
        max_results: int | None = None
    ) -> str:
        """
        Format results as a context block for the model.

        Returns:
            The formatted block, or "" when there are no results
        """
        if not results:
            return ""

        selected = results if max_results is None else results[:max_results]
        lines = ["## Relevant context from the knowledge base"]
        for result in selected:
            lines.append(f"- [{result.source}] {result.content}")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Memories
    # ------------------------------------------------------------------

    async def create_memory(self, text: str) -> int:
        """
        Store a text snippet as a memory.

        Returns:
            The memory ID
        """
        chunks, embeddings = await self.indexer.prepare(text)

        memory_id = await self.vectorstore.upsert_memory(text, datetime.now())
        await self.vectorstore.insert_chunks_for_memory(memory_id, chunks, embeddings)

        logger.info(f"Indexed text as memory {memory_id} with {len(chunks)} chunks")
        return memory_id

    async def update_memory(self, memory_id: int, text: str) -> MemoryRecord | None:
        """
        Replace a memory's text and re-index it.

        Returns:
            The updated record, or None if the memory does not exist
        """
        if await self.vectorstore.get_memory_record(memory_id) is None:
            return None

        chunks, embeddings = await self.indexer.prepare(text)
        await self.vectorstore.upsert_memory(text, datetime.now(), memory_id=memory_id)
        await self.vectorstore.clear_chunks_for_memory(memory_id)
        await self.vectorstore.insert_chunks_for_memory(memory_id, chunks, embeddings)
        return await self.vectorstore.get_memory_record(memory_id)

    async def get_memory(self, memory_id: int) -> MemoryRecord | None:
        return await self.vectorstore.get_memory_record(memory_id)

    async def list_memories(self) -> list[MemoryRecord]:
        """All memories, newest first."""
        records = await self.vectorstore.get_all_memory_records()
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    async def delete_memory(self, memory_id: int) -> bool:
        """Delete a memory and its chunks; False if it did not exist."""
        if await self.vectorstore.get_memory_record(memory_id) is None:
            return False
        await self.vectorstore.delete_memory(memory_id)
        return True

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def index_file(self, file_path: Path) -> int | None:
        """Index a single file; None if it was skipped."""
        return await self.indexer.index_file(Path(file_path))

    async def sync(self) -> SyncReport:
        """Re-index new and modified workspace files, drop deleted ones."""
        if self.workspace_dir is None:
            logger.debug("No workspace directory configured, nothing to sync")
            return SyncReport()
        return await self.indexer.sync(self.workspace_dir)

    async def reindex_all(self) -> SyncReport:
        """Drop every record (memories included) and sync from scratch."""
        logger.info("Starting full re-index...")
        await self.vectorstore.delete_all_records()
        return await self.sync()

    def listen_for_changes(self, interval_minutes: int) -> None:
        """Re-sync the workspace in the background every interval_minutes."""
        if self._scheduler is not None:
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self._scheduled_sync,
            "interval",
            minutes=interval_minutes,
            id="rag-sync",
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info(f"Watching workspace, re-sync every {interval_minutes} minutes")

    def stop_listening(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None

    async def _scheduled_sync(self) -> None:
        try:
            await self.sync()
        except Exception as e:
            logger.error("Background workspace sync failed", e)


__all__ = [
    "RAGManager",
    "RAGResult",
    "Embedder",
    "OpenAIEmbedder",
    "MockEmbedder",
    "VectorStore",
    "LocalVectorStore",
    "MemoryRecord",
    "FileAdapter",
    "TextAdapter",
    "PdfAdapter",
    "WorkspaceIndexer",
    "SyncReport",
    "TextChunk",
    "chunk_text",
    "split_text",
]
