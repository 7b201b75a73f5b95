"""
Vector Store
============

Stores text chunks with their embeddings and answers similarity queries.

Every chunk belongs to exactly one source record:
- a file record (an indexed workspace file, keyed by path)
- a memory record (a free-text snippet stored by the user or the agent)

Deleting a record deletes its chunks. Re-indexing a source clears its chunks
and inserts the new ones, so a source never has stale chunks mixed with
fresh ones.

LocalVectorStore keeps everything in memory and persists to two files:
- records.json: file records, memory records, chunk text and metadata
- embeddings.npy: the chunk embeddings as one numpy matrix, in chunk order

Several processes may open the same directory (the chat and the memory tool
server both do). Every operation takes an inter-process file lock and first
reloads the files if another process saved since this one last looked, so
records and id counters stay shared instead of overwriting each other. A
revision token written on each save tells whether a reload is needed.

Search is brute-force cosine similarity:

    cos(A, B) = (A · B) / (||A|| * ||B||)

which is plenty for a personal knowledge base of thousands of chunks.
"""

import asyncio
import json
import os
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Protocol

import numpy as np
from filelock import FileLock

from tinyagent.utils.logger import Logger

logger = Logger("VectorStore")

MEMORY_SOURCE = "memory"


@dataclass
class FileRecord:
    id: int
    path: str
    last_modified: datetime
    last_indexed: datetime = field(default_factory=datetime.now)


@dataclass
class MemoryRecord:
    id: int
    text: str
    last_modified: datetime
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "last_modified": self.last_modified.isoformat(),
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class StoredChunk:
    id: int
    chunk_index: int
    content: str
    embedding: list[float]
    file_id: int | None = None
    memory_id: int | None = None


@dataclass
class QueryResult:
    """A chunk ranked by similarity to the query (score: higher is closer)."""
    id: int
    source: str
    content: str
    score: float


class VectorStore(Protocol):
    """Storage interface used by the RAG manager."""

    async def upsert_file(self, file_path: str, last_modified: datetime) -> int: ...
    async def delete_file(self, file_id: int) -> None: ...
    async def delete_file_by_path(self, file_path: str) -> None: ...
    async def upsert_memory(
        self, text: str, last_modified: datetime, memory_id: int | None = None
    ) -> int: ...
    async def delete_memory(self, memory_id: int) -> None: ...
    async def clear_chunks_for_file(self, file_id: int) -> None: ...
    async def clear_chunks_for_memory(self, memory_id: int) -> None: ...
    async def insert_chunks_for_file(
        self, file_id: int, chunks: list[str], embeddings: list[list[float]]
    ) -> None: ...
    async def insert_chunks_for_memory(
        self, memory_id: int, chunks: list[str], embeddings: list[list[float]]
    ) -> None: ...
    async def query(self, embedding: list[float], k: int) -> list[QueryResult]: ...
    async def get_file_record(self, file_path: str) -> FileRecord | None: ...
    async def get_memory_record(self, memory_id: int) -> MemoryRecord | None: ...
    async def get_all_file_records(self) -> list[FileRecord]: ...
    async def get_all_memory_records(self) -> list[MemoryRecord]: ...
    async def delete_all_records(self) -> None: ...


class LocalVectorStore:
    """
    File-backed vector store with cosine similarity search.

    Example:
        store = LocalVectorStore(Path("data/vectorstore"))

        memory_id = await store.upsert_memory("Deploys happen on Tuesdays", datetime.now())
        await store.insert_chunks_for_memory(memory_id, ["Deploys happen on Tuesdays"], [vector])

        results = await store.query(query_vector, k=5)
    """

    def __init__(self, storage_path: Path | None = None, lock_timeout: float = 30.0):
        """
        Initialize the store.

        Args:
            storage_path: Directory for the data files; None keeps everything in memory
            lock_timeout: Seconds to wait for another process holding the directory
        """
        self.storage_path = storage_path

        self._reset()

        # Serializes coroutines of this process; the file lock covers other processes
        self._lock = asyncio.Lock()
        self._file_lock: FileLock | None = None
        self._revision: str | None = None
        self._loaded = False

        if storage_path is not None:
            storage_path.mkdir(parents=True, exist_ok=True)
            self._file_lock = FileLock(str(storage_path / ".lock"), timeout=lock_timeout)
            with self._file_lock:
                self._refresh()

        logger.info(
            f"Vector store initialized with {len(self._files)} files, "
            f"{len(self._memories)} memories, {len(self._chunks)} chunks"
        )

    def _reset(self) -> None:
        self._files: dict[int, FileRecord] = {}
        self._memories: dict[int, MemoryRecord] = {}
        self._chunks: dict[int, StoredChunk] = {}
        self._next_ids = {"file": 1, "memory": 1, "chunk": 1}

        # Rebuilt lazily after any chunk change
        self._matrix: np.ndarray | None = None
        self._matrix_ids: list[int] = []

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @property
    def _records_file(self) -> Path:
        return self.storage_path / "records.json"

    @property
    def _embeddings_file(self) -> Path:
        return self.storage_path / "embeddings.npy"

    @property
    def _revision_file(self) -> Path:
        return self.storage_path / "revision"

    @contextmanager
    def _shared(self):
        """Hold the directory lock with the in-memory state up to date."""
        if self._file_lock is None:
            yield
            return
        with self._file_lock:
            self._refresh()
            yield

    def _refresh(self) -> None:
        """Reload from disk if another process saved since we last did."""
        revision = self._revision_file.read_text() if self._revision_file.exists() else None
        if self._loaded and revision == self._revision:
            return
        self._reset()
        self._load()
        self._revision = revision
        self._loaded = True

    def _load(self) -> None:
        if not self._records_file.exists():
            return

        with open(self._records_file) as f:
            data = json.load(f)

        for item in data.get("files", []):
            record = FileRecord(
                id=item["id"],
                path=item["path"],
                last_modified=datetime.fromisoformat(item["last_modified"]),
                last_indexed=datetime.fromisoformat(item["last_indexed"]),
            )
            self._files[record.id] = record

        for item in data.get("memories", []):
            record = MemoryRecord(
                id=item["id"],
                text=item["text"],
                last_modified=datetime.fromisoformat(item["last_modified"]),
                created_at=datetime.fromisoformat(item["created_at"]),
            )
            self._memories[record.id] = record

        chunk_items = data.get("chunks", [])
        embeddings = np.load(self._embeddings_file) if chunk_items else np.empty((0, 0))
        for item, embedding in zip(chunk_items, embeddings):
            chunk = StoredChunk(
                id=item["id"],
                chunk_index=item["chunk_index"],
                content=item["content"],
                embedding=embedding.tolist(),
                file_id=item.get("file_id"),
                memory_id=item.get("memory_id"),
            )
            self._chunks[chunk.id] = chunk

        self._next_ids.update(data.get("next_ids", {}))
        logger.debug(f"Loaded {len(self._chunks)} chunks from disk")

    def _write(self, target: Path, write) -> None:
        # Write beside the target, then swap it in whole
        temporary = target.with_name(target.name + ".tmp")
        with open(temporary, "wb") as f:
            write(f)
        os.replace(temporary, target)

    def _save(self) -> None:
        if self.storage_path is None:
            return

        chunks = list(self._chunks.values())
        data = {
            "files": [
                {
                    "id": r.id,
                    "path": r.path,
                    "last_modified": r.last_modified.isoformat(),
                    "last_indexed": r.last_indexed.isoformat(),
                }
                for r in self._files.values()
            ],
            "memories": [r.to_dict() for r in self._memories.values()],
            "chunks": [
                {
                    "id": c.id,
                    "chunk_index": c.chunk_index,
                    "content": c.content,
                    "file_id": c.file_id,
                    "memory_id": c.memory_id,
                }
                for c in chunks
            ],
            "next_ids": self._next_ids,
        }

        if chunks:
            matrix = np.array([c.embedding for c in chunks], dtype=np.float64)
            self._write(self._embeddings_file, lambda f: np.save(f, matrix))
        elif self._embeddings_file.exists():
            self._embeddings_file.unlink()

        self._write(self._records_file, lambda f: f.write(json.dumps(data).encode()))

        self._revision = uuid.uuid4().hex
        self._write(self._revision_file, lambda f: f.write(self._revision.encode()))

    def _next_id(self, kind: str) -> int:
        value = self._next_ids[kind]
        self._next_ids[kind] = value + 1
        return value

    def _invalidate(self) -> None:
        self._matrix = None
        self._matrix_ids = []

    # ------------------------------------------------------------------
    # File records
    # ------------------------------------------------------------------

    async def upsert_file(self, file_path: str, last_modified: datetime) -> int:
        async with self._lock:
            with self._shared():
                existing = self._find_file(file_path)
                if existing is not None:
                    existing.last_modified = last_modified
                    existing.last_indexed = datetime.now()
                    record_id = existing.id
                else:
                    record_id = self._next_id("file")
                    self._files[record_id] = FileRecord(
                        id=record_id, path=file_path, last_modified=last_modified
                    )
                self._save()
                return record_id

    def _find_file(self, file_path: str) -> FileRecord | None:
        return next((r for r in self._files.values() if r.path == file_path), None)

    def _remove_file(self, file_id: int) -> None:
        self._files.pop(file_id, None)
        self._drop_chunks(lambda c: c.file_id == file_id)
        self._save()

    async def delete_file(self, file_id: int) -> None:
        async with self._lock:
            with self._shared():
                self._remove_file(file_id)

    async def delete_file_by_path(self, file_path: str) -> None:
        async with self._lock:
            with self._shared():
                record = self._find_file(file_path)
                if record is not None:
                    self._remove_file(record.id)

    async def get_file_record(self, file_path: str) -> FileRecord | None:
        async with self._lock:
            with self._shared():
                return self._find_file(file_path)

    async def get_all_file_records(self) -> list[FileRecord]:
        async with self._lock:
            with self._shared():
                return list(self._files.values())

    # ------------------------------------------------------------------
    # Memory records
    # ------------------------------------------------------------------

    async def upsert_memory(
        self,
        text: str,
        last_modified: datetime,
        memory_id: int | None = None
    ) -> int:
        """Insert a new memory, or replace the text of `memory_id` if it exists."""
        async with self._lock:
            with self._shared():
                existing = self._memories.get(memory_id) if memory_id is not None else None
                if existing is not None:
                    existing.text = text
                    existing.last_modified = last_modified
                    record_id = existing.id
                else:
                    record_id = self._next_id("memory")
                    self._memories[record_id] = MemoryRecord(
                        id=record_id, text=text, last_modified=last_modified
                    )
                self._save()
                return record_id

    async def delete_memory(self, memory_id: int) -> None:
        async with self._lock:
            with self._shared():
                self._memories.pop(memory_id, None)
                self._drop_chunks(lambda c: c.memory_id == memory_id)
                self._save()

    async def get_memory_record(self, memory_id: int) -> MemoryRecord | None:
        async with self._lock:
            with self._shared():
                return self._memories.get(memory_id)

    async def get_all_memory_records(self) -> list[MemoryRecord]:
        async with self._lock:
            with self._shared():
                return list(self._memories.values())

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def _drop_chunks(self, predicate) -> None:
        doomed = [chunk_id for chunk_id, c in self._chunks.items() if predicate(c)]
        for chunk_id in doomed:
            del self._chunks[chunk_id]
        if doomed:
            self._invalidate()

    def _add_chunks(
        self,
        chunks: list[str],
        embeddings: list[list[float]],
        file_id: int | None = None,
        memory_id: int | None = None
    ) -> None:
        if len(chunks) != len(embeddings):
            raise ValueError(
                f"Got {len(chunks)} chunks but {len(embeddings)} embeddings"
            )
        for index, (content, embedding) in enumerate(zip(chunks, embeddings)):
            chunk_id = self._next_id("chunk")
            self._chunks[chunk_id] = StoredChunk(
                id=chunk_id,
                chunk_index=index,
                content=content,
                embedding=list(embedding),
                file_id=file_id,
                memory_id=memory_id,
            )
        self._invalidate()

    async def clear_chunks_for_file(self, file_id: int) -> None:
        async with self._lock:
            with self._shared():
                self._drop_chunks(lambda c: c.file_id == file_id)
                self._save()

    async def clear_chunks_for_memory(self, memory_id: int) -> None:
        async with self._lock:
            with self._shared():
                self._drop_chunks(lambda c: c.memory_id == memory_id)
                self._save()

    async def insert_chunks_for_file(
        self,
        file_id: int,
        chunks: list[str],
        embeddings: list[list[float]]
    ) -> None:
        async with self._lock:
            with self._shared():
                self._add_chunks(chunks, embeddings, file_id=file_id)
                self._save()

    async def insert_chunks_for_memory(
        self,
        memory_id: int,
        chunks: list[str],
        embeddings: list[list[float]]
    ) -> None:
        async with self._lock:
            with self._shared():
                self._add_chunks(chunks, embeddings, memory_id=memory_id)
                self._save()

    def _source_of(self, chunk: StoredChunk) -> str:
        if chunk.file_id is not None and chunk.file_id in self._files:
            return self._files[chunk.file_id].path
        return MEMORY_SOURCE

    def _ensure_matrix(self) -> None:
        if self._matrix is not None:
            return
        self._matrix_ids = list(self._chunks.keys())
        self._matrix = np.array(
            [self._chunks[chunk_id].embedding for chunk_id in self._matrix_ids],
            dtype=np.float64,
        )

    async def query(self, embedding: list[float], k: int) -> list[QueryResult]:
        """
        Find the k chunks most similar to an embedding.

        Returns:
            Results sorted by cosine similarity, highest first
        """
        async with self._lock:
            with self._shared():
                return self._rank(embedding, k)

    def _rank(self, embedding: list[float], k: int) -> list[QueryResult]:
        if not self._chunks or k <= 0:
            return []

        self._ensure_matrix()

        query = np.array(embedding, dtype=np.float64)
        query_norm = np.linalg.norm(query) or 1.0
        doc_norms = np.linalg.norm(self._matrix, axis=1)
        doc_norms = np.where(doc_norms == 0, 1, doc_norms)

        similarities = self._matrix @ query / (doc_norms * query_norm)
        ranked = np.argsort(-similarities)[:k]

        results = []
        for position in ranked:
            chunk = self._chunks[self._matrix_ids[position]]
            results.append(QueryResult(
                id=chunk.id,
                source=self._source_of(chunk),
                content=chunk.content,
                score=float(similarities[position]),
            ))
        return results

    async def delete_all_records(self) -> None:
        async with self._lock:
            with self._shared():
                self._files.clear()
                self._memories.clear()
                self._chunks.clear()
                self._invalidate()
                self._save()
                logger.info("Vector store cleared")

    def __len__(self) -> int:
        """Number of stored chunks, as of the last operation."""
        return len(self._chunks)
