"""
Workspace Indexer
=================

Indexes text into the vector store: chunk, embed, store.

For workspace files the indexer keeps the store in step with the directory:
1. Files present in the store but gone from disk are de-indexed
2. Files whose modification time matches the stored one are skipped
3. New or modified files are loaded through a file adapter, chunked,
   embedded and stored, replacing their previous chunks

Files with no adapter, or that load to blank text, are skipped with a
warning. A failure on one file is logged and does not stop the sync.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from tinyagent.rag.adapters import FileAdapter, default_adapters
from tinyagent.rag.chunking import split_text
from tinyagent.rag.embeddings import Embedder
from tinyagent.rag.vectorstore import VectorStore
from tinyagent.utils.logger import Logger

logger = Logger("Indexer")


@dataclass
class SyncReport:
    """What one sync pass did."""
    indexed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class WorkspaceIndexer:
    """
    Chunks, embeds and stores text for RAG search.

    Example:
        indexer = WorkspaceIndexer(embedder, store, chunk_size=500, chunk_overlap=75)

        chunks, vectors = await indexer.prepare("Some long text...")
        file_id = await indexer.index_file(Path("workspace/notes.md"))
        report = await indexer.sync(Path("workspace"))
    """

    def __init__(
        self,
        embedder: Embedder,
        vectorstore: VectorStore,
        adapters: list[FileAdapter] | None = None,
        chunk_size: int = 500,
        chunk_overlap: int | None = None
    ):
        """
        Initialize the indexer.

        Args:
            embedder: Embedding provider
            vectorstore: Where chunks are stored
            adapters: File adapters in priority order (default: text + PDF)
            chunk_size: Maximum characters per chunk
            chunk_overlap: Characters shared between neighbouring chunks
                (default: 15% of chunk_size)
        """
        self.embedder = embedder
        self.vectorstore = vectorstore
        self.adapters = adapters if adapters is not None else default_adapters()
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    async def prepare(self, text: str) -> tuple[list[str], list[list[float]]]:
        """
        Chunk a text and embed every chunk.

        Returns:
            (chunks, embeddings), same length and order
        """
        chunks = split_text(text, self.chunk_size, self.chunk_overlap)
        if not chunks:
            return [], []
        embeddings = await self.embedder.embed(chunks)
        return chunks, embeddings

    def find_adapter(self, file_path: Path) -> FileAdapter | None:
        return next((a for a in self.adapters if a.supports(file_path)), None)

    async def index_file(self, file_path: Path) -> int | None:
        """
        Index one file, replacing any chunks it had before.

        Args:
            file_path: File to index

        Returns:
            The file record ID, or None if the file was skipped
        """
        adapter = self.find_adapter(file_path)
        if adapter is None:
            logger.warning(f"No adapter for file: {file_path}, skipping")
            return None

        text = await adapter.load(file_path)
        if not text.strip():
            logger.warning(f"File {file_path} produced empty text, skipping")
            return None

        chunks, embeddings = await self.prepare(text)
        last_modified = datetime.fromtimestamp(file_path.stat().st_mtime)

        file_id = await self.vectorstore.upsert_file(str(file_path), last_modified)
        await self.vectorstore.clear_chunks_for_file(file_id)
        await self.vectorstore.insert_chunks_for_file(file_id, chunks, embeddings)

        logger.debug(f"Indexed {file_path} ({len(chunks)} chunks)")
        return file_id

    async def sync(self, workspace_dir: Path) -> SyncReport:
        """
        Bring the store in line with the files under workspace_dir.

        Args:
            workspace_dir: Directory to scan recursively

        Returns:
            SyncReport listing what happened to each file
        """
        report = SyncReport()
        files = self.get_indexable_files(workspace_dir)
        logger.info(f"Found {len(files)} files in {workspace_dir}, indexing...")

        for record in await self.vectorstore.get_all_file_records():
            if not Path(record.path).exists():
                logger.info(f"Deindexing deleted file: {record.path}")
                await self.vectorstore.delete_file(record.id)
                report.deleted.append(record.path)

        for file_path in files:
            existing = await self.vectorstore.get_file_record(str(file_path))
            last_modified = datetime.fromtimestamp(file_path.stat().st_mtime)
            if existing is not None and existing.last_modified == last_modified:
                logger.debug(f"Skipping unchanged file: {file_path}")
                report.skipped.append(str(file_path))
                continue

            try:
                file_id = await self.index_file(file_path)
            except Exception as e:
                logger.error(f"Error indexing {file_path}", e)
                report.failed.append(str(file_path))
                continue

            if file_id is None:
                report.skipped.append(str(file_path))
            else:
                report.indexed.append(str(file_path))

        logger.info(
            f"Sync complete: {len(report.indexed)} indexed, {len(report.skipped)} skipped, "
            f"{len(report.deleted)} deleted, {len(report.failed)} failed"
        )
        return report

    def get_indexable_files(self, workspace_dir: Path) -> list[Path]:
        """All regular files under the workspace, sorted by path."""
        if not workspace_dir.is_dir():
            logger.warning(f"Workspace directory {workspace_dir} does not exist")
            return []
        return sorted(p for p in workspace_dir.rglob("*") if p.is_file())
