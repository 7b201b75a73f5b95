"""
File Adapters
=============

Turn files into plain text for indexing. Each adapter says which files it
understands (by extension) and loads them. The first adapter that supports a
file wins; files nobody supports are skipped by the indexer.
"""

import asyncio
from pathlib import Path
from typing import Protocol

import pdfplumber


class FileAdapter(Protocol):
    def supports(self, file_path: Path) -> bool: ...

    async def load(self, file_path: Path) -> str: ...


class TextAdapter:
    """Plain text and markdown files."""

    EXTENSIONS = (".txt", ".md")

    def supports(self, file_path: Path) -> bool:
        return Path(file_path).suffix.lower() in self.EXTENSIONS

    async def load(self, file_path: Path) -> str:
        return await asyncio.to_thread(Path(file_path).read_text, encoding="utf-8")


class PdfAdapter:
    """PDF files, text extracted page by page with pdfplumber."""

    def supports(self, file_path: Path) -> bool:
        return Path(file_path).suffix.lower() == ".pdf"

    async def load(self, file_path: Path) -> str:
        return await asyncio.to_thread(self._extract, Path(file_path))

    @staticmethod
    def _extract(file_path: Path) -> str:
        with pdfplumber.open(file_path) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
        return "\n\n".join(page for page in pages if page.strip())


def default_adapters() -> list[FileAdapter]:
    return [TextAdapter(), PdfAdapter()]
