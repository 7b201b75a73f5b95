"""
Embedding Generation
====================

Turns text into vectors for semantic search.

An embedder takes a batch of texts and returns one vector per text, in the
same order. Texts with similar meaning get vectors pointing in similar
directions, so cosine similarity between a query vector and stored chunk
vectors ranks chunks by relevance.

Two implementations:
- OpenAIEmbedder: calls the OpenAI embeddings API, with an in-memory cache
  so re-indexing unchanged chunks does not pay twice
- MockEmbedder: deterministic vectors derived from a hash of the text, for
  offline runs and tests
"""

import hashlib
from typing import Protocol, Sequence

import numpy as np
from openai import AsyncOpenAI

from tinyagent.utils.logger import Logger

logger = Logger("Embeddings")


class Embedder(Protocol):
    """Batch text -> vector conversion, order-preserving."""

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        ...


def _hash_text(text: str) -> str:
    return hashlib.md5(text.encode()).hexdigest()


class OpenAIEmbedder:
    """
    Embedder backed by the OpenAI embeddings endpoint (or a compatible one).

    Vectors are remembered per text hash for the life of the instance, so a
    re-sync that sees mostly unchanged chunks only pays for the new ones.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        base_url: str | None = None,
        client: AsyncOpenAI | None = None
    ):
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)
        self.model = model
        self._cache: dict[str, list[float]] = {}

        logger.info(f"Using embedding model {model}")

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []

        keys = [_hash_text(text) for text in texts]
        missing: dict[str, str] = {}
        for key, text in zip(keys, texts):
            if key not in self._cache:
                missing.setdefault(key, text)

        if missing:
            logger.debug(f"Embedding {len(missing)} of {len(texts)} texts")
            response = await self.client.embeddings.create(
                model=self.model,
                input=list(missing.values())
            )
            for key, item in zip(missing, response.data):
                self._cache[key] = item.embedding
        else:
            logger.debug(f"All {len(texts)} embeddings served from cache")

        return [self._cache[key] for key in keys]


class MockEmbedder:
    """
    Deterministic embedder that never leaves the process.

    The same text always maps to the same vector; different texts almost
    always map to different ones. Meaning plays no part, so similarity
    between different texts is noise.
    """

    def __init__(self, vector_size: int = 1536):
        self.vector_size = vector_size

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        return [self._vector_for(text) for text in texts]

    def _vector_for(self, text: str) -> list[float]:
        seed = int(_hash_text(text)[:8], 16)
        steps = np.arange(self.vector_size, dtype=np.float64)
        vector = np.sin(seed + steps * 31) * 0.5 + 0.5
        return vector.tolist()
