"""In-process vector index used for tests, dry runs and small deployments."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence

import numpy as np

from ..embeddings import EmbeddingProvider
from ..errors import EmbeddingDimensionMismatch
from ..metrics import VECTOR_OP_LATENCY_SECONDS
from .base import DocumentChunk, ScoredChunk

logger = logging.getLogger(__name__)


async def embed_missing(provider: EmbeddingProvider, chunks: Sequence[DocumentChunk]) -> None:
    """Fill ``chunk.embedding`` in one batch call for chunks that lack one."""
    pending = [c for c in chunks if c.embedding is None]
    if pending:
        vectors = await provider.embed_documents([c.content for c in pending])
        for chunk, vec in zip(pending, vectors):
            chunk.embedding = vec
    for c in chunks:
        provider.check_dimension(c.embedding or [])


def _unit(vec: Sequence[float]) -> np.ndarray:
    arr = np.asarray(vec, dtype=float)
    norm = np.linalg.norm(arr)
    return arr / norm if norm else arr


class InMemoryVectorIndex:
    """Cosine-similarity index held in process memory.

    Chunks are keyed by ``chunk_id``; adding an id again replaces the stored
    chunk but keeps its original insertion position for tie-breaking.
    """

    backend = "memory"

    def __init__(self, provider: EmbeddingProvider) -> None:
        self.provider = provider
        self._chunks: dict[str, DocumentChunk] = {}
        self._seq: dict[str, int] = {}
        self._vectors: dict[str, np.ndarray] = {}
        self._next_seq = 0
        self._dim: int | None = None

    async def add(self, chunks: list[DocumentChunk]) -> list[str]:
        if not chunks:
            return []
        t0 = time.perf_counter()
        await embed_missing(self.provider, chunks)
        dim = self._dim
        for c in chunks:
            n = len(c.embedding or [])
            if dim is None:
                dim = n
            elif n != dim:
                raise EmbeddingDimensionMismatch(dim, n)
        self._dim = dim
        ids: list[str] = []
        for c in chunks:
            if c.chunk_id not in self._seq:
                self._seq[c.chunk_id] = self._next_seq
                self._next_seq += 1
            self._chunks[c.chunk_id] = c
            self._vectors[c.chunk_id] = _unit(c.embedding or [])
            ids.append(c.chunk_id)
        VECTOR_OP_LATENCY_SECONDS.labels(self.backend, "add").observe(time.perf_counter() - t0)
        logger.debug("vector.add", extra={"meta": {"backend": self.backend, "count": len(ids)}})
        return ids

    async def query(self, text: str, k: int = 3) -> list[ScoredChunk]:
        if k <= 0 or not self._chunks:
            return []
        q = await self.provider.embed_query(text)
        t0 = time.perf_counter()
        if self._dim is not None and len(q) != self._dim:
            raise EmbeddingDimensionMismatch(self._dim, len(q))
        qv = _unit(q)
        ids = list(self._chunks)
        matrix = np.stack([self._vectors[i] for i in ids])
        scores = matrix @ qv
        ranked = sorted(
            zip(ids, scores.tolist()), key=lambda item: (-item[1], self._seq[item[0]])
        )
        out = [ScoredChunk(self._chunks[i], float(s)) for i, s in ranked[:k]]
        VECTOR_OP_LATENCY_SECONDS.labels(self.backend, "query").observe(time.perf_counter() - t0)
        logger.info(
            "vector.query",
            extra={
                "meta": {
                    "backend": self.backend,
                    "k": k,
                    "returned": len(out),
                    "scores": [round(r.score, 4) for r in out],
                }
            },
        )
        return out

    async def count(self) -> int:
        return len(self._chunks)

    async def reset(self) -> None:
        self._chunks.clear()
        self._seq.clear()
        self._vectors.clear()
        self._next_seq = 0
        self._dim = None


__all__ = ["InMemoryVectorIndex", "embed_missing"]
