"""Qdrant-backed vector index.

The synchronous ``QdrantClient`` is driven from worker threads so the event
loop never blocks on the store. Collections use cosine distance and are
created lazily with the dimension of the first batch written.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import re
import time
from typing import Any

from qdrant_client import QdrantClient
from qdrant_client.http.models import Distance, PointStruct, VectorParams

from ..config_runtime import RetrievalCfg, get_config
from ..embeddings import EmbeddingProvider
from ..errors import EmbeddingDimensionMismatch, IndexQueryFailure, VectorStoreError
from ..metrics import VECTOR_OP_LATENCY_SECONDS
from .base import DocumentChunk, ScoredChunk
from .memory import embed_missing

logger = logging.getLogger(__name__)

# extra points fetched beyond k so score ties at the cut can be settled by insertion order
_TIE_MARGIN = 8


def _sanitize_collection_name(name: str) -> str:
    """Return a Qdrant-safe collection name by replacing disallowed chars.

    Qdrant collection names must not contain ':' and similar path-delimiter
    characters. We conservatively allow [a-zA-Z0-9_.-] and replace others with '_'.
    """
    return re.sub(r"[^a-zA-Z0-9_.-]", "_", name)


class QdrantVectorIndex:
    """Thin adapter storing chunk content + metadata as point payload."""

    backend = "qdrant"

    def __init__(
        self,
        provider: EmbeddingProvider,
        cfg: RetrievalCfg | None = None,
        *,
        client: QdrantClient | None = None,
    ) -> None:
        cfg = cfg or get_config().retrieval
        self.provider = provider
        self.collection = _sanitize_collection_name(cfg.qdrant_collection)
        self.client = client or QdrantClient(url=cfg.qdrant_url, api_key=cfg.qdrant_api_key)
        self._dim: int | None = None
        # insertion sequence; time-based prefix keeps order across processes
        self._seq = itertools.count()
        logger.info(
            "vector.qdrant_init",
            extra={"meta": {"collection": self.collection, "metric": "cosine"}},
        )

    # ------------------------------------------------------------------
    # Collection management
    # ------------------------------------------------------------------
    def _ensure_collection(self, dim: int) -> None:
        if self._dim is not None:
            if dim != self._dim:
                raise EmbeddingDimensionMismatch(self._dim, dim)
            return
        if self.client.collection_exists(self.collection):
            info = self.client.get_collection(self.collection)
            size = _vector_size(info)
            if size is not None and size != dim:
                raise EmbeddingDimensionMismatch(size, dim)
        else:
            self.client.create_collection(
                collection_name=self.collection,
                vectors_config=VectorParams(size=dim, distance=Distance.COSINE),
            )
            logger.info(
                "vector.qdrant_collection_created",
                extra={"meta": {"collection": self.collection, "dim": dim}},
            )
        self._dim = dim

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------
    async def add(self, chunks: list[DocumentChunk]) -> list[str]:
        if not chunks:
            return []
        await embed_missing(self.provider, chunks)
        t0 = time.perf_counter()
        base = time.time_ns()
        points = [
            PointStruct(
                id=c.chunk_id,
                vector=list(c.embedding or []),
                payload={
                    "content": c.content,
                    "metadata": dict(c.metadata),
                    "seq": base + next(self._seq),
                },
            )
            for c in chunks
        ]
        dim = len(points[0].vector)

        def _write() -> None:
            self._ensure_collection(dim)
            for p in points:
                if len(p.vector) != dim:
                    raise EmbeddingDimensionMismatch(dim, len(p.vector))
            self.client.upsert(collection_name=self.collection, points=points, wait=True)

        try:
            await asyncio.to_thread(_write)
        except EmbeddingDimensionMismatch:
            raise
        except Exception as e:
            logger.error(
                "vector.add_failed",
                extra={"meta": {"collection": self.collection, "error": str(e)}},
            )
            raise VectorStoreError(f"qdrant upsert failed: {e}") from e
        VECTOR_OP_LATENCY_SECONDS.labels(self.backend, "add").observe(time.perf_counter() - t0)
        logger.info(
            "vector.add", extra={"meta": {"collection": self.collection, "count": len(points)}}
        )
        return [c.chunk_id for c in chunks]

    async def query(self, text: str, k: int = 3) -> list[ScoredChunk]:
        if k <= 0:
            return []
        q = await self.provider.embed_query(text)
        if self._dim is not None and len(q) != self._dim:
            raise EmbeddingDimensionMismatch(self._dim, len(q))
        t0 = time.perf_counter()

        def _search() -> list[Any]:
            if not self.client.collection_exists(self.collection):
                return []
            # widen the page until it holds every point tied with the k-th score
            limit = max(2 * k, k + _TIE_MARGIN)
            while True:
                res = self.client.query_points(
                    collection_name=self.collection,
                    query=q,
                    limit=limit,
                    with_payload=True,
                )
                page = list(res.points)
                if len(page) < limit or float(page[-1].score) < float(page[k - 1].score):
                    return page
                limit *= 2

        try:
            points = await asyncio.to_thread(_search)
        except Exception as e:
            logger.warning(
                "vector.query_failed",
                extra={"meta": {"collection": self.collection, "error": str(e)}},
            )
            raise IndexQueryFailure(f"qdrant query failed: {e}") from e

        # Qdrant orders by score; re-sort so ties fall back to insertion order
        points.sort(key=lambda p: (-float(p.score), int((p.payload or {}).get("seq", 0))))
        out = []
        for p in points[:k]:
            payload = p.payload or {}
            chunk = DocumentChunk(
                content=str(payload.get("content", "")),
                metadata=dict(payload.get("metadata") or {}),
                chunk_id=str(p.id),
            )
            out.append(ScoredChunk(chunk, float(p.score)))
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
        def _count() -> int:
            if not self.client.collection_exists(self.collection):
                return 0
            return int(self.client.count(collection_name=self.collection, exact=True).count)

        return await asyncio.to_thread(_count)

    async def reset(self) -> None:
        def _drop() -> None:
            if self.client.collection_exists(self.collection):
                self.client.delete_collection(collection_name=self.collection)

        await asyncio.to_thread(_drop)
        self._dim = None


def _vector_size(info: Any) -> int | None:
    vectors = info.config.params.vectors
    size = getattr(vectors, "size", None)
    return int(size) if size is not None else None


__all__ = ["QdrantVectorIndex"]
