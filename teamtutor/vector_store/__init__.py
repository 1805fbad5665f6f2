"""Vector index backends and the factory that picks one from ``VECTOR_STORE``."""

from __future__ import annotations

import logging

from ..config_runtime import RetrievalCfg, get_config
from ..embeddings import EmbeddingProvider
from .base import DocumentChunk, ScoredChunk, VectorIndex, make_chunk_id
from .memory import InMemoryVectorIndex

logger = logging.getLogger(__name__)


def get_vector_index(provider: EmbeddingProvider, cfg: RetrievalCfg | None = None) -> VectorIndex:
    """Return the configured index bound to ``provider``.

    ``memory`` (default) keeps everything in process; ``qdrant`` talks to the
    server at ``QDRANT_URL``. Unknown kinds raise ``ValueError``.
    """
    cfg = cfg or get_config().retrieval
    kind = (cfg.vector_store or "memory").strip().lower()
    if kind == "memory":
        return InMemoryVectorIndex(provider)
    if kind == "qdrant":
        from .qdrant import QdrantVectorIndex

        return QdrantVectorIndex(provider, cfg)
    logger.error("vector.unknown_backend", extra={"meta": {"vector_store": kind}})
    raise ValueError(f"Unsupported VECTOR_STORE: {kind}")


__all__ = [
    "DocumentChunk",
    "ScoredChunk",
    "VectorIndex",
    "InMemoryVectorIndex",
    "make_chunk_id",
    "get_vector_index",
]
