"""Error taxonomy for the session memory and retrieval core.

Transient infrastructure errors (cache, vector store) are caught by the chat
pipeline and degrade to a reduced-functionality path. Contract errors
(missing key identifiers, mismatched embedding dimensions) fail the single
request that triggered them.
"""

from __future__ import annotations


class TeamTutorError(RuntimeError):
    """Base class for all errors raised by the core."""


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class CacheError(TeamTutorError):
    """Transient cache failure. Callers treat it as a cache miss."""


class CacheUnavailable(CacheError):
    """The cache could not be reached or refused the command."""


class CacheTimeout(CacheError):
    """A cache command exceeded its per-command timeout."""


class MissingCacheIdentifier(ValueError):
    """A cache key was requested without all of its identifying fields."""


# ---------------------------------------------------------------------------
# Embeddings / vector index
# ---------------------------------------------------------------------------


class EmbeddingFailure(TeamTutorError):
    """The embedding provider failed or was given malformed input."""


class EmbeddingDimensionMismatch(ValueError):
    """A vector does not match the dimension expected by the provider."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"embedding dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class VectorStoreError(TeamTutorError):
    """Generic vector store error wrapper."""


class IndexQueryFailure(VectorStoreError):
    """The vector store could not answer a similarity query."""


# ---------------------------------------------------------------------------
# Ingestion / memory
# ---------------------------------------------------------------------------


class IngestionItemSkipped(TeamTutorError):
    """An ingestion item was skipped (unsupported type or missing file)."""

    def __init__(self, item: str, reason: str):
        super().__init__(f"{item}: {reason}")
        self.item = item
        self.reason = reason


class MemoryCompactionFailure(TeamTutorError):
    """Summarizing older conversation turns failed."""


__all__ = [
    "TeamTutorError",
    "CacheError",
    "CacheUnavailable",
    "CacheTimeout",
    "MissingCacheIdentifier",
    "EmbeddingFailure",
    "EmbeddingDimensionMismatch",
    "VectorStoreError",
    "IndexQueryFailure",
    "IngestionItemSkipped",
    "MemoryCompactionFailure",
]
