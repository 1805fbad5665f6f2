"""Base types and the access contract shared by vector index backends.

Kept free of heavy imports so any backend (or test) can import it cheaply.
"""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


def make_chunk_id(source: str, index: int, content: str) -> str:
    """Deterministic id for the ``index``-th chunk of ``source``.

    Derived from source, position and content hash so re-ingesting an
    unchanged document upserts the same ids instead of duplicating chunks.
    UUID form keeps it valid as a Qdrant point id.
    """
    digest = hashlib.sha256(content.encode("utf-8")).hexdigest()
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{source}:{index}:{digest}"))


@dataclass
class DocumentChunk:
    """A bounded slice of a source document; the unit of retrieval."""

    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    embedding: list[float] | None = None
    chunk_id: str = ""

    def __post_init__(self) -> None:
        if not self.chunk_id:
            source = str(self.metadata.get("source", ""))
            index = int(self.metadata.get("chunk_index", 0))
            self.chunk_id = make_chunk_id(source, index, self.content)

    @property
    def source(self) -> str | None:
        return self.metadata.get("source")

    @property
    def filename(self) -> str | None:
        return self.metadata.get("filename")


@dataclass(frozen=True)
class ScoredChunk:
    """A retrieved chunk and its similarity score (higher is closer)."""

    chunk: DocumentChunk
    score: float


@runtime_checkable
class VectorIndex(Protocol):
    """Append-only similarity index over document chunks."""

    backend: str

    async def add(self, chunks: list[DocumentChunk]) -> list[str]: ...

    async def query(self, text: str, k: int = 3) -> list[ScoredChunk]: ...

    async def count(self) -> int: ...

    async def reset(self) -> None: ...


__all__ = [
    "DocumentChunk",
    "ScoredChunk",
    "VectorIndex",
    "make_chunk_id",
]
