from __future__ import annotations

from collections.abc import Iterable

from .vector_store.base import DocumentChunk, ScoredChunk


def _section(index: int, chunk: DocumentChunk) -> str:
    lines = [f"--- Document {index} ---"]
    if chunk.metadata.get("source"):
        lines.append(f"Source: {chunk.metadata['source']}")
    if chunk.metadata.get("filename"):
        lines.append(f"File: {chunk.metadata['filename']}")
    lines.append("")
    lines.append(chunk.content.strip())
    return "\n".join(lines)


def combine_documents(chunks: Iterable[DocumentChunk | ScoredChunk]) -> str:
    """Format retrieved chunks as numbered sections for prompt injection.

    Order is preserved; ``Source:``/``File:`` lines appear only when the
    metadata carries them. Empty input yields ``""``.
    """
    sections = []
    for i, item in enumerate(chunks, start=1):
        chunk = item.chunk if isinstance(item, ScoredChunk) else item
        sections.append(_section(i, chunk))
    return "\n\n".join(sections)


__all__ = ["combine_documents"]
