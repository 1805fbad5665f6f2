"""Best-effort batch ingestion: load, split, embed, index.

Each item (file path or raw text block) is processed independently; an
unsupported or missing file is skipped and any other failure is recorded as
an error for that item only. All accepted chunks are then embedded in one
batch and written to the vector index in a single ``add`` call.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from ..config_runtime import IngestCfg, get_config
from ..errors import IngestionItemSkipped
from ..metrics import INGEST_CHUNKS, INGEST_ITEMS
from ..vector_store.base import DocumentChunk, VectorIndex
from .loaders import load_file
from .splitter import RecursiveTextSplitter

logger = logging.getLogger(__name__)

ItemStatus = Literal["ok", "skipped", "error"]


@dataclass
class IngestItemResult:
    item: str
    status: ItemStatus
    chunks: int = 0
    reason: str | None = None


@dataclass
class IngestReport:
    items: list[IngestItemResult] = field(default_factory=list)
    chunk_ids: list[str] = field(default_factory=list)
    elapsed_ms: float = 0.0

    @property
    def chunk_count(self) -> int:
        return len(self.chunk_ids)

    def by_status(self, status: ItemStatus) -> list[IngestItemResult]:
        return [r for r in self.items if r.status == status]

    @property
    def ok(self) -> list[IngestItemResult]:
        return self.by_status("ok")

    @property
    def skipped(self) -> list[IngestItemResult]:
        return self.by_status("skipped")

    @property
    def errors(self) -> list[IngestItemResult]:
        return self.by_status("error")

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [r.__dict__.copy() for r in self.items],
            "chunk_count": self.chunk_count,
            "elapsed_ms": self.elapsed_ms,
        }


class IngestionPipeline:
    def __init__(
        self,
        index: VectorIndex,
        cfg: IngestCfg | None = None,
        *,
        splitter: RecursiveTextSplitter | None = None,
    ) -> None:
        cfg = cfg or get_config().ingest
        self.index = index
        self.splitter = splitter or RecursiveTextSplitter(cfg.chunk_size, cfg.chunk_overlap)

    def _chunk(self, text: str, metadata: Mapping[str, Any]) -> list[DocumentChunk]:
        out = []
        for i, piece in enumerate(self.splitter.split_text(text)):
            meta = dict(metadata)
            meta["chunk_index"] = i
            out.append(DocumentChunk(content=piece, metadata=meta))
        return out

    async def ingest_files(
        self,
        paths: Iterable[str | Path],
        metadata: Mapping[str, Any] | None = None,
    ) -> IngestReport:
        """Ingest files; ``metadata`` is merged into every chunk's metadata."""
        t0 = time.perf_counter()
        report = IngestReport()
        pending: list[DocumentChunk] = []
        for path in paths:
            item = str(path)
            try:
                doc = load_file(path)
                chunks = self._chunk(doc.text, {**(metadata or {}), **doc.metadata})
            except IngestionItemSkipped as e:
                logger.warning("ingest.skipped", extra={"meta": {"item": item, "reason": e.reason}})
                report.items.append(IngestItemResult(item, "skipped", reason=e.reason))
                continue
            except Exception as e:
                logger.exception("ingest.item_failed", extra={"meta": {"item": item}})
                report.items.append(IngestItemResult(item, "error", reason=str(e)))
                continue
            pending.extend(chunks)
            report.items.append(IngestItemResult(item, "ok", chunks=len(chunks)))
        return await self._commit(report, pending, t0)

    async def ingest_texts(
        self,
        texts: Sequence[str],
        metadatas: Sequence[Mapping[str, Any] | None] | None = None,
    ) -> IngestReport:
        """Ingest raw text blocks, each with optional metadata.

        A block without a ``source`` in its metadata is attributed to
        ``text:<position>``.
        """
        if metadatas is not None and len(metadatas) != len(texts):
            raise ValueError("metadatas must match texts in length")
        t0 = time.perf_counter()
        report = IngestReport()
        pending: list[DocumentChunk] = []
        for i, text in enumerate(texts):
            meta = dict((metadatas[i] if metadatas else None) or {})
            meta.setdefault("source", f"text:{i}")
            item = str(meta["source"])
            if not isinstance(text, str) or not text.strip():
                report.items.append(IngestItemResult(item, "skipped", reason="empty text"))
                logger.warning("ingest.skipped", extra={"meta": {"item": item, "reason": "empty text"}})
                continue
            chunks = self._chunk(text, meta)
            pending.extend(chunks)
            report.items.append(IngestItemResult(item, "ok", chunks=len(chunks)))
        return await self._commit(report, pending, t0)

    async def _commit(
        self, report: IngestReport, pending: list[DocumentChunk], t0: float
    ) -> IngestReport:
        if pending:
            # embedding happens inside add() as one batch
            report.chunk_ids = await self.index.add(pending)
            INGEST_CHUNKS.inc(len(report.chunk_ids))
        for r in report.items:
            INGEST_ITEMS.labels(r.status).inc()
        report.elapsed_ms = (time.perf_counter() - t0) * 1000.0
        logger.info(
            "ingest.done",
            extra={
                "meta": {
                    "ok": len(report.ok),
                    "skipped": len(report.skipped),
                    "errors": len(report.errors),
                    "chunks": report.chunk_count,
                    "backend": self.index.backend,
                    "elapsed_ms": round(report.elapsed_ms, 2),
                }
            },
        )
        return report


__all__ = ["IngestionPipeline", "IngestReport", "IngestItemResult"]
