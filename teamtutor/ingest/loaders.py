from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..errors import IngestionItemSkipped

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = frozenset({"", ".txt", ".md", ".markdown"})
PDF_EXTENSIONS = frozenset({".pdf"})
SUPPORTED_EXTENSIONS = TEXT_EXTENSIONS | PDF_EXTENSIONS


@dataclass
class LoadedDocument:
    text: str
    metadata: dict[str, Any] = field(default_factory=dict)


def file_metadata(path: Path) -> dict[str, Any]:
    """``source``/``filename``/``fileType`` derived from the path."""
    return {
        "source": str(path),
        "filename": path.name,
        "fileType": path.suffix.lower(),
    }


def _convert_with_markitdown(path: Path) -> str:
    from markitdown import MarkItDown  # heavy import on first PDF

    res = MarkItDown().convert(str(path))
    text: str = getattr(res, "text_content", None) or getattr(res, "markdown", None) or ""
    return text


def load_file(path: str | Path) -> LoadedDocument:
    """Read one file into text.

    Raises :class:`IngestionItemSkipped` for missing files and unsupported
    extensions. Anything else (decode errors, converter failures) propagates
    so the pipeline can record it as an item error.
    """
    p = Path(path)
    ext = p.suffix.lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise IngestionItemSkipped(str(path), f"unsupported file type '{ext}'")
    if not p.is_file():
        raise IngestionItemSkipped(str(path), "file not found")

    if ext in PDF_EXTENSIONS:
        text = _convert_with_markitdown(p)
    else:
        text = p.read_text(encoding="utf-8")
    logger.debug("ingest.loaded", extra={"meta": {"source": str(p), "chars": len(text)}})
    return LoadedDocument(text=text, metadata=file_metadata(p))


__all__ = [
    "LoadedDocument",
    "SUPPORTED_EXTENSIONS",
    "file_metadata",
    "load_file",
]
