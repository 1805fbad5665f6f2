"""Recursive character text splitter.

Splits on the coarsest separator present (paragraphs, then lines, then words,
then characters) and greedily merges the pieces back into chunks no longer
than ``chunk_size`` characters, carrying up to ``chunk_overlap`` characters of
trailing context into the next chunk.
"""

from __future__ import annotations

DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", " ", "")


class RecursiveTextSplitter:
    def __init__(
        self,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        separators: tuple[str, ...] | list[str] | None = None,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if chunk_overlap < 0 or chunk_overlap >= chunk_size:
            raise ValueError(
                f"chunk_overlap ({chunk_overlap}) must be >= 0 and smaller than chunk_size ({chunk_size})"
            )
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.separators = list(separators or DEFAULT_SEPARATORS)

    def split_text(self, text: str) -> list[str]:
        if not text or not text.strip():
            return []
        return self._split(text, self.separators)

    def _split(self, text: str, separators: list[str]) -> list[str]:
        separator = separators[-1]
        rest: list[str] = []
        for i, sep in enumerate(separators):
            if sep == "":
                separator = sep
                break
            if sep in text:
                separator = sep
                rest = separators[i + 1 :]
                break

        pieces = text.split(separator) if separator else list(text)
        out: list[str] = []
        small: list[str] = []
        for piece in pieces:
            if not piece:
                continue
            if len(piece) < self.chunk_size:
                small.append(piece)
                continue
            if small:
                out.extend(self._merge(small, separator))
                small = []
            if rest:
                out.extend(self._split(piece, rest))
            else:
                out.append(piece)
        if small:
            out.extend(self._merge(small, separator))
        return out

    def _merge(self, pieces: list[str], separator: str) -> list[str]:
        sep_len = len(separator)
        chunks: list[str] = []
        window: list[str] = []
        total = 0
        for piece in pieces:
            n = len(piece)
            if window and total + n + sep_len > self.chunk_size:
                chunk = separator.join(window).strip()
                if chunk:
                    chunks.append(chunk)
                # drop from the front until only the overlap remains and the
                # next piece fits
                while window and (
                    total > self.chunk_overlap or total + n + sep_len > self.chunk_size
                ):
                    total -= len(window[0]) + (sep_len if len(window) > 1 else 0)
                    window.pop(0)
            total += n + (sep_len if window else 0)
            window.append(piece)
        chunk = separator.join(window).strip()
        if chunk:
            chunks.append(chunk)
        return chunks


__all__ = ["RecursiveTextSplitter", "DEFAULT_SEPARATORS"]
