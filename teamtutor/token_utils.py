"""Utilities for token counting."""

from __future__ import annotations

import logging
import math
from functools import lru_cache

import tiktoken

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _encoding():
    """Load the cl100k encoding once; ``None`` when the BPE file is unreachable."""
    try:
        return tiktoken.get_encoding("cl100k_base")
    except Exception as e:  # network-less hosts cannot fetch the BPE ranks
        logger.warning("tiktoken encoding unavailable, using approximation: %s", e)
        return None


def _approx_tokens(text: str) -> int:
    if any(ch.isspace() for ch in text):
        words = len(text.split())
        return max(words, int(math.ceil(words * 0.75)))
    return int(math.ceil(len(text) / 4.0))


def count_tokens(text: str) -> int:
    """Return the number of tokens in ``text``.

    - Uses ``tiktoken`` when its encoding is loadable but never undercounts
      relative to a stable heuristic (≈4 chars per token for no-space strings,
      word count otherwise).
    """

    if not text:
        return 0

    approx = _approx_tokens(text)
    enc = _encoding()
    if enc is None:
        return approx
    return max(len(enc.encode(text)), approx)


def truncate_to_tokens(text: str, limit: int) -> str:
    """Return the longest prefix of ``text`` whose ``count_tokens`` is <= ``limit``.

    Cuts on word boundaries where possible.
    """

    if limit <= 0 or not text:
        return ""
    if count_tokens(text) <= limit:
        return text

    words = text.split()
    lo, hi = 0, len(words)
    # binary search on the number of leading words kept
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if count_tokens(" ".join(words[:mid])) <= limit:
            lo = mid
        else:
            hi = mid - 1
    if lo > 0:
        return " ".join(words[:lo])

    # a single oversized word: fall back to a character cut
    word = words[0]
    lo, hi = 0, len(word)
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if count_tokens(word[:mid]) <= limit:
            lo = mid
        else:
            hi = mid - 1
    return word[:lo]


__all__ = ["count_tokens", "truncate_to_tokens"]
