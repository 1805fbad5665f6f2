"""Embedding providers: hosted OpenAI, local sentence-transformers, and a stub.

All providers share one interface (:class:`EmbeddingProvider`) exposing
``embed_query`` and ``embed_documents``. The concrete provider is picked once,
at construction, from ``EMBEDDING_BACKEND`` (``openai`` | ``local`` | ``stub``).
Ingestion and querying must use the same provider; the vector index rejects
vectors whose dimension differs from what it already stores.

The local model is loaded lazily and exactly once: concurrent first calls
wait on the same in-flight load instead of each loading the model.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import math
import re
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import Any

import numpy as np
from openai import AsyncOpenAI, OpenAIError

from .config_runtime import EmbeddingCfg, get_config
from .errors import EmbeddingDimensionMismatch, EmbeddingFailure
from .metrics import EMBEDDING_LATENCY_SECONDS
from .singleflight import SingleFlight

logger = logging.getLogger(__name__)

# OpenAI accepts up to 2048 inputs per request; stay well below it
_OPENAI_BATCH = 512


class EmbeddingProvider(ABC):
    """Text → fixed-length vector capability."""

    backend: str = "abstract"

    def __init__(self, dimension: int | None = None) -> None:
        self.dimension = dimension

    async def embed_query(self, text: str) -> list[float]:
        return (await self.embed_documents([text]))[0]

    async def embed_documents(self, texts: Sequence[str]) -> list[list[float]]:
        items = list(texts)
        if not items:
            return []
        for t in items:
            if not isinstance(t, str) or not t.strip():
                raise EmbeddingFailure("cannot embed empty or non-text input")

        t0 = time.perf_counter()
        try:
            vectors = await self._embed_batch(items)
        except (EmbeddingFailure, EmbeddingDimensionMismatch):
            raise
        except Exception as e:
            logger.error(
                "embeddings.failed",
                extra={"meta": {"backend": self.backend, "count": len(items), "error": str(e)}},
            )
            raise EmbeddingFailure(f"{self.backend} embedding failed: {e}") from e
        finally:
            EMBEDDING_LATENCY_SECONDS.labels(self.backend).observe(time.perf_counter() - t0)

        if len(vectors) != len(items):
            raise EmbeddingFailure(
                f"{self.backend} returned {len(vectors)} vectors for {len(items)} inputs"
            )
        for vec in vectors:
            self.check_dimension(vec)
        return vectors

    def check_dimension(self, vec: Sequence[float]) -> None:
        if self.dimension is not None and len(vec) != self.dimension:
            raise EmbeddingDimensionMismatch(self.dimension, len(vec))

    @abstractmethod
    async def _embed_batch(self, texts: list[str]) -> list[list[float]]: ...

    async def close(self) -> None:  # pragma: no cover - trivial default
        return None


# ---------------------------------------------------------------------------
# Hosted API backend
# ---------------------------------------------------------------------------


class OpenAIEmbeddingProvider(EmbeddingProvider):
    backend = "openai"

    def __init__(self, cfg: EmbeddingCfg, client: AsyncOpenAI | None = None) -> None:
        super().__init__(cfg.dim)
        self.model = cfg.model
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            try:
                self._client = AsyncOpenAI()
            except OpenAIError as e:
                raise EmbeddingFailure(f"OpenAI client unavailable: {e}") from e
        return self._client

    async def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        client = self._get_client()
        out: list[list[float]] = []
        for start in range(0, len(texts), _OPENAI_BATCH):
            batch = texts[start : start + _OPENAI_BATCH]
            resp = await client.embeddings.create(
                model=self.model, input=batch, encoding_format="float"
            )
            data = sorted(resp.data, key=lambda d: d.index)
            out.extend([list(map(float, d.embedding)) for d in data])
        logger.debug(
            "embed backend=openai model=%s count=%d (cosine metric assumed)",
            self.model,
            len(texts),
        )
        return out

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()


# ---------------------------------------------------------------------------
# Local model backend (lazy, single-flight load, run in worker threads)
# ---------------------------------------------------------------------------


def _load_sentence_transformer(model_name: str) -> Any:
    """Instantiate the sentence-transformers model (heavy, blocking)."""
    from sentence_transformers import SentenceTransformer  # heavy import on first use

    return SentenceTransformer(model_name)


class LocalEmbeddingProvider(EmbeddingProvider):
    backend = "local"

    def __init__(
        self,
        cfg: EmbeddingCfg,
        loader: Callable[[str], Any] | None = None,
    ) -> None:
        super().__init__(None)
        self.model_name = cfg.local_model
        self._loader = loader or _load_sentence_transformer
        self._model: Any | None = None
        self._flight: SingleFlight[Any] = SingleFlight()
        self.load_count = 0

    async def _ensure_model(self) -> Any:
        if self._model is not None:
            return self._model
        return await self._flight.do("model", self._load)

    async def _load(self) -> Any:
        if self._model is not None:
            return self._model
        logger.info("embeddings.local_model_loading", extra={"meta": {"model": self.model_name}})
        model = await asyncio.to_thread(self._loader, self.model_name)
        self.load_count += 1
        self.dimension = int(model.get_sentence_embedding_dimension())
        self._model = model
        logger.info(
            "embeddings.local_model_ready",
            extra={"meta": {"model": self.model_name, "dim": self.dimension}},
        )
        return model

    async def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        model = await self._ensure_model()
        arr = await asyncio.to_thread(
            model.encode,
            texts,
            batch_size=32,
            normalize_embeddings=True,
            show_progress_bar=False,
            convert_to_numpy=True,
        )
        return np.asarray(arr, dtype="float32").astype(float).tolist()


# ---------------------------------------------------------------------------
# Deterministic stub (for tests / dry runs)
# ---------------------------------------------------------------------------

_TOKEN_RE = re.compile(r"[a-z0-9]+")


class StubEmbeddingProvider(EmbeddingProvider):
    """Hashed bag-of-words vectors: deterministic, offline, and similarity-aware.

    Texts sharing words land close together, which keeps retrieval tests
    meaningful without a network or model download.
    """

    backend = "stub"

    def __init__(self, dimension: int = 64) -> None:
        super().__init__(dimension)

    def _vector(self, text: str) -> list[float]:
        dim = int(self.dimension or 64)
        vec = [0.0] * dim
        for tok in _TOKEN_RE.findall(text.lower()):
            h = hashlib.sha256(tok.encode()).digest()
            vec[int.from_bytes(h[:4], "big") % dim] += 1.0
        norm = math.sqrt(sum(v * v for v in vec))
        return [v / norm for v in vec] if norm else vec

    async def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self._vector(t) for t in texts]


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def get_embedding_provider(cfg: EmbeddingCfg | None = None) -> EmbeddingProvider:
    """Build the provider named by ``EMBEDDING_BACKEND``."""
    cfg = cfg or get_config().embedding
    backend = cfg.backend
    logger.debug("embedding provider backend=%s", backend)
    if backend == "openai":
        return OpenAIEmbeddingProvider(cfg)
    if backend == "local":
        return LocalEmbeddingProvider(cfg)
    if backend == "stub":
        return StubEmbeddingProvider()
    raise ValueError(f"Unsupported EMBEDDING_BACKEND: {backend}")


async def benchmark(
    provider: EmbeddingProvider, text: str, iterations: int = 10
) -> dict[str, float]:
    """Run ``embed_query`` ``iterations`` times and log latency & throughput."""
    start = time.perf_counter()
    for _ in range(iterations):
        await provider.embed_query(text)
    elapsed = time.perf_counter() - start
    latency = elapsed / iterations if iterations else 0.0
    throughput = iterations / elapsed if elapsed else 0.0
    logger.info(
        "embeddings.benchmark",
        extra={
            "meta": {
                "backend": provider.backend,
                "latency": round(latency, 6),
                "throughput": round(throughput, 6),
            }
        },
    )
    return {"latency": latency, "throughput": throughput}


__all__ = [
    "EmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "LocalEmbeddingProvider",
    "StubEmbeddingProvider",
    "get_embedding_provider",
    "benchmark",
]
