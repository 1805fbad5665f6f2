"""Text generation capability consumed by the summarizer and chat pipelines.

One interface, one implementation per provider, chosen at construction from
``LLM_BACKEND`` (``openai`` | ``stub``).
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from abc import ABC, abstractmethod

from openai import AsyncOpenAI

from .config_runtime import LLMCfg, get_config

logger = logging.getLogger(__name__)


class TextGenerator(ABC):
    backend: str = "abstract"

    @abstractmethod
    async def generate(self, prompt: str, *, system: str | None = None) -> str: ...

    async def close(self) -> None:  # pragma: no cover - trivial default
        return None


class OpenAIChatGenerator(TextGenerator):
    """Chat completions over ``AsyncOpenAI``; the client is created on first use."""

    backend = "openai"

    def __init__(
        self,
        cfg: LLMCfg,
        client: AsyncOpenAI | None = None,
        *,
        timeout: float | None = None,
    ) -> None:
        self.model = cfg.model
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI()
        return self._client

    async def generate(self, prompt: str, *, system: str | None = None) -> str:
        client = self._get_client()
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        start = time.perf_counter()
        try:
            create_call = client.chat.completions.create(model=self.model, messages=messages)
            if self.timeout:
                resp = await asyncio.wait_for(create_call, timeout=self.timeout)
            else:
                resp = await create_call
        except Exception as e:
            logger.exception("OpenAI request failed: %s", e)
            raise
        text = (resp.choices[0].message.content or "").strip()
        logger.debug(
            "llm.generate",
            extra={
                "meta": {
                    "model": self.model,
                    "latency_ms": round((time.perf_counter() - start) * 1000, 2),
                }
            },
        )
        return text

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


class StubGenerator(TextGenerator):
    """Deterministic offline generator.

    Replies echo a short digest of the prompt so tests can assert that a
    prompt reached the generator without depending on a model.
    """

    backend = "stub"

    def __init__(self, reply: str | None = None) -> None:
        self.reply = reply
        self.prompts: list[str] = []

    async def generate(self, prompt: str, *, system: str | None = None) -> str:
        self.prompts.append(prompt)
        if self.reply is not None:
            return self.reply
        digest = hashlib.sha256(prompt.encode("utf-8")).hexdigest()[:8]
        tail = " ".join(prompt.split()[-12:])
        return f"[stub:{digest}] {tail}"


def get_text_generator(cfg: LLMCfg | None = None) -> TextGenerator:
    cfg = cfg or get_config().llm
    if cfg.backend == "openai":
        return OpenAIChatGenerator(cfg)
    if cfg.backend == "stub":
        return StubGenerator()
    raise ValueError(f"Unsupported LLM_BACKEND: {cfg.backend}")


__all__ = [
    "TextGenerator",
    "OpenAIChatGenerator",
    "StubGenerator",
    "get_text_generator",
]
