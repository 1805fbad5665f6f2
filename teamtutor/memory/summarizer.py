from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from ..errors import MemoryCompactionFailure
from ..llm import TextGenerator

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .conversation import Turn

logger = logging.getLogger(__name__)

_ROLE_LABEL = {"user": "Student", "assistant": "Team"}

SUMMARY_PROMPT = """You are summarizing a conversation in a requirements engineering learning system.

STUDENT'S CURRENT PROGRESS:
{progress}

PREVIOUS SUMMARY: {summary}

RECENT MESSAGES:
{messages}

Create a concise summary that:
1. Maintains important conversation details
2. References relevant completed work when applicable
3. Highlights key learning progress and decisions
4. Keeps context for future conversations

Focus on what's most relevant for continuing this student's learning journey."""


def format_turns(turns: Sequence["Turn"]) -> str:
    return "\n".join(f"{_ROLE_LABEL.get(t.role, t.role)}: {t.text}" for t in turns)


class Summarizer:
    """Progressive summarization: fold turns into an existing running summary."""

    def __init__(self, generator: TextGenerator, *, progress: str | None = None) -> None:
        self.generator = generator
        self.progress = progress

    def build_prompt(self, turns: Sequence["Turn"], existing_summary: str) -> str:
        return SUMMARY_PROMPT.format(
            progress=self.progress or "No previous progress available",
            summary=existing_summary or "(none)",
            messages=format_turns(turns),
        )

    async def summarize(self, turns: Sequence["Turn"], existing_summary: str = "") -> str:
        """Return the new running summary.

        Raises :class:`MemoryCompactionFailure` if generation fails or comes
        back empty; the caller keeps its turns in that case.
        """
        prompt = self.build_prompt(turns, existing_summary)
        try:
            summary = (await self.generator.generate(prompt)).strip()
        except MemoryCompactionFailure:
            raise
        except Exception as e:
            raise MemoryCompactionFailure(f"summarization failed: {e}") from e
        if not summary:
            raise MemoryCompactionFailure("summarization returned no text")
        logger.debug(
            "memory.summarized",
            extra={"meta": {"turns": len(turns), "chars": len(summary)}},
        )
        return summary


__all__ = ["Summarizer", "SUMMARY_PROMPT", "format_turns"]
