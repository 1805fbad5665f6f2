"""Per-session conversation memory with progressive summarization.

A :class:`SessionMemory` keeps recent turns verbatim plus a running summary
of everything older. When a write pushes the token estimate over the budget,
the oldest turns are folded into the summary during that same write, so that
afterwards ``tokens(summary) + tokens(turns) <= token_budget``.

:class:`ConversationMemoryManager` owns one memory object per session id in a
bounded, idle-expiring map.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from cachetools import TTLCache

from ..cache.models import CachedMessage, ConversationSnapshot
from ..config_runtime import MemoryCfg, get_config
from ..errors import MemoryCompactionFailure
from ..metrics import MEMORY_COMPACTIONS, MEMORY_SESSIONS
from ..token_utils import count_tokens, truncate_to_tokens
from .summarizer import Summarizer, format_turns

logger = logging.getLogger(__name__)

ROLES = ("user", "assistant")


@dataclass
class Turn:
    role: str
    text: str
    timestamp: float = field(default_factory=time.time)

    @property
    def tokens(self) -> int:
        return count_tokens(self.text)


class SessionState(str, Enum):
    EMPTY = "empty"
    ACCUMULATING = "accumulating"
    COMPACTED = "compacted"


class SessionMemory:
    def __init__(self, session_id: str, summarizer: Summarizer, token_budget: int = 1000) -> None:
        if token_budget <= 0:
            raise ValueError("token_budget must be positive")
        self.session_id = session_id
        self.summarizer = summarizer
        self.token_budget = token_budget
        self.turns: list[Turn] = []
        self.running_summary = ""
        self.state = SessionState.EMPTY
        self.compaction_failures = 0
        self.last_error: str | None = None
        self._lock = asyncio.Lock()
        # held by callers for a whole read-generate-write cycle; never taken
        # by the methods of this class, which use ``_lock``
        self.turn_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Estimates
    # ------------------------------------------------------------------
    def turn_tokens(self) -> int:
        return sum(t.tokens for t in self.turns)

    def estimated_tokens(self) -> int:
        return count_tokens(self.running_summary) + self.turn_tokens()

    def over_budget(self) -> bool:
        return self.estimated_tokens() > self.token_budget

    # ------------------------------------------------------------------
    # Writes (serialized per session)
    # ------------------------------------------------------------------
    def _append(self, role: str, text: str) -> None:
        if role not in ROLES:
            raise ValueError(f"role must be one of {ROLES}, got {role!r}")
        self.turns.append(Turn(role, text))
        self.state = SessionState.ACCUMULATING

    async def add_turn(self, role: str, text: str) -> None:
        async with self._lock:
            self._append(role, text)
            await self._maybe_compact()

    async def save_context(self, user_text: str, reply: str) -> None:
        """Append a learner message and the reply as one write."""
        async with self._lock:
            self._append("user", user_text)
            self._append("assistant", reply)
            await self._maybe_compact()

    async def _maybe_compact(self) -> None:
        if not self.over_budget():
            return

        # newest turns stay verbatim within half the budget; the rest is folded
        keep_budget = self.token_budget // 2
        kept = 0
        split = len(self.turns)
        while split > 0 and kept + self.turns[split - 1].tokens <= keep_budget:
            kept += self.turns[split - 1].tokens
            split -= 1
        folded, retained = self.turns[:split], self.turns[split:]

        if not folded:
            # only the summary itself is too long
            self.running_summary = truncate_to_tokens(
                self.running_summary, self.token_budget - kept
            )
            return

        try:
            summary = await self.summarizer.summarize(folded, self.running_summary)
        except MemoryCompactionFailure as e:
            self.compaction_failures += 1
            self.last_error = str(e)
            MEMORY_COMPACTIONS.labels("failure").inc()
            logger.warning(
                "memory.compaction_failed",
                extra={
                    "meta": {
                        "session_id": self.session_id,
                        "turns": len(self.turns),
                        "failures": self.compaction_failures,
                        "error": str(e),
                    }
                },
            )
            return

        limit = self.token_budget - sum(t.tokens for t in retained)
        self.running_summary = truncate_to_tokens(summary, limit)
        self.turns = list(retained)
        self.state = SessionState.COMPACTED
        self.last_error = None
        MEMORY_COMPACTIONS.labels("success").inc()
        logger.info(
            "memory.compacted",
            extra={
                "meta": {
                    "session_id": self.session_id,
                    "folded": len(folded),
                    "retained": len(retained),
                    "tokens": self.estimated_tokens(),
                    "budget": self.token_budget,
                }
            },
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def load_memory_variables(self) -> dict[str, str]:
        """Compacted context for prompt assembly."""
        return {"summary": self.running_summary, "history": format_turns(self.turns)}

    def recent_messages(self, n: int | None = None) -> list[Turn]:
        if n is None:
            return list(self.turns)
        if n <= 0:
            return []
        return list(self.turns[-n:])

    # ------------------------------------------------------------------
    # Cache round trip
    # ------------------------------------------------------------------
    def snapshot(self, user_id: str, task_context: str) -> ConversationSnapshot:
        return ConversationSnapshot(
            user_id=user_id,
            task_context=task_context,
            messages=[
                CachedMessage(role=t.role, text=t.text, timestamp=t.timestamp)
                for t in self.turns
            ],
            summary=self.running_summary,
        )

    async def restore(self, snapshot: ConversationSnapshot) -> None:
        """Replace this memory's contents with ``snapshot``."""
        async with self._lock:
            self.turns = [
                Turn(m.role, m.text, m.timestamp) for m in snapshot.messages if m.role in ROLES
            ]
            self.running_summary = snapshot.summary
            if snapshot.summary:
                self.state = SessionState.COMPACTED
            elif self.turns:
                self.state = SessionState.ACCUMULATING
            else:
                self.state = SessionState.EMPTY

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "state": self.state.value,
            "turns": len(self.turns),
            "tokens": self.estimated_tokens(),
            "budget": self.token_budget,
            "compaction_failures": self.compaction_failures,
        }


class ConversationMemoryManager:
    """Get-or-create registry of :class:`SessionMemory` objects.

    Bounded by ``MEMORY_MAX_SESSIONS``; a session untouched for
    ``MEMORY_SESSION_IDLE_TTL`` seconds is dropped from the map (its cached
    conversation snapshot in Redis is unaffected).
    """

    def __init__(
        self,
        summarizer: Summarizer,
        cfg: MemoryCfg | None = None,
        *,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        cfg = cfg or get_config().memory
        self.summarizer = summarizer
        self.token_budget = cfg.token_budget
        self._sessions: TTLCache[str, SessionMemory] = TTLCache(
            maxsize=cfg.max_sessions, ttl=cfg.session_idle_ttl, timer=timer
        )
        self._lock = threading.Lock()

    def get_memory(self, session_id: str) -> SessionMemory:
        if not session_id:
            raise ValueError("session_id is required")
        with self._lock:
            mem = self._sessions.get(session_id)
            if mem is None:
                mem = SessionMemory(session_id, self.summarizer, self.token_budget)
                logger.debug("memory.session_created", extra={"meta": {"session_id": session_id}})
            # re-insert to refresh the idle deadline
            self._sessions[session_id] = mem
            MEMORY_SESSIONS.set(len(self._sessions))
            return mem

    def evict(self, session_id: str) -> bool:
        with self._lock:
            removed = self._sessions.pop(session_id, None) is not None
            MEMORY_SESSIONS.set(len(self._sessions))
        return removed

    def evict_user(self, prefix: str) -> int:
        """Drop every session whose id starts with ``prefix``."""
        if not prefix:
            raise ValueError("prefix is required")
        with self._lock:
            doomed = [sid for sid in list(self._sessions.keys()) if sid.startswith(prefix)]
            for sid in doomed:
                self._sessions.pop(sid, None)
            MEMORY_SESSIONS.set(len(self._sessions))
        if doomed:
            logger.info("memory.evicted", extra={"meta": {"prefix": prefix, "count": len(doomed)}})
        return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions


__all__ = [
    "Turn",
    "SessionState",
    "SessionMemory",
    "ConversationMemoryManager",
]
