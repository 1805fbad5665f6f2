"""Typed cache access for conversation, context, user-data and insight snapshots.

Every write goes through :meth:`CacheStore.put`, which sets the value and its
expiry in one ``SET key value EX ttl`` command. Reads that fail to parse are
logged and reported as misses.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from ..config_runtime import TTLCfg, get_config
from ..errors import CacheError
from ..metrics import CACHE_OPERATIONS
from .connection import RedisConnectionManager
from .keys import CacheKind, cache_key, prefix_for, ttl_for, user_pattern
from .models import (
    AgentInsightsSnapshot,
    ContextSnapshot,
    ConversationSnapshot,
    UserDataSnapshot,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)
T = TypeVar("T")


class CacheStore:
    """Cache reads/writes for the four snapshot kinds over one shared connection."""

    def __init__(self, manager: RedisConnectionManager, ttl: TTLCfg | None = None):
        self.manager = manager
        self._ttl = ttl or get_config().ttl

    # ------------------------------------------------------------------
    # Raw primitives
    # ------------------------------------------------------------------
    async def put(self, kind: CacheKind, identifiers: tuple[str, ...], value: str) -> str:
        key = cache_key(kind, *identifiers)
        ttl = ttl_for(kind, self._ttl)
        try:
            await self.manager.run("set", lambda c: c.set(key, value, ex=ttl))
        except CacheError:
            CACHE_OPERATIONS.labels(kind.value, "set", "error").inc()
            raise
        CACHE_OPERATIONS.labels(kind.value, "set", "ok").inc()
        logger.debug("cache.set", extra={"meta": {"key": key, "ttl": ttl, "size": len(value)}})
        return key

    async def fetch(self, kind: CacheKind, identifiers: tuple[str, ...]) -> str | None:
        key = cache_key(kind, *identifiers)
        try:
            raw = await self.manager.run("get", lambda c: c.get(key))
        except CacheError:
            CACHE_OPERATIONS.labels(kind.value, "get", "error").inc()
            raise
        CACHE_OPERATIONS.labels(kind.value, "get", "hit" if raw is not None else "miss").inc()
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return raw

    async def delete(self, kind: CacheKind, identifiers: tuple[str, ...]) -> bool:
        key = cache_key(kind, *identifiers)
        removed = await self.manager.run("delete", lambda c: c.delete(key))
        CACHE_OPERATIONS.labels(kind.value, "delete", "ok").inc()
        return bool(removed)

    async def _get_model(
        self, kind: CacheKind, identifiers: tuple[str, ...], model: type[M]
    ) -> M | None:
        raw = await self.fetch(kind, identifiers)
        if raw is None:
            return None
        try:
            return model.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(
                "cache.corrupt_entry",
                extra={"meta": {"kind": kind.value, "error": str(e)}},
            )
            return None

    async def _scan_delete(self, pattern: str) -> int:
        async def _run(client: Any) -> int:
            keys = [k async for k in client.scan_iter(match=pattern, count=200)]
            if not keys:
                return 0
            return int(await client.delete(*keys))

        return await self.manager.run("scan_delete", _run)

    # ------------------------------------------------------------------
    # Conversation memory
    # ------------------------------------------------------------------
    async def set_conversation(self, snapshot: ConversationSnapshot) -> None:
        await self.put(
            CacheKind.CONVERSATION,
            (snapshot.user_id, snapshot.task_context),
            snapshot.model_dump_json(),
        )

    async def get_conversation(
        self, user_id: str, task_context: str
    ) -> ConversationSnapshot | None:
        return await self._get_model(
            CacheKind.CONVERSATION, (user_id, task_context), ConversationSnapshot
        )

    async def delete_conversation(self, user_id: str, task_context: str) -> bool:
        return await self.delete(CacheKind.CONVERSATION, (user_id, task_context))

    # ------------------------------------------------------------------
    # Context cache
    # ------------------------------------------------------------------
    async def set_context(
        self, user_id: str, agent_role: str, task_id: str, context: str
    ) -> None:
        snap = ContextSnapshot(
            context=context, agent_role=agent_role, user_id=user_id, task_id=task_id
        )
        await self.put(
            CacheKind.CONTEXT, (user_id, agent_role, task_id), snap.model_dump_json()
        )

    async def get_context(
        self, user_id: str, agent_role: str, task_id: str
    ) -> str | None:
        snap = await self._get_model(
            CacheKind.CONTEXT, (user_id, agent_role, task_id), ContextSnapshot
        )
        return snap.context if snap else None

    async def clear_user_context(self, user_id: str) -> int:
        """Drop every context snapshot of ``user_id`` (e.g. after a step change)."""
        removed = await self._scan_delete(user_pattern(CacheKind.CONTEXT, user_id))
        logger.info(
            "cache.context_cleared", extra={"meta": {"user_id": user_id, "count": removed}}
        )
        return removed

    # ------------------------------------------------------------------
    # User data
    # ------------------------------------------------------------------
    async def set_user_data(self, user_id: str, data: UserDataSnapshot) -> None:
        await self.put(CacheKind.USER_DATA, (user_id,), data.model_dump_json())

    async def get_user_data(self, user_id: str) -> UserDataSnapshot | None:
        return await self._get_model(CacheKind.USER_DATA, (user_id,), UserDataSnapshot)

    async def clear_user_data(self, user_id: str) -> bool:
        return await self.delete(CacheKind.USER_DATA, (user_id,))

    # ------------------------------------------------------------------
    # Agent insights
    # ------------------------------------------------------------------
    async def set_agent_insights(self, user_id: str, agent_role: str, insights: str) -> None:
        snap = AgentInsightsSnapshot(insights=insights, agent_role=agent_role, user_id=user_id)
        await self.put(
            CacheKind.AGENT_INSIGHTS, (user_id, agent_role), snap.model_dump_json()
        )

    async def get_agent_insights(self, user_id: str, agent_role: str) -> str | None:
        snap = await self._get_model(
            CacheKind.AGENT_INSIGHTS, (user_id, agent_role), AgentInsightsSnapshot
        )
        return snap.insights if snap else None

    # ------------------------------------------------------------------
    # Read-through helper
    # ------------------------------------------------------------------
    async def get_or_compute(
        self,
        kind: CacheKind,
        identifiers: tuple[str, ...],
        compute: Callable[[], Awaitable[T]],
        *,
        dump: Callable[[T], str] = json.dumps,
        load: Callable[[str], T] = json.loads,
    ) -> T:
        """Return the cached value or compute, then cache, a fresh one.

        Cache errors on the read are treated as a miss. The value is only
        written after ``compute`` succeeded; a failed write-back is logged and
        the fresh value is still returned.
        """
        try:
            raw = await self.fetch(kind, identifiers)
        except CacheError as e:
            logger.warning(
                "cache.read_degraded", extra={"meta": {"kind": kind.value, "error": str(e)}}
            )
            raw = None
        if raw is not None:
            try:
                return load(raw)
            except (ValueError, ValidationError) as e:
                logger.warning(
                    "cache.corrupt_entry", extra={"meta": {"kind": kind.value, "error": str(e)}}
                )

        value = await compute()
        try:
            await self.put(kind, identifiers, dump(value))
        except CacheError as e:
            logger.warning(
                "cache.write_degraded", extra={"meta": {"kind": kind.value, "error": str(e)}}
            )
        return value

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------
    async def memory_stats(self) -> dict[str, Any]:
        """Key counts per kind plus Redis ``used_memory_human``."""

        async def _run(client: Any) -> dict[str, Any]:
            counts: dict[str, int] = {}
            for kind in CacheKind:
                n = 0
                async for _ in client.scan_iter(match=f"{prefix_for(kind)}:*", count=500):
                    n += 1
                counts[kind.value] = n
            info = await client.info("memory")
            return {
                "total_keys": sum(counts.values()),
                "keys_by_kind": counts,
                "used_memory_human": str(info.get("used_memory_human", "unknown")),
            }

        return await self.manager.run("stats", _run)


__all__ = ["CacheStore"]
