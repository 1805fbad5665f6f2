"""Shared Redis connection handle.

One :class:`RedisConnectionManager` is created by the process owner and passed
to every component that talks to the cache. The client is created lazily on
the first :meth:`~RedisConnectionManager.acquire` and reused afterwards;
concurrent first callers share one in-flight connect. After
:meth:`~RedisConnectionManager.shutdown` the next ``acquire`` builds a fresh
client instead of handing out the closed one.

Connection problems are logged and re-raised as :class:`CacheUnavailable`;
commands that exceed their timeout raise :class:`CacheTimeout`. Retrying is
left to the redis-py transport (bounded exponential backoff per command).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import redis.asyncio as redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..config_runtime import CacheCfg, get_config
from ..errors import CacheError, CacheTimeout, CacheUnavailable
from ..metrics import CACHE_CONNECT_ATTEMPTS, CACHE_READY
from ..singleflight import SingleFlight

logger = logging.getLogger(__name__)

T = TypeVar("T")

ConnectionFactory = Callable[[CacheCfg], Any]


def build_redis_client(cfg: CacheCfg) -> redis.Redis:
    """Return an unconnected ``redis.asyncio`` client for ``cfg``."""
    retry = Retry(
        ExponentialBackoff(cap=1.0, base=max(cfg.retry_base_ms, 1) / 1000.0),
        cfg.max_retries,
    )
    return redis.Redis(
        host=cfg.host,
        port=cfg.port,
        password=cfg.password,
        db=cfg.db,
        decode_responses=True,
        socket_connect_timeout=cfg.connect_timeout,
        socket_timeout=cfg.command_timeout,
        socket_keepalive=cfg.keepalive,
        health_check_interval=30,
        retry=retry,
        retry_on_error=[RedisConnectionError, RedisTimeoutError],
    )


def translate_error(exc: BaseException) -> CacheError:
    """Map transport exceptions onto the cache error taxonomy."""
    if isinstance(exc, CacheError):
        return exc
    if isinstance(exc, (RedisTimeoutError, asyncio.TimeoutError, TimeoutError)):
        return CacheTimeout(str(exc) or "cache command timed out")
    return CacheUnavailable(str(exc) or exc.__class__.__name__)


class RedisConnectionManager:
    """Owns the single long-lived cache connection for the process."""

    def __init__(
        self,
        cfg: CacheCfg | None = None,
        *,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        self._cfg = cfg or get_config().cache
        self._factory = connection_factory or build_redis_client
        self._client: Any | None = None
        self._ready = False
        self._closed = False
        self._flight: SingleFlight[Any] = SingleFlight()
        self.connect_count = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def acquire(self) -> Any:
        """Return a ready client, connecting on first use."""
        client = self._client
        if client is not None and self._ready:
            return client
        return await self._flight.do("connect", self._connect)

    async def _connect(self) -> Any:
        if self._client is not None and self._ready:
            return self._client

        cfg = self._cfg
        meta = {"host": cfg.host, "port": cfg.port, "db": cfg.db}

        # A client that lost its connection gets one ping before it is replaced
        stale = self._client
        if stale is not None:
            try:
                await asyncio.wait_for(stale.ping(), timeout=cfg.command_timeout)
            except (RedisError, OSError, asyncio.TimeoutError) as e:
                logger.warning("cache.reconnect", extra={"meta": {**meta, "error": str(e)}})
                self._client = None
                await _close_quietly(stale)
            else:
                self._ready = True
                CACHE_READY.set(1)
                return stale

        logger.info("cache.connect", extra={"meta": meta})
        client = self._factory(cfg)
        self.connect_count += 1
        try:
            await asyncio.wait_for(client.ping(), timeout=cfg.connect_timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            CACHE_CONNECT_ATTEMPTS.labels("error").inc()
            logger.error(
                "cache.connect_failed", extra={"meta": {**meta, "error": str(e)}}
            )
            await _close_quietly(client)
            raise translate_error(e) from e

        CACHE_CONNECT_ATTEMPTS.labels("ok").inc()
        CACHE_READY.set(1)
        self._client = client
        self._ready = True
        self._closed = False
        logger.info("cache.ready", extra={"meta": meta})
        return client

    def is_ready(self) -> bool:
        """True when the connection can currently serve commands."""
        return self._client is not None and self._ready

    def status(self) -> str:
        if self._flight.in_flight("connect"):
            return "connecting"
        if self.is_ready():
            return "ready"
        if self._closed:
            return "closed"
        return "disconnected"

    async def ping(self) -> bool:
        """Health probe; never raises."""
        try:
            await self.run("ping", lambda c: c.ping())
        except CacheError:
            return False
        return True

    async def shutdown(self) -> None:
        """Close the connection; a later ``acquire`` reconnects from scratch."""
        client, self._client = self._client, None
        self._ready = False
        self._closed = True
        CACHE_READY.set(0)
        if client is not None:
            logger.info("cache.shutdown")
            await _close_quietly(client)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    async def run(self, op: str, fn: Callable[[Any], Awaitable[T]]) -> T:
        """Execute one command against the shared client.

        Transport errors become :class:`CacheUnavailable` / :class:`CacheTimeout`
        and mark the connection as not ready so the next ``acquire`` re-checks it.
        """
        client = await self.acquire()
        try:
            return await asyncio.wait_for(fn(client), timeout=self._cfg.command_timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            err = translate_error(e)
            if isinstance(e, (RedisConnectionError, OSError)):
                self._ready = False
                CACHE_READY.set(0)
            logger.warning(
                "cache.command_failed",
                extra={"meta": {"op": op, "error": str(e), "kind": type(err).__name__}},
            )
            raise err from e


async def _close_quietly(client: Any) -> None:
    try:
        await client.aclose()
    except (RedisError, OSError) as e:
        logger.debug("cache.close_failed: %s", e)


__all__ = ["RedisConnectionManager", "build_redis_client", "translate_error"]
