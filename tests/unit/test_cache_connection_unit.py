import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from teamtutor.cache.connection import RedisConnectionManager, translate_error
from teamtutor.config_runtime import get_config
from teamtutor.errors import CacheTimeout, CacheUnavailable
from tests.helpers.fakes import FakeRedis


class SlowPingRedis(FakeRedis):
    def __init__(self):
        super().__init__()
        self.started = asyncio.Event()

    async def ping(self):
        self.started.set()
        await asyncio.sleep(0.05)
        return await super().ping()


@pytest.mark.asyncio
async def test_concurrent_acquire_connects_once():
    created = []

    def factory(cfg):
        client = SlowPingRedis()
        created.append(client)
        return client

    mgr = RedisConnectionManager(get_config().cache, connection_factory=factory)
    clients = await asyncio.gather(*(mgr.acquire() for _ in range(10)))

    assert len(created) == 1
    assert mgr.connect_count == 1
    assert all(c is created[0] for c in clients)
    assert mgr.is_ready()
    assert mgr.status() == "ready"


@pytest.mark.asyncio
async def test_status_connecting_while_in_flight():
    client = SlowPingRedis()
    mgr = RedisConnectionManager(get_config().cache, connection_factory=lambda cfg: client)
    assert mgr.status() == "disconnected"
    task = asyncio.create_task(mgr.acquire())
    await client.started.wait()
    assert mgr.status() == "connecting"
    await task
    assert mgr.status() == "ready"


@pytest.mark.asyncio
async def test_cancelled_acquire_does_not_abort_other_callers():
    client = SlowPingRedis()
    mgr = RedisConnectionManager(get_config().cache, connection_factory=lambda cfg: client)
    first = asyncio.create_task(mgr.acquire())
    await client.started.wait()
    second = asyncio.create_task(mgr.acquire())
    await asyncio.sleep(0)

    first.cancel()
    assert await second is client
    assert first.cancelled()
    assert mgr.connect_count == 1
    assert mgr.status() == "ready"


@pytest.mark.asyncio
async def test_shutdown_then_acquire_reconnects():
    created = []

    def factory(cfg):
        created.append(FakeRedis())
        return created[-1]

    mgr = RedisConnectionManager(get_config().cache, connection_factory=factory)
    first = await mgr.acquire()
    await mgr.shutdown()

    assert first.closed
    assert not mgr.is_ready()
    assert mgr.status() == "closed"

    second = await mgr.acquire()
    assert second is not first
    assert not second.closed
    assert mgr.connect_count == 2
    assert mgr.status() == "ready"


@pytest.mark.asyncio
async def test_connect_failure_raises_cache_unavailable():
    client = FakeRedis()
    client.down = True
    mgr = RedisConnectionManager(get_config().cache, connection_factory=lambda cfg: client)

    with pytest.raises(CacheUnavailable):
        await mgr.acquire()
    assert not mgr.is_ready()
    assert client.closed
    assert await mgr.ping() is False


@pytest.mark.asyncio
async def test_failed_connect_is_retried_on_next_acquire():
    clients = [FakeRedis(), FakeRedis()]
    clients[0].down = True
    it = iter(clients)
    mgr = RedisConnectionManager(get_config().cache, connection_factory=lambda cfg: next(it))

    with pytest.raises(CacheUnavailable):
        await mgr.acquire()
    assert await mgr.acquire() is clients[1]


@pytest.mark.asyncio
async def test_command_error_marks_not_ready_and_recovers(fake_redis, cache_manager):
    await cache_manager.acquire()
    fake_redis.down = True

    with pytest.raises(CacheUnavailable):
        await cache_manager.run("get", lambda c: c.get("k"))
    assert not cache_manager.is_ready()

    fake_redis.down = False
    # stale client is re-pinged and reused instead of rebuilt
    assert await cache_manager.acquire() is fake_redis
    assert cache_manager.is_ready()
    assert cache_manager.connect_count == 1


@pytest.mark.asyncio
async def test_command_timeout_raises_cache_timeout(monkeypatch, fake_redis):
    monkeypatch.setenv("REDIS_COMMAND_TIMEOUT", "0.01")
    mgr = RedisConnectionManager(get_config().cache, connection_factory=lambda cfg: fake_redis)

    async def slow(client):
        await asyncio.sleep(1)

    with pytest.raises(CacheTimeout):
        await mgr.run("slow", slow)


def test_translate_error():
    assert isinstance(translate_error(RedisTimeoutError("t")), CacheTimeout)
    assert isinstance(translate_error(asyncio.TimeoutError()), CacheTimeout)
    assert isinstance(translate_error(RedisConnectionError("c")), CacheUnavailable)
    err = CacheUnavailable("x")
    assert translate_error(err) is err


@pytest.mark.asyncio
async def test_ping_true_when_healthy(cache_manager):
    assert await cache_manager.ping() is True
