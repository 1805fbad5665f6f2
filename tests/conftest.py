"""Test-specific fixtures."""

import os

import pytest

# Test mode must be set before teamtutor modules read their configuration
os.environ.setdefault("PYTEST_RUNNING", "1")
os.environ.setdefault("EMBEDDING_BACKEND", "stub")
os.environ.setdefault("VECTOR_STORE", "memory")
os.environ.setdefault("LLM_BACKEND", "stub")
os.environ.setdefault("OPENAI_API_KEY", "test")


@pytest.fixture(autouse=True, scope="session")
def _lock_test_env():
    """Force offline, deterministic backends for every test.

    - Stub embeddings and generator (no network, no model downloads)
    - In-memory vector index
    - Config re-read on each ``get_config()`` call so monkeypatched env applies
    """
    os.environ["PYTEST_RUNNING"] = "1"
    os.environ["EMBEDDING_BACKEND"] = "stub"
    os.environ["VECTOR_STORE"] = "memory"
    os.environ["LLM_BACKEND"] = "stub"
    yield


@pytest.fixture
def clock():
    from tests.helpers.fakes import FakeClock

    return FakeClock()


@pytest.fixture
def fake_redis(clock):
    from tests.helpers.fakes import FakeRedis

    return FakeRedis(clock)


@pytest.fixture
def cache_manager(fake_redis):
    from teamtutor.cache.connection import RedisConnectionManager
    from teamtutor.config_runtime import get_config

    return RedisConnectionManager(get_config().cache, connection_factory=lambda cfg: fake_redis)


@pytest.fixture
def cache_store(cache_manager):
    from teamtutor.cache.store import CacheStore

    return CacheStore(cache_manager)


@pytest.fixture
def stub_provider():
    from teamtutor.embeddings import StubEmbeddingProvider

    return StubEmbeddingProvider()


@pytest.fixture
def memory_index(stub_provider):
    from teamtutor.vector_store.memory import InMemoryVectorIndex

    return InMemoryVectorIndex(stub_provider)
