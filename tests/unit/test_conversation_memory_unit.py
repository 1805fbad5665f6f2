import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest

from teamtutor.cache.keys import CacheKind, key_prefix
from teamtutor.chat.pipeline import session_id_for
from teamtutor.config_runtime import MemoryCfg
from teamtutor.llm import StubGenerator
from teamtutor.memory import ConversationMemoryManager, SessionMemory, SessionState, Summarizer
from teamtutor.token_utils import count_tokens
from tests.helpers.fakes import RecordingGenerator


def _memory(budget=60, *replies):
    gen = RecordingGenerator(*replies) if replies else StubGenerator(reply="the learner asked about stakeholders")
    return SessionMemory("s1", Summarizer(gen), token_budget=budget), gen


def _sentence(i: int) -> str:
    return f"message {i} about stakeholder interviews for the campus dining project"


@pytest.mark.asyncio
async def test_state_machine():
    mem, _ = _memory(40)
    assert mem.state is SessionState.EMPTY
    await mem.add_turn("user", "hello")
    assert mem.state is SessionState.ACCUMULATING
    for i in range(10):
        await mem.add_turn("user", _sentence(i))
    assert mem.state is SessionState.COMPACTED
    assert mem.running_summary
    await mem.add_turn("assistant", "ok")
    assert mem.state in (SessionState.ACCUMULATING, SessionState.COMPACTED)


@pytest.mark.asyncio
async def test_budget_bound_holds_on_growing_session():
    mem, _ = _memory(60)
    for i in range(40):
        await mem.save_context(_sentence(i), f"reply {i} " + "detail " * 8)
        assert mem.estimated_tokens() <= mem.token_budget
    assert mem.turns, "most recent turns are kept verbatim"
    assert mem.turns[-1].text.startswith("reply 39")


@pytest.mark.asyncio
async def test_oversized_summary_is_clamped():
    long_summary = "summary " * 500
    mem, _ = _memory(50, long_summary)
    for i in range(12):
        await mem.add_turn("user", _sentence(i))
        assert mem.estimated_tokens() <= 50
    assert count_tokens(mem.running_summary) < count_tokens(long_summary)


@pytest.mark.asyncio
async def test_no_compaction_under_budget():
    mem, gen = _memory(1000, "unused")
    await mem.save_context("hi", "hello there")
    assert gen.calls == []
    assert mem.running_summary == ""
    assert len(mem.turns) == 2


@pytest.mark.asyncio
async def test_compaction_failure_keeps_history_and_retries():
    mem, gen = _memory(25, RuntimeError("llm down"), "condensed history")
    for i in range(3):
        await mem.add_turn("user", _sentence(i))

    # first attempt failed: nothing lost, failure recorded
    assert mem.compaction_failures == 1
    assert len(gen.calls) == 1
    assert [t.text for t in mem.turns] == [_sentence(i) for i in range(3)]
    assert mem.running_summary == ""
    assert mem.last_error

    await mem.add_turn("user", "one more")
    assert mem.running_summary == "condensed history"
    assert mem.estimated_tokens() <= mem.token_budget
    assert mem.last_error is None


@pytest.mark.asyncio
async def test_empty_summary_counts_as_failure():
    mem, _ = _memory(20, "   ")
    for i in range(3):
        await mem.add_turn("user", _sentence(i))
    assert mem.compaction_failures >= 1
    assert mem.running_summary == ""
    assert len(mem.turns) == 3


@pytest.mark.asyncio
async def test_writes_apply_in_submission_order():
    class SlowGen(StubGenerator):
        async def generate(self, prompt, *, system=None):
            await asyncio.sleep(0.01)
            return "summary"

    mem = SessionMemory("s1", Summarizer(SlowGen()), token_budget=40)
    await asyncio.gather(*(mem.add_turn("user", f"turn {i} " + "pad " * 5) for i in range(15)))
    numbers = [int(t.text.split()[1]) for t in mem.turns]
    assert numbers == sorted(numbers)
    assert numbers[-1] == 14


@pytest.mark.asyncio
async def test_invalid_role_rejected():
    mem, _ = _memory()
    with pytest.raises(ValueError):
        await mem.add_turn("system", "nope")


@pytest.mark.asyncio
async def test_snapshot_restore_round_trip():
    mem, _ = _memory(1000)
    await mem.save_context("what are stakeholders?", "people affected by the system")
    snap = mem.snapshot("u1", "stakeholders")

    other, _ = _memory(1000)
    await other.restore(snap)
    assert [(t.role, t.text) for t in other.turns] == [(t.role, t.text) for t in mem.turns]
    assert other.state is SessionState.ACCUMULATING
    vars_ = other.load_memory_variables()
    assert "Student: what are stakeholders?" in vars_["history"]
    assert vars_["summary"] == ""
    assert [t.text for t in other.recent_messages(1)] == ["people affected by the system"]
    assert other.recent_messages(0) == []


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


def _manager(clock=None, **overrides):
    cfg = MemoryCfg(
        token_budget=overrides.get("token_budget", 100),
        max_sessions=overrides.get("max_sessions", 16),
        session_idle_ttl=overrides.get("session_idle_ttl", 60),
    )
    kwargs = {"timer": clock} if clock is not None else {}
    return ConversationMemoryManager(Summarizer(StubGenerator()), cfg, **kwargs)


@pytest.mark.asyncio
async def test_concurrent_get_memory_returns_same_instance():
    mgr = _manager()

    async def get():
        await asyncio.sleep(0)
        return mgr.get_memory("s1")

    results = await asyncio.gather(*(get() for _ in range(50)))
    assert all(r is results[0] for r in results)
    assert len(mgr) == 1


def test_threaded_get_memory_returns_same_instance():
    mgr = _manager()
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: mgr.get_memory("s1"), range(64)))
    assert len({id(r) for r in results}) == 1


def test_session_map_is_bounded(clock):
    mgr = _manager(clock, max_sessions=2)
    for sid in ("a", "b", "c"):
        mgr.get_memory(sid)
    assert len(mgr) == 2


def test_idle_sessions_expire(clock):
    mgr = _manager(clock, session_idle_ttl=10)
    first = mgr.get_memory("a")
    clock.advance(5)
    assert mgr.get_memory("a") is first  # access refreshes the idle deadline
    clock.advance(9)
    assert "a" in mgr
    clock.advance(11)
    assert "a" not in mgr
    assert mgr.get_memory("a") is not first


def test_evict_and_evict_user():
    mgr = _manager()
    mgr.get_memory(session_id_for("u1", "t1"))
    mgr.get_memory(session_id_for("u1", "t2"))
    mgr.get_memory(session_id_for("u10", "t1"))

    assert mgr.evict_user(key_prefix(CacheKind.CONVERSATION, "u1")) == 2
    assert len(mgr) == 1
    assert mgr.evict(session_id_for("u10", "t1")) is True
    assert mgr.evict("missing") is False


def test_manager_uses_configured_budget():
    mgr = _manager(token_budget=321)
    assert mgr.get_memory("x").token_budget == 321
