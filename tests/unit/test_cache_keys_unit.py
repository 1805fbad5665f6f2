import itertools

import pytest

from teamtutor.cache.keys import (
    CacheKind,
    cache_key,
    key_prefix,
    parse_key,
    ttl_for,
    user_pattern,
)
from teamtutor.errors import MissingCacheIdentifier


def test_key_layouts():
    assert cache_key(CacheKind.CONVERSATION, "u1", "task-a") == "conv:u1:task-a"
    assert cache_key(CacheKind.CONTEXT, "u1", "Product Owner", "t2") == "ctx:u1:Product Owner:t2"
    assert cache_key(CacheKind.USER_DATA, "u1") == "user:u1:data"
    assert cache_key(CacheKind.AGENT_INSIGHTS, "u1", "UX Designer") == "insights:u1:UX Designer"


def test_key_is_stable_and_accepts_string_kind():
    a = cache_key("conversation", "u1", "t")
    b = cache_key(CacheKind.CONVERSATION, "u1", "t")
    assert a == b == cache_key("conversation", "u1", "t")


def test_colon_in_identifier_does_not_collide():
    a = cache_key(CacheKind.CONVERSATION, "a:b", "c")
    b = cache_key(CacheKind.CONVERSATION, "a", "b:c")
    assert a != b
    assert parse_key(a) == (CacheKind.CONVERSATION, ("a:b", "c"))
    assert parse_key(b) == (CacheKind.CONVERSATION, ("a", "b:c"))


def test_no_collisions_across_kinds_and_ids():
    ids = ["u", "u:1", "u%3A1", "data", "%", ":"]
    keys = set()
    count = 0
    for kind in CacheKind:
        n = {
            CacheKind.CONVERSATION: 2,
            CacheKind.CONTEXT: 3,
            CacheKind.USER_DATA: 1,
            CacheKind.AGENT_INSIGHTS: 2,
        }[kind]
        for combo in itertools.product(ids, repeat=n):
            keys.add(cache_key(kind, *combo))
            count += 1
    assert len(keys) == count


@pytest.mark.parametrize(
    "kind, ids",
    [
        (CacheKind.CONVERSATION, ("u1",)),
        (CacheKind.CONTEXT, ("u1", "role")),
        (CacheKind.USER_DATA, ("u1", "extra")),
        (CacheKind.AGENT_INSIGHTS, ("u1", "")),
        (CacheKind.CONVERSATION, ("  ", "t")),
    ],
)
def test_missing_identifiers_raise(kind, ids):
    with pytest.raises(MissingCacheIdentifier):
        cache_key(kind, *ids)


def test_missing_identifier_is_value_error():
    assert issubclass(MissingCacheIdentifier, ValueError)


def test_user_pattern_and_prefix():
    assert user_pattern(CacheKind.CONTEXT, "u1") == "ctx:u1:*"
    assert user_pattern(CacheKind.USER_DATA, "u1") == "user:u1:data"
    # glob characters in ids are escaped
    assert user_pattern(CacheKind.CONTEXT, "u*") == "ctx:u\\*:*"
    assert key_prefix(CacheKind.CONVERSATION, "a:b") == "conv:a%3Ab:"
    assert cache_key(CacheKind.CONVERSATION, "a:b", "t").startswith(
        key_prefix(CacheKind.CONVERSATION, "a:b")
    )


def test_ttl_defaults():
    assert ttl_for(CacheKind.CONVERSATION) == 24 * 60 * 60
    assert ttl_for(CacheKind.CONTEXT) == 5 * 60
    assert ttl_for(CacheKind.USER_DATA) == 4 * 60 * 60
    assert ttl_for(CacheKind.AGENT_INSIGHTS) == 60 * 60


def test_ttl_override_from_env(monkeypatch):
    monkeypatch.setenv("TTL_CONTEXT", "42")
    monkeypatch.setenv("TTL_USER_DATA", "-5")  # invalid -> default
    assert ttl_for("context") == 42
    assert ttl_for("user-data") == 4 * 60 * 60
