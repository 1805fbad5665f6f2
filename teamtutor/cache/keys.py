"""Cache key and TTL policy.

Pure, side-effect free mapping from an entity kind plus its identifying fields
to a namespaced Redis key and an expiry.

| kind           | identifiers                  | key                          | default TTL |
|----------------|------------------------------|------------------------------|-------------|
| conversation   | user_id, task_context        | ``conv:<user>:<task>``       | 24h         |
| context        | user_id, agent_role, task_id | ``ctx:<user>:<role>:<task>`` | 5 min       |
| user-data      | user_id                      | ``user:<user>:data``         | 4h          |
| agent-insights | user_id, agent_role          | ``insights:<user>:<role>``   | 1h          |

Identifiers are escaped (``%`` then ``:``) before joining, so two distinct
identifier tuples of the same kind can never produce the same key.
"""

from __future__ import annotations

from enum import Enum

from ..config_runtime import TTLCfg, get_config
from ..errors import MissingCacheIdentifier


class CacheKind(str, Enum):
    CONVERSATION = "conversation"
    CONTEXT = "context"
    USER_DATA = "user-data"
    AGENT_INSIGHTS = "agent-insights"


# kind -> (prefix, identifier names, fixed suffix)
_LAYOUT: dict[CacheKind, tuple[str, tuple[str, ...], str | None]] = {
    CacheKind.CONVERSATION: ("conv", ("user_id", "task_context"), None),
    CacheKind.CONTEXT: ("ctx", ("user_id", "agent_role", "task_id"), None),
    CacheKind.USER_DATA: ("user", ("user_id",), "data"),
    CacheKind.AGENT_INSIGHTS: ("insights", ("user_id", "agent_role"), None),
}


def _escape(part: str) -> str:
    return part.replace("%", "%25").replace(":", "%3A")


def _unescape(part: str) -> str:
    return part.replace("%3A", ":").replace("%25", "%")


def prefix_for(kind: CacheKind | str) -> str:
    return _LAYOUT[CacheKind(kind)][0]


def cache_key(kind: CacheKind | str, *identifiers: str) -> str:
    """Return the namespaced key for ``kind`` and its identifiers.

    Raises :class:`MissingCacheIdentifier` on wrong arity or blank identifiers.
    """
    kind = CacheKind(kind)
    prefix, names, suffix = _LAYOUT[kind]
    if len(identifiers) != len(names):
        raise MissingCacheIdentifier(
            f"{kind.value} key needs {len(names)} identifiers ({', '.join(names)}), "
            f"got {len(identifiers)}"
        )
    parts = [prefix]
    for name, value in zip(names, identifiers):
        if value is None or not str(value).strip():
            raise MissingCacheIdentifier(f"{kind.value} key is missing {name}")
        parts.append(_escape(str(value)))
    if suffix:
        parts.append(suffix)
    return ":".join(parts)


def parse_key(key: str) -> tuple[CacheKind, tuple[str, ...]]:
    """Inverse of :func:`cache_key`. Raises ``ValueError`` for foreign keys."""
    parts = key.split(":")
    for kind, (prefix, names, suffix) in _LAYOUT.items():
        expected = 1 + len(names) + (1 if suffix else 0)
        if parts[0] != prefix or len(parts) != expected:
            continue
        if suffix and parts[-1] != suffix:
            continue
        return kind, tuple(_unescape(p) for p in parts[1 : 1 + len(names)])
    raise ValueError(f"not a teamtutor cache key: {key!r}")


def key_prefix(kind: CacheKind | str, *leading: str) -> str:
    """Literal prefix shared by every key of ``kind`` starting with ``leading`` ids.

    ``key_prefix("conversation", "u1")`` is ``"conv:u1:"``; unlike
    :func:`user_pattern` the result is a plain string, not a glob.
    """
    kind = CacheKind(kind)
    prefix, names, _ = _LAYOUT[kind]
    if len(leading) > len(names):
        raise MissingCacheIdentifier(f"{kind.value} has only {len(names)} identifiers")
    parts = [prefix]
    for name, value in zip(names, leading):
        if value is None or not str(value).strip():
            raise MissingCacheIdentifier(f"{kind.value} prefix is missing {name}")
        parts.append(_escape(str(value)))
    return ":".join(parts) + ":"


def user_pattern(kind: CacheKind | str, user_id: str) -> str:
    """SCAN match pattern covering every key of ``kind`` owned by ``user_id``."""
    kind = CacheKind(kind)
    if not user_id or not str(user_id).strip():
        raise MissingCacheIdentifier(f"{kind.value} pattern is missing user_id")
    prefix, names, suffix = _LAYOUT[kind]
    # glob-special characters in the user id must not widen the match
    user = _escape(str(user_id))
    for ch in "\\*?[]":
        user = user.replace(ch, "\\" + ch)
    if len(names) == 1:
        return f"{prefix}:{user}:{suffix}" if suffix else f"{prefix}:{user}"
    return f"{prefix}:{user}:*"


def ttl_for(kind: CacheKind | str, cfg: TTLCfg | None = None) -> int:
    """Expiry in seconds for ``kind``."""
    cfg = cfg or get_config().ttl
    kind = CacheKind(kind)
    return {
        CacheKind.CONVERSATION: cfg.conversation,
        CacheKind.CONTEXT: cfg.context,
        CacheKind.USER_DATA: cfg.user_data,
        CacheKind.AGENT_INSIGHTS: cfg.agent_insights,
    }[kind]


__all__ = [
    "CacheKind",
    "cache_key",
    "parse_key",
    "prefix_for",
    "key_prefix",
    "user_pattern",
    "ttl_for",
]
