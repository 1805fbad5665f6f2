"""Redis-backed cache for conversation, context, user-data and insight snapshots."""

from .connection import RedisConnectionManager
from .keys import CacheKind, cache_key, ttl_for
from .models import (
    AgentInsightsSnapshot,
    CachedMessage,
    ContextSnapshot,
    ConversationSnapshot,
    UserDataSnapshot,
)
from .store import CacheStore

__all__ = [
    "RedisConnectionManager",
    "CacheStore",
    "CacheKind",
    "cache_key",
    "ttl_for",
    "CachedMessage",
    "ConversationSnapshot",
    "ContextSnapshot",
    "UserDataSnapshot",
    "AgentInsightsSnapshot",
]
