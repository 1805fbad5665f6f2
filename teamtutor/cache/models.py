from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, Field


def _now_ms() -> int:
    return int(time.time() * 1000)


class CachedMessage(BaseModel):
    """One conversation turn as stored in the conversation snapshot."""

    role: str
    text: str
    timestamp: float


class ConversationSnapshot(BaseModel):
    """Conversation memory state persisted under the ``conversation`` kind."""

    user_id: str
    task_context: str
    messages: list[CachedMessage] = Field(default_factory=list)
    summary: str = ""
    last_accessed: int = Field(default_factory=_now_ms)


class ContextSnapshot(BaseModel):
    """Assembled prompt context persisted under the ``context`` kind."""

    context: str
    agent_role: str
    user_id: str
    task_id: str
    timestamp: int = Field(default_factory=_now_ms)


class UserDataSnapshot(BaseModel):
    """User progress / history digest persisted under the ``user-data`` kind."""

    user_progress: list[Any] = Field(default_factory=list)
    all_conversations: list[Any] = Field(default_factory=list)
    agent_insights: list[Any] = Field(default_factory=list)
    last_updated: int = Field(default_factory=_now_ms)


class AgentInsightsSnapshot(BaseModel):
    """Per-agent insight summary persisted under the ``agent-insights`` kind."""

    insights: str
    agent_role: str
    user_id: str
    timestamp: int = Field(default_factory=_now_ms)


__all__ = [
    "CachedMessage",
    "ConversationSnapshot",
    "ContextSnapshot",
    "UserDataSnapshot",
    "AgentInsightsSnapshot",
]
