from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from typing import Any


def _as_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}


def _as_float(val: str | None, default: float) -> float:
    try:
        return float(val) if val is not None else float(default)
    except Exception:
        return float(default)


def _as_int(val: str | None, default: int) -> int:
    try:
        return int(val) if val is not None else int(default)
    except Exception:
        return int(default)


def _as_positive_int(val: str | None, default: int) -> int:
    value = _as_int(val, default)
    return value if value > 0 else int(default)


@dataclass(frozen=True)
class CacheCfg:
    host: str
    port: int
    password: str | None
    db: int
    max_retries: int
    retry_base_ms: int
    connect_timeout: float
    command_timeout: float
    keepalive: bool


@dataclass(frozen=True)
class TTLCfg:
    conversation: int
    context: int
    user_data: int
    agent_insights: int


@dataclass(frozen=True)
class IngestCfg:
    chunk_size: int
    chunk_overlap: int


@dataclass(frozen=True)
class RetrievalCfg:
    k: int
    vector_store: str
    qdrant_url: str
    qdrant_api_key: str | None
    qdrant_collection: str


@dataclass(frozen=True)
class EmbeddingCfg:
    backend: str
    model: str
    dim: int
    local_model: str


@dataclass(frozen=True)
class MemoryCfg:
    token_budget: int
    max_sessions: int
    session_idle_ttl: int


@dataclass(frozen=True)
class LLMCfg:
    backend: str
    model: str


@dataclass(frozen=True)
class RuntimeConfig:
    cache: CacheCfg
    ttl: TTLCfg
    ingest: IngestCfg
    retrieval: RetrievalCfg
    embedding: EmbeddingCfg
    memory: MemoryCfg
    llm: LLMCfg

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        if d["cache"].get("password"):
            d["cache"]["password"] = "***"
        if d["retrieval"].get("qdrant_api_key"):
            d["retrieval"]["qdrant_api_key"] = "***"
        return d


def _load_config() -> RuntimeConfig:
    cache = CacheCfg(
        host=os.getenv("REDIS_HOST", "localhost"),
        port=_as_int(os.getenv("REDIS_PORT"), 6379),
        password=os.getenv("REDIS_PASSWORD") or None,
        db=_as_int(os.getenv("REDIS_DB"), 0),
        max_retries=_as_int(os.getenv("REDIS_MAX_RETRIES"), 3),
        retry_base_ms=_as_int(os.getenv("REDIS_RETRY_BASE_MS"), 100),
        connect_timeout=_as_float(os.getenv("REDIS_CONNECT_TIMEOUT"), 10.0),
        command_timeout=_as_float(os.getenv("REDIS_COMMAND_TIMEOUT"), 5.0),
        keepalive=_as_bool(os.getenv("REDIS_KEEPALIVE"), True),
    )
    ttl = TTLCfg(
        conversation=_as_positive_int(os.getenv("TTL_CONVERSATION"), 24 * 60 * 60),
        context=_as_positive_int(os.getenv("TTL_CONTEXT"), 5 * 60),
        user_data=_as_positive_int(os.getenv("TTL_USER_DATA"), 4 * 60 * 60),
        agent_insights=_as_positive_int(os.getenv("TTL_AGENT_INSIGHTS"), 60 * 60),
    )
    ingest = IngestCfg(
        chunk_size=_as_positive_int(os.getenv("CHUNK_SIZE"), 1000),
        chunk_overlap=max(0, _as_int(os.getenv("CHUNK_OVERLAP"), 200)),
    )
    retrieval = RetrievalCfg(
        k=_as_positive_int(os.getenv("RETRIEVAL_K"), 3),
        vector_store=os.getenv("VECTOR_STORE", "memory").strip().lower(),
        qdrant_url=os.getenv("QDRANT_URL", "http://localhost:6333"),
        qdrant_api_key=os.getenv("QDRANT_API_KEY") or None,
        qdrant_collection=os.getenv("QDRANT_COLLECTION", "documents"),
    )
    embedding = EmbeddingCfg(
        backend=os.getenv("EMBEDDING_BACKEND", "openai").strip().lower(),
        model=os.getenv("EMBED_MODEL", "text-embedding-3-small"),
        dim=_as_positive_int(os.getenv("EMBED_DIM"), 1536),
        local_model=os.getenv("LOCAL_EMBED_MODEL", "all-MiniLM-L6-v2"),
    )
    memory = MemoryCfg(
        token_budget=_as_positive_int(os.getenv("MEMORY_TOKEN_BUDGET"), 1000),
        max_sessions=_as_positive_int(os.getenv("MEMORY_MAX_SESSIONS"), 1024),
        session_idle_ttl=_as_positive_int(
            os.getenv("MEMORY_SESSION_IDLE_TTL"), 24 * 60 * 60
        ),
    )
    llm = LLMCfg(
        backend=os.getenv("LLM_BACKEND", "openai").strip().lower(),
        model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
    )
    return RuntimeConfig(cache, ttl, ingest, retrieval, embedding, memory, llm)


# Read once at import (startup)
_CONFIG: RuntimeConfig = _load_config()


def get_config() -> RuntimeConfig:
    # In tests, reflect the latest environment on each call so monkeypatched
    # env vars take effect immediately.
    if os.getenv("PYTEST_RUNNING", "").strip().lower() in {"1", "true", "yes"}:
        return _load_config()
    return _CONFIG


__all__ = [
    "CacheCfg",
    "TTLCfg",
    "IngestCfg",
    "RetrievalCfg",
    "EmbeddingCfg",
    "MemoryCfg",
    "LLMCfg",
    "RuntimeConfig",
    "get_config",
]
