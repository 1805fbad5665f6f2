from prometheus_client import Counter, Gauge, Histogram

# Cache
CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache operations by kind",
    ["kind", "operation", "result"],
)

CACHE_CONNECT_ATTEMPTS = Counter(
    "cache_connect_attempts_total",
    "Cache connection attempts",
    ["result"],
)

CACHE_READY = Gauge(
    "cache_connection_ready",
    "1 when the shared cache connection is ready",
)

# Embeddings / vector index
EMBEDDING_LATENCY_SECONDS = Histogram(
    "embedding_latency_seconds",
    "Embedding call latency (seconds)",
    ["backend"],
)

VECTOR_OP_LATENCY_SECONDS = Histogram(
    "vector_op_latency_seconds",
    "Vector store operation latency (seconds)",
    ["backend", "operation"],
)

# Ingestion
INGEST_ITEMS = Counter(
    "ingest_items_total",
    "Ingestion items by outcome",
    ["status"],
)

INGEST_CHUNKS = Counter(
    "ingest_chunks_total",
    "Chunks written to the vector index",
)

# Conversation memory
MEMORY_COMPACTIONS = Counter(
    "memory_compactions_total",
    "Conversation memory compaction passes",
    ["result"],
)

MEMORY_SESSIONS = Gauge(
    "memory_sessions_resident",
    "Conversation memory objects resident in process",
)

# Chat pipeline degradations
PIPELINE_DEGRADED = Counter(
    "pipeline_degraded_total",
    "Chat pipeline fallbacks taken",
    ["stage"],
)
