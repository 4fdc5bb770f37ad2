"""Prometheus metrics definitions for Plyglot."""

from prometheus_client import Counter, Gauge, Histogram

# --- HTTP Metrics ---

HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# --- LLM Metrics ---

LLM_REQUESTS_TOTAL = Counter(
    "llm_requests_total",
    "Total LLM API requests",
    ["provider", "model", "kind"],
)

LLM_TOKENS_TOTAL = Counter(
    "llm_tokens_total",
    "Total LLM tokens consumed",
    ["provider", "model", "type"],  # type: input/output
)

LLM_COST_DOLLARS_TOTAL = Counter(
    "llm_cost_dollars_total",
    "Total LLM cost in USD",
    ["provider", "model"],
)

LLM_REQUEST_DURATION_SECONDS = Histogram(
    "llm_request_duration_seconds",
    "LLM request duration in seconds",
    ["provider", "model"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

# --- Chat Metrics ---

CHAT_MESSAGES_TOTAL = Counter(
    "chat_messages_total",
    "Chat messages processed",
    ["mode", "outcome"],  # outcome: success/invalid/failed
)

# --- WebSocket Metrics ---

WEBSOCKET_CONNECTIONS_ACTIVE = Gauge(
    "websocket_connections_active",
    "Number of active WebSocket connections",
)
