"""
Prometheus metrics

Exposed by ``GET /metrics`` (see ``api/routers/metrics.py``).
"""
from prometheus_client import Counter, Gauge, Histogram

questions_asked_total = Counter(
    "ecosbot_questions_asked_total",
    "Questions answered by the course assistant",
)

questions_blocked_total = Counter(
    "ecosbot_questions_blocked_total",
    "Questions refused because the daily quota was reached",
)

ecos_sessions_started_total = Counter(
    "ecosbot_ecos_sessions_started_total",
    "ECOS exam sessions started",
)

ecos_sessions_completed_total = Counter(
    "ecosbot_ecos_sessions_completed_total",
    "ECOS exam sessions completed",
    ["reason"],  # manual, evaluation, expired
)

ecos_sessions_active = Gauge(
    "ecosbot_ecos_sessions_active",
    "ECOS sessions in progress (refreshed by the expiry sweep)",
)

evaluations_total = Counter(
    "ecosbot_evaluations_total",
    "ECOS evaluations generated",
    ["status"],  # success, error
)

llm_requests_total = Counter(
    "ecosbot_llm_requests_total",
    "Calls to the language model provider",
    ["provider", "status"],
)

llm_request_duration_seconds = Histogram(
    "ecosbot_llm_request_duration_seconds",
    "Latency of language model calls",
    ["provider"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

cache_hits = Counter("ecosbot_retrieval_cache_hits_total", "Retrieval cache hits")
cache_misses = Counter("ecosbot_retrieval_cache_misses_total", "Retrieval cache misses")
