"""
Prometheus business metrics for the qualification engine.

HTTP request metrics live in api/middleware/metrics.py; both register on
the default registry and are served from /metrics.
"""

from prometheus_client import Counter, Gauge, Histogram

TURN_COUNT = Counter(
    "leadqual_turns_total",
    "Processed turns",
    ["phase", "action"],
)
TURN_FAILURES = Counter(
    "leadqual_turn_failures_total",
    "Turns aborted with an apology message",
    ["reason"],
)
LEAD_SCORE_HIST = Histogram(
    "leadqual_lead_score",
    "Lead score distribution after each turn",
    buckets=[10, 20, 30, 40, 50, 60, 70, 80, 90, 100],
)
EXTRACTION_FALLBACKS = Counter(
    "leadqual_extraction_fallbacks_total",
    "Extractions that degraded to the empty delta",
)
COMPOSER_FALLBACKS = Counter(
    "leadqual_composer_fallbacks_total",
    "Replies that used the canned clarifying response",
)
LLM_LATENCY = Histogram(
    "leadqual_llm_duration_seconds",
    "Text completion latency",
    ["operation"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)
RETRIEVAL_LATENCY = Histogram(
    "leadqual_retrieval_duration_seconds",
    "Knowledge search latency",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0],
)
BOOKING_COUNT = Counter(
    "leadqual_bookings_total",
    "Meeting booking outcomes",
    ["outcome"],
)
CIRCUIT_OPEN = Gauge(
    "leadqual_circuit_open",
    "1 while a collaborator's circuit breaker is open",
    ["name"],
)


def record_turn(phase: str, action: str, score: int):
    """Record a completed turn."""
    TURN_COUNT.labels(phase=phase, action=action).inc()
    LEAD_SCORE_HIST.observe(score)


def record_turn_failure(reason: str):
    TURN_FAILURES.labels(reason=reason).inc()


def record_extraction_fallback():
    EXTRACTION_FALLBACKS.inc()


def record_composer_fallback():
    COMPOSER_FALLBACKS.inc()


def record_llm_latency(operation: str, seconds: float):
    """Record text completion latency."""
    LLM_LATENCY.labels(operation=operation).observe(seconds)


def record_retrieval_latency(seconds: float):
    """Record knowledge search latency."""
    RETRIEVAL_LATENCY.observe(seconds)


def record_booking(outcome: str):
    """Record a booking outcome (booked, failed, skipped)."""
    BOOKING_COUNT.labels(outcome=outcome).inc()


def record_circuit_state(name: str, is_open: bool):
    CIRCUIT_OPEN.labels(name=name).set(1 if is_open else 0)
