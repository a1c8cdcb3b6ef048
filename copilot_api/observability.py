"""Observability utilities: trace IDs, AI metrics, and request logging.

This module provides:
- Trace ID generation and propagation via context vars
- Prometheus metrics for assist actions (outcomes, latency, cache, breaker)
- Structured logging helpers for assist request/response correlation
"""

import secrets
import time
from contextvars import ContextVar
from dataclasses import dataclass

import structlog
from prometheus_client import Counter, Gauge, Histogram

logger = structlog.get_logger()

# =============================================================================
# Trace ID Context
# =============================================================================

# Context variable for trace ID propagation across async calls
trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")


def generate_trace_id() -> str:
    """Generate cryptographically secure trace ID for request tracking."""
    return secrets.token_hex(16)  # 32 hex chars, same format as uuid4().hex


def get_trace_id() -> str:
    """Get current trace ID from context, or empty string if not set."""
    return trace_id_ctx.get()


def set_trace_id(trace_id: str) -> None:
    """Set trace ID in context."""
    trace_id_ctx.set(trace_id)


# =============================================================================
# Prometheus Metrics
# =============================================================================

ai_requests_total = Counter(
    "ai_requests_total",
    "Total assist requests by outcome",
    ["action", "outcome"],  # outcome: success, degraded, error
)

ai_latency_seconds = Histogram(
    "ai_latency_seconds",
    "Assist request latency in seconds",
    ["action"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
)

ai_provider_calls_total = Counter(
    "ai_provider_calls_total",
    "Calls made to the generation provider",
    ["status"],  # values: success, error, rejected
)

ai_cache_operations_total = Counter(
    "ai_cache_operations_total",
    "Response cache operations",
    ["operation"],  # values: hit, miss, set, stale_hit
)

ai_circuit_state = Gauge(
    "ai_circuit_state",
    "Provider circuit breaker state (0 closed, 1 half-open, 2 open)",
)

ai_active_requests = Gauge(
    "ai_active_requests",
    "Currently active assist requests",
    ["action"],
)

CIRCUIT_STATE_VALUES = {"closed": 0, "half_open": 1, "open": 2}


def record_cache_operation(operation: str) -> None:
    ai_cache_operations_total.labels(operation=operation).inc()


def record_provider_call(status: str) -> None:
    ai_provider_calls_total.labels(status=status).inc()


def record_circuit_state(state: str) -> None:
    ai_circuit_state.set(CIRCUIT_STATE_VALUES.get(state, 0))


# =============================================================================
# Assist Request Logging
# =============================================================================


@dataclass
class AIRequestLog:
    """Structured log data for an assist request."""

    trace_id: str
    action: str
    user_id: str | None
    payload_chars: int
    timestamp: float = 0.0

    def __post_init__(self) -> None:
        if self.timestamp == 0.0:
            self.timestamp = time.time()


def log_ai_request(action: str, user_id: str | None = None, payload_chars: int = 0) -> AIRequestLog:
    """Log the start of an assist request.

    Only sizes are logged; payload content and credentials never are.

    Returns AIRequestLog for correlation with the response.
    """
    log_data = AIRequestLog(
        trace_id=get_trace_id(),
        action=action,
        user_id=user_id,
        payload_chars=payload_chars,
    )

    logger.info(
        "ai_request",
        trace_id=log_data.trace_id,
        action=log_data.action,
        user_id=log_data.user_id,
        payload_chars=log_data.payload_chars,
    )

    ai_active_requests.labels(action=action).inc()
    return log_data


def log_ai_response(request_log: AIRequestLog, outcome: str, error: str | None = None) -> int:
    """Log the end of an assist request and update metrics.

    Returns:
        Latency in milliseconds.
    """
    latency_ms = int((time.time() - request_log.timestamp) * 1000)

    if outcome == "error":
        logger.error(
            "ai_response",
            trace_id=request_log.trace_id,
            action=request_log.action,
            outcome=outcome,
            latency_ms=latency_ms,
            error=error,
        )
    else:
        logger.info(
            "ai_response",
            trace_id=request_log.trace_id,
            action=request_log.action,
            outcome=outcome,
            latency_ms=latency_ms,
        )

    ai_active_requests.labels(action=request_log.action).dec()
    ai_requests_total.labels(action=request_log.action, outcome=outcome).inc()
    ai_latency_seconds.labels(action=request_log.action).observe(latency_ms / 1000.0)
    return latency_ms
