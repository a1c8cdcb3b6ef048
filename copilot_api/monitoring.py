"""Service monitoring: in-memory metrics, uptime and health checks."""

import threading
import time
from datetime import datetime, timezone
from typing import Any

import structlog

from copilot_api import __version__
from copilot_api.models import HealthChecks, HealthResponse
from copilot_api.observability import record_cache_operation

logger = structlog.get_logger()


class MonitoringService:
    """Tracks last-known metric values and answers health checks."""

    def __init__(self) -> None:
        self._start_time = time.monotonic()
        self._metrics: dict[str, float] = {}
        self._lock = threading.Lock()

    def record_metric(self, name: str, value: float, **tags: str) -> None:
        """Record a custom metric (last value wins) and log it."""
        with self._lock:
            self._metrics[name] = value
        logger.debug("Metric recorded", metric=name, value=value, tags=tags)

    def record_ai_usage(self, operation: str, duration: float, success: bool) -> None:
        """Record how long an AI operation took and whether it succeeded."""
        self.record_metric(
            "ai.operation",
            duration,
            operation=operation,
            success=str(success).lower(),
        )

    def record_cache_operation(self, operation: str, key: str) -> None:
        """Record a cache hit/miss/set. Only the key prefix is logged."""
        record_cache_operation(operation)
        self.record_metric("cache.operation", 1, operation=operation, key_prefix=key.split(":")[0])

    def record_error(self, error: BaseException, **context: Any) -> None:
        logger.error(
            "Error occurred",
            error=str(error),
            error_type=type(error).__name__,
            exc_info=error,
            **context,
        )

    def get_metrics(self) -> dict[str, float]:
        with self._lock:
            return dict(self._metrics)

    def get_uptime(self) -> float:
        """Seconds since the service started."""
        return time.monotonic() - self._start_time

    def perform_health_check(self) -> HealthResponse:
        """Check the response cache and the provider circuit.

        All checks passing is ``healthy``, some is ``degraded``, none is
        ``unhealthy``.
        """
        from copilot_api.ai_service import get_circuit_breaker
        from copilot_api.response_cache import get_response_cache

        cache_ok, cached_entries = self._check_cache(get_response_cache)
        breaker = get_circuit_breaker()
        circuit_state = breaker.state
        ai_ok = not breaker.is_open

        checks = HealthChecks(cache=cache_ok, ai_service=ai_ok)
        results = [cache_ok, ai_ok]
        if all(results):
            status = "healthy"
        elif any(results):
            status = "degraded"
        else:
            status = "unhealthy"

        return HealthResponse(
            status=status,
            checks=checks,
            circuit_state=circuit_state.value,
            cached_entries=cached_entries,
            uptime_seconds=round(self.get_uptime(), 3),
            version=__version__,
            timestamp=datetime.now(timezone.utc),
        )

    def _check_cache(self, get_cache: Any) -> tuple[bool, int]:
        try:
            return True, get_cache().count()
        except Exception as e:
            logger.error("Cache health check failed", error=str(e))
            return False, 0

    def log_startup(self, port: int, environment: str) -> None:
        logger.info(
            "Application started",
            port=port,
            environment=environment,
            version=__version__,
        )

    def log_shutdown(self, reason: str = "lifespan") -> None:
        logger.info(
            "Application shutting down",
            reason=reason,
            uptime_seconds=round(self.get_uptime(), 3),
        )


# Global monitoring instance
_monitoring_service: MonitoringService | None = None


def get_monitoring_service() -> MonitoringService:
    """Get the global monitoring service instance."""
    global _monitoring_service
    if _monitoring_service is None:
        _monitoring_service = MonitoringService()
    return _monitoring_service


def reset_monitoring_service() -> None:
    """Reset the global monitoring service (useful for testing)."""
    global _monitoring_service
    _monitoring_service = None
