"""Observability helpers for VoiceRAG."""

from __future__ import annotations

import logging
import time

import structlog
from prometheus_client import Counter, Histogram

_logger_configured = False


def configure_logging(level: int | str = logging.INFO) -> None:
    global _logger_configured  # noqa: PLW0603 - module-level guard
    if _logger_configured:
        return
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logger_configured = True


def bind_correlation_id(correlation_id: str) -> None:
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def clear_correlation_id() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str = "voicerag") -> structlog.BoundLogger:
    # Lazy proxy: configuration applied later by create_app still takes effect.
    return structlog.get_logger(name)


class GatewayMetrics:
    """Prometheus metrics for provider calls and temporary files."""

    upstream_latency = Histogram(
        "voicerag_upstream_duration_seconds",
        "Time spent waiting on an upstream provider.",
        ["gateway", "outcome"],
        buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
    )
    upstream_errors = Counter(
        "voicerag_upstream_errors_total",
        "Failed upstream provider calls by error kind.",
        ["gateway", "kind"],
    )
    temp_files_created = Counter(
        "voicerag_temp_files_created_total",
        "Temporary files written by the request handlers.",
        ["field"],
    )
    temp_files_deleted = Counter(
        "voicerag_temp_files_deleted_total",
        "Temporary files removed after use.",
        ["field"],
    )

    @classmethod
    def observe_upstream(cls, gateway: str, duration_seconds: float, error: BaseException | None = None) -> None:
        outcome = "ok" if error is None else "error"
        cls.upstream_latency.labels(gateway=gateway, outcome=outcome).observe(duration_seconds)
        if error is not None:
            cls.upstream_errors.labels(gateway=gateway, kind=type(error).__name__).inc()


class TimedSection:
    """Context manager capturing elapsed time for metrics."""

    def __init__(self, callback) -> None:
        self._callback = callback
        self._start = 0.0

    def __enter__(self) -> "TimedSection":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        duration = time.perf_counter() - self._start
        self._callback(duration, exc)


__all__ = [
    "GatewayMetrics",
    "TimedSection",
    "bind_correlation_id",
    "clear_correlation_id",
    "configure_logging",
    "get_logger",
]
