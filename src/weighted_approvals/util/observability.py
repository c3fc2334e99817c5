"""Structured event logging and in-process metrics for an evaluation run."""

from __future__ import annotations

import json
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator

from weighted_approvals.util.logging import get_logger


@dataclass(frozen=True)
class LogEvent:
    """Structured log event payload.

    Attributes:
        event_type: Machine-readable event name (e.g. ``evaluation.completed``).
        timestamp: Unix timestamp in seconds.
        payload: Structured data associated with the event.
        context: Shared context fields such as repository and pull number.
    """

    event_type: str
    timestamp: float
    payload: dict[str, Any]
    context: dict[str, Any] = field(default_factory=dict)


class EventLogger:
    """Logger that emits machine-readable JSON events."""

    def __init__(self, logger_name: str, context: dict[str, Any] | None = None) -> None:
        self._logger = get_logger(logger_name)
        self._context = context or {}

    def bind(self, **context: Any) -> EventLogger:
        """Return a logger sharing this one's output with extra context fields."""

        bound = EventLogger.__new__(EventLogger)
        bound._logger = self._logger
        bound._context = {**self._context, **context}
        return bound

    def log(
        self,
        event_type: str,
        payload: dict[str, Any],
        *,
        level: str = "INFO",
    ) -> None:
        """Emit a structured log event.

        Args:
            event_type: Machine-readable event name.
            payload: Structured event data.
            level: Logging level string (default: INFO).
        """

        event = LogEvent(
            event_type=event_type,
            timestamp=time.time(),
            payload=payload,
            context=dict(self._context),
        )
        message = json.dumps(event.__dict__, sort_keys=True, default=str)
        self._logger.log(_normalize_level(level), message)


@dataclass
class MetricsCollector:
    """Collects counters, durations and advisory token usage."""

    counters: dict[str, int] = field(default_factory=dict)
    durations: dict[str, list[float]] = field(default_factory=dict)
    tokens: dict[str, int] = field(default_factory=lambda: {"prompt": 0, "completion": 0, "total": 0})

    def increment(self, name: str, value: int = 1) -> None:
        self.counters[name] = self.counters.get(name, 0) + value

    def record_duration(self, name: str, duration_s: float) -> None:
        self.durations.setdefault(name, []).append(duration_s)

    def record_tokens(self, *, prompt_tokens: int = 0, completion_tokens: int = 0) -> None:
        """Record token usage reported by an advisory LLM call."""

        self.tokens["prompt"] += prompt_tokens
        self.tokens["completion"] += completion_tokens
        self.tokens["total"] += prompt_tokens + completion_tokens

    def snapshot(self) -> dict[str, Any]:
        """Return a snapshot of the collected metrics."""

        duration_summary: dict[str, dict[str, float]] = {}
        for name, values in self.durations.items():
            total = sum(values)
            count = len(values)
            duration_summary[name] = {
                "count": float(count),
                "total_s": total,
                "avg_s": total / count if count else 0.0,
            }
        return {
            "counters": dict(self.counters),
            "durations": duration_summary,
            "tokens": dict(self.tokens),
        }


@dataclass(frozen=True)
class ObservabilityManager:
    """Container for structured logging and metrics collection."""

    events: EventLogger
    metrics: MetricsCollector

    def log_event(self, event_type: str, payload: dict[str, Any], *, level: str = "INFO") -> None:
        self.events.log(event_type, payload, level=level)

    @contextmanager
    def track_duration(self, metric_name: str) -> Iterator[None]:
        """Track duration of a code block as a metric."""

        start = time.perf_counter()
        try:
            yield
        finally:
            self.metrics.record_duration(metric_name, time.perf_counter() - start)


def create_observability_manager(**context: Any) -> ObservabilityManager:
    """Create an observability manager whose events carry the given context."""

    return ObservabilityManager(
        events=EventLogger("weighted_approvals.events", context=context),
        metrics=MetricsCollector(),
    )


def _normalize_level(level: str) -> int:
    normalized = level.strip().upper()
    return getattr(logging, normalized, logging.INFO)
