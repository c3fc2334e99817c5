"""Utility helpers package."""

from weighted_approvals.util.logging import annotate, configure_logging, get_logger
from weighted_approvals.util.observability import (
    EventLogger,
    MetricsCollector,
    ObservabilityManager,
    create_observability_manager,
)

__all__ = [
    "EventLogger",
    "MetricsCollector",
    "ObservabilityManager",
    "annotate",
    "configure_logging",
    "create_observability_manager",
    "get_logger",
]
