"""Metric filters: ``(metric_name, metric) -> bool`` predicates."""
from __future__ import annotations

from typing import Any, Optional

from metrics_reporter.mapping.cache import MetricFilter


def accept_all(name: str, metric: Any = None) -> bool:
    return True


def all_of(*filters: Optional[MetricFilter]) -> MetricFilter:
    """AND the given filters together; ``None`` entries are ignored."""
    active = [f for f in filters if f is not None]
    if not active:
        return accept_all
    if len(active) == 1:
        return active[0]

    def _combined(name: str, metric: Any = None) -> bool:
        return all(f(name, metric) for f in active)

    return _combined
