"""Memoized measurement name and tag resolution for metric names.

Regex evaluation happens once per distinct metric name; every later lookup,
including the filter predicate, is served from the memo table. Rules and tag
tables are frozen at construction, so a cached entry never goes stale.
"""
from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Pattern

from metrics_reporter.core.structured_logging import log_warning
from metrics_reporter.mapping.extractors import TagExtractor, TagTable, normalize_tag_table

logger = logging.getLogger(__name__)

MetricFilter = Callable[[str, Any], bool]

_EMPTY_TAGS: Mapping[str, str] = MappingProxyType({})


@dataclass(frozen=True)
class CacheEntry:
    measurement_name: Optional[str]
    tags: Mapping[str, str] = field(default_factory=lambda: _EMPTY_TAGS)

    @property
    def has_mapping(self) -> bool:
        return self.measurement_name is not None


_NO_MAPPING = CacheEntry(None)


class MeasurementMappingCache:
    """Resolve metric names to ``(measurement name, tags)`` and remember the result.

    ``mappings`` is an ordered ``{measurement: compiled pattern}`` table (see
    :func:`metrics_reporter.mapping.rules.compile_mappings`); patterns must
    match the whole metric name. ``measurement_tags`` declares, per
    measurement, the tag keys to extract from the match.

    ``max_entries`` bounds the memo table as an LRU. The default keeps every
    metric name seen for the lifetime of the cache.
    """

    def __init__(
        self,
        mappings: Optional[Mapping[str, Pattern[str]]] = None,
        measurement_tags: Optional[TagTable] = None,
        *,
        max_entries: Optional[int] = None,
    ):
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be positive")
        self._mappings = tuple((mappings or {}).items())
        self._tag_extractors = normalize_tag_table(measurement_tags)
        self._max_entries = max_entries
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def resolve(self, metric_name: str) -> CacheEntry:
        with self._lock:
            entry = self._entries.get(metric_name)
            if entry is not None:
                if self._max_entries is not None:
                    self._entries.move_to_end(metric_name)
                return entry

        computed = self._compute(metric_name)

        with self._lock:
            # a concurrent caller may have stored the same name meanwhile
            entry = self._entries.setdefault(metric_name, computed)
            if self._max_entries is not None:
                while len(self._entries) > self._max_entries:
                    self._entries.popitem(last=False)
        return entry

    def get_measurement_name(self, metric_name: str) -> str:
        """Mapped measurement name, or ``metric_name`` itself when nothing matched."""
        entry = self.resolve(metric_name)
        return entry.measurement_name if entry.has_mapping else metric_name

    def get_measurement_tags(self, metric_name: str) -> Mapping[str, str]:
        return self.resolve(metric_name).tags

    def get_filter(self) -> MetricFilter:
        """Metric filter accepting any metric with a measurement mapping."""

        def _has_mapping(name: str, metric: Any = None) -> bool:
            return self.resolve(name).has_mapping

        return _has_mapping

    def _compute(self, metric_name: str) -> CacheEntry:
        for measurement, pattern in self._mappings:
            match = pattern.fullmatch(metric_name)
            if match is None:
                continue
            extractors = self._tag_extractors.get(measurement)
            if not extractors:
                return CacheEntry(measurement)
            return CacheEntry(measurement, MappingProxyType(self._extract_tags(metric_name, match, extractors)))
        return _NO_MAPPING

    def _extract_tags(self, metric_name: str, match, extractors: Mapping[str, TagExtractor]) -> Dict[str, str]:
        tags: Dict[str, str] = {}
        for tag_key, extractor in extractors.items():
            try:
                value = extractor.extract(match)
            except Exception as exc:  # noqa: BLE001
                log_warning(
                    logger,
                    "tag_extraction_failed",
                    metric_name=metric_name,
                    tag_key=tag_key,
                    error=repr(exc),
                )
                continue
            if value is None:
                log_warning(
                    logger,
                    "tag_extraction_failed",
                    metric_name=metric_name,
                    tag_key=tag_key,
                    error="no value captured",
                )
                continue
            tags[tag_key] = str(value)
        return tags
