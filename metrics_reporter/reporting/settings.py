"""Typed reporter settings built from the ``reporter`` block of config.yaml."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Mapping, Optional, Pattern

from metrics_reporter.core.errors import MappingConfigError
from metrics_reporter.mapping.cache import MetricFilter
from metrics_reporter.mapping.extractors import TagExtractor, tag_table_from_config
from metrics_reporter.mapping.rules import compile_mappings

# seconds per unit
TIME_UNITS: Dict[str, float] = {
    "nanoseconds": 1e-9,
    "microseconds": 1e-6,
    "milliseconds": 1e-3,
    "seconds": 1.0,
    "minutes": 60.0,
    "hours": 3600.0,
    "days": 86400.0,
}

TIMER_FIELDS = frozenset(
    {
        "count", "min", "max", "mean", "stddev",
        "p50", "p75", "p95", "p98", "p99", "p999",
        "m1_rate", "m5_rate", "m15_rate", "mean_rate",
    }
)
METER_FIELDS = frozenset({"count", "m1_rate", "m5_rate", "m15_rate", "mean_rate"})


def _unit_seconds(name: str, option: str) -> float:
    try:
        return TIME_UNITS[str(name).lower()]
    except KeyError:
        raise ValueError(
            f"Unknown {option} '{name}'. Expected one of: " + ", ".join(TIME_UNITS)
        ) from None


def _field_set(values, allowed: FrozenSet[str], option: str) -> Optional[FrozenSet[str]]:
    if values is None:
        return None
    fields = frozenset(str(v) for v in values)
    unknown = sorted(fields - allowed)
    if unknown:
        raise ValueError(f"Unknown {option}: " + ", ".join(unknown))
    return fields


@dataclass
class ReporterSettings:
    interval_seconds: float = 10.0
    rate_unit: str = "seconds"
    duration_unit: str = "milliseconds"
    tags: Dict[str, str] = field(default_factory=dict)
    filter: Optional[MetricFilter] = None
    filter_with_mappings: bool = False
    skip_idle_metrics: bool = False
    group_gauges: bool = False
    group_meters: bool = False
    include_timer_fields: Optional[FrozenSet[str]] = None
    include_meter_fields: Optional[FrozenSet[str]] = None
    measurement_mappings: Dict[str, Pattern[str]] = field(default_factory=dict)
    measurement_tags: Dict[str, Dict[str, TagExtractor]] = field(default_factory=dict)
    mapping_cache_size: Optional[int] = None

    def __post_init__(self) -> None:
        if self.interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        _unit_seconds(self.rate_unit, "rate_unit")
        _unit_seconds(self.duration_unit, "duration_unit")
        unknown = sorted(set(self.measurement_tags) - set(self.measurement_mappings))
        if unknown:
            raise MappingConfigError(
                "Tags declared for unmapped measurements: " + ", ".join(unknown),
                measurement=unknown[0],
            )

    @property
    def rate_factor(self) -> float:
        """Multiplier turning per-second rates into per-``rate_unit`` rates."""
        return _unit_seconds(self.rate_unit, "rate_unit")

    @property
    def duration_factor(self) -> float:
        """Multiplier turning seconds into ``duration_unit``."""
        return 1.0 / _unit_seconds(self.duration_unit, "duration_unit")

    @classmethod
    def from_config(cls, config: Mapping[str, Any], metric_filter: Optional[MetricFilter] = None) -> "ReporterSettings":
        """Build settings from a loaded config (see ``core.config_loader.load_config``).

        Mapping regexes are compiled and extractor references imported here,
        so any configuration error surfaces before the reporter starts.
        """
        raw = config.get("reporter") or {}
        cache_size = raw.get("mapping_cache_size")
        return cls(
            interval_seconds=float(raw.get("interval_seconds", 10.0)),
            rate_unit=raw.get("rate_unit", "seconds"),
            duration_unit=raw.get("duration_unit", "milliseconds"),
            tags={str(k): str(v) for k, v in (raw.get("tags") or {}).items()},
            filter=metric_filter,
            filter_with_mappings=bool(raw.get("filter_with_mappings", False)),
            skip_idle_metrics=bool(raw.get("skip_idle_metrics", False)),
            group_gauges=bool(raw.get("group_gauges", False)),
            group_meters=bool(raw.get("group_meters", False)),
            include_timer_fields=_field_set(raw.get("include_timer_fields"), TIMER_FIELDS, "include_timer_fields"),
            include_meter_fields=_field_set(raw.get("include_meter_fields"), METER_FIELDS, "include_meter_fields"),
            measurement_mappings=compile_mappings(raw.get("measurement_mappings")),
            measurement_tags=tag_table_from_config(raw.get("measurement_tags")),
            mapping_cache_size=int(cache_size) if cache_size is not None else None,
        )
