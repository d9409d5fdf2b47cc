"""Periodic reporter shipping pyformance registry snapshots to a point sink.

Each cycle reads every gauge, counter, histogram, meter and timer accepted by
the filter, turns it into a flat field map and appends one point per metric
(or per metric group) to the sink. Measurement names and mapping tags come
from :class:`~metrics_reporter.mapping.cache.MeasurementMappingCache`.
"""
from __future__ import annotations

import logging
import math
import threading
import time
from typing import Any, Callable, Dict, Mapping, NamedTuple, Optional

from pyformance.registry import MetricsRegistry

from metrics_reporter.core.structured_logging import log_warning
from metrics_reporter.mapping.cache import MeasurementMappingCache, MetricFilter
from metrics_reporter.reporting.filters import accept_all, all_of
from metrics_reporter.reporting.point import Point
from metrics_reporter.reporting.settings import ReporterSettings
from metrics_reporter.services.sink import PointSink

logger = logging.getLogger(__name__)


class MetricCollections(NamedTuple):
    gauges: Dict[str, Any]
    counters: Dict[str, Any]
    histograms: Dict[str, Any]
    meters: Dict[str, Any]
    timers: Dict[str, Any]


def collect_metrics(registry: MetricsRegistry, metric_filter: MetricFilter = accept_all) -> MetricCollections:
    """Snapshot the registry's metric tables, sorted by name and filtered."""

    def _select(table: Mapping[str, Any]) -> Dict[str, Any]:
        return {name: table[name] for name in sorted(table) if metric_filter(name, table[name])}

    # pyformance exposes no public listing of its metric objects; revisit on upgrade
    return MetricCollections(
        gauges=_select(dict(registry._gauges)),
        counters=_select(dict(registry._counters)),
        histograms=_select(dict(registry._histograms)),
        meters=_select(dict(registry._meters)),
        timers=_select(dict(registry._timers)),
    )


def sanitize_gauge_value(value: Any) -> Any:
    """Non-finite floats are not valid field values; report them as absent."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def split_group_name(name: str, default_field: str) -> tuple:
    prefix, dot, field_name = name.rpartition(".")
    if not dot:
        return name, default_field
    return prefix, field_name


class MetricsReporter:
    def __init__(
        self,
        registry: MetricsRegistry,
        sink: PointSink,
        settings: Optional[ReporterSettings] = None,
        mapping_cache: Optional[MeasurementMappingCache] = None,
        metric_filter: Optional[MetricFilter] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.registry = registry
        self.sink = sink
        self.settings = settings if settings is not None else ReporterSettings()
        # a new cache is empty and therefore falsy
        self.mapping_cache = mapping_cache if mapping_cache is not None else MeasurementMappingCache()
        self.metric_filter = metric_filter or accept_all
        self.clock = clock

        self._rate_factor = self.settings.rate_factor
        self._duration_factor = self.settings.duration_factor
        self._previous_counts: Dict[str, int] = {}

        self._report_lock = threading.Lock()
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    #  Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Start reporting every ``interval_seconds``; False if already running."""
        if self._thread is not None and self._thread.is_alive():
            return False
        self._stopped.clear()
        self._thread = threading.Thread(target=self._loop, name="metrics-reporter", daemon=True)
        self._thread.start()
        logger.info("metrics reporter started, interval=%ss", self.settings.interval_seconds)
        return True

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stopped.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None
        logger.info("metrics reporter stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self) -> None:
        # fixed delay: the next wait starts after the cycle completes
        while not self._stopped.wait(self.settings.interval_seconds):
            try:
                self.report_now()
            except Exception:  # noqa: BLE001
                logger.exception("metrics report cycle failed")

    # ------------------------------------------------------------------
    #  Reporting
    # ------------------------------------------------------------------

    def report_now(self) -> int:
        """Collect from the registry and report once. Returns points written."""
        return self.report(*collect_metrics(self.registry, self.metric_filter))

    def report(
        self,
        gauges: Optional[Mapping[str, Any]] = None,
        counters: Optional[Mapping[str, Any]] = None,
        histograms: Optional[Mapping[str, Any]] = None,
        meters: Optional[Mapping[str, Any]] = None,
        timers: Optional[Mapping[str, Any]] = None,
    ) -> int:
        """Report the given metric collections as one batch.

        Sink failures are logged and the batch discarded; they never propagate.
        """
        with self._report_lock:
            now = int(self.clock() * 1000)
            try:
                self.sink.flush()

                self._report_gauges(gauges or {}, now)

                for name, counter in (counters or {}).items():
                    self._report_counter(name, counter, now)

                for name, histogram in (histograms or {}).items():
                    self._report_histogram(name, histogram, now)

                self._report_meters(meters or {}, now)

                for name, timer in (timers or {}).items():
                    self._report_timer(name, timer, now)

                if not self.sink.has_series_data():
                    return 0
                written = len(self.sink.pending())
                self.sink.write_data()
                return written
            except ConnectionError as exc:
                log_warning(logger, "report_discarded", reason="sink unreachable", error=str(exc))
            except Exception as exc:  # noqa: BLE001
                log_warning(logger, "report_discarded", reason="report failed", error=str(exc))
            return 0

    def _report_gauges(self, gauges: Mapping[str, Any], now: int) -> None:
        if self.settings.group_gauges:
            for name, group in self._group_metrics(gauges, "value").items():
                self._report_metric_group(name, group, now, lambda g: sanitize_gauge_value(g.get_value()))
        else:
            for name, gauge in gauges.items():
                self._report_gauge(name, gauge, now)

    def _report_meters(self, meters: Mapping[str, Any], now: int) -> None:
        if self.settings.group_meters:
            for name, group in self._group_metrics(meters, "m1_rate").items():
                self._report_metric_group(name, group, now, lambda m: self._rate(m.get_one_minute_rate()))
        else:
            for name, meter in meters.items():
                self._report_meter(name, meter, now)

    @staticmethod
    def _group_metrics(metrics: Mapping[str, Any], default_field: str) -> Dict[str, Dict[str, Any]]:
        grouped: Dict[str, Dict[str, Any]] = {}
        for name, metric in metrics.items():
            group_name, field_name = split_group_name(name, default_field)
            grouped.setdefault(group_name, {})[field_name] = metric
        return grouped

    def _report_metric_group(self, name: str, group: Mapping[str, Any], now: int, get_value) -> None:
        fields = {}
        for field_name, metric in group.items():
            value = get_value(metric)
            if value is not None:
                fields[field_name] = value
        if fields:
            self._append(name, now, fields)

    def _report_gauge(self, name: str, gauge, now: int) -> None:
        value = sanitize_gauge_value(gauge.get_value())
        if value is not None:
            self._append(name, now, {"value": value})

    def _report_counter(self, name: str, counter, now: int) -> None:
        self._append(name, now, {"count": int(counter.get_count())})

    def _report_histogram(self, name: str, histogram, now: int) -> None:
        if self._can_skip_metric(name, histogram):
            return
        fields = {"count": int(histogram.get_count())}
        fields.update(self._distribution_fields(histogram, 1.0))
        self._append(name, now, fields)

    def _report_meter(self, name: str, meter, now: int) -> None:
        if self._can_skip_metric(name, meter):
            return
        fields = {"count": int(meter.get_count())}
        fields.update(self._rate_fields(meter))
        self._append(name, now, self._retain(fields, self.settings.include_meter_fields))

    def _report_timer(self, name: str, timer, now: int) -> None:
        if self._can_skip_metric(name, timer):
            return
        fields = {"count": int(timer.get_count())}
        fields.update(self._distribution_fields(timer, self._duration_factor))
        fields.update(self._rate_fields(timer))
        self._append(name, now, self._retain(fields, self.settings.include_timer_fields))

    def _distribution_fields(self, sampled, factor: float) -> Dict[str, float]:
        snapshot = sampled.get_snapshot()
        if sampled.get_count() > 0:
            summary = {
                "min": sampled.get_min(),
                "max": sampled.get_max(),
                "mean": sampled.get_mean(),
                "stddev": sampled.get_stddev(),
            }
        else:
            summary = {"min": 0.0, "max": 0.0, "mean": 0.0, "stddev": 0.0}
        summary.update(
            {
                "p50": snapshot.get_median(),
                "p75": snapshot.get_75th_percentile(),
                "p95": snapshot.get_95th_percentile(),
                "p98": snapshot.get_percentile(0.98),
                "p99": snapshot.get_99th_percentile(),
                "p999": snapshot.get_999th_percentile(),
            }
        )
        return {key: value * factor for key, value in summary.items()}

    def _rate_fields(self, metered) -> Dict[str, float]:
        return {
            "m1_rate": self._rate(metered.get_one_minute_rate()),
            "m5_rate": self._rate(metered.get_five_minute_rate()),
            "m15_rate": self._rate(metered.get_fifteen_minute_rate()),
            "mean_rate": self._rate(metered.get_mean_rate()),
        }

    def _rate(self, per_second: float) -> float:
        return per_second * self._rate_factor

    @staticmethod
    def _retain(fields: Dict[str, Any], include) -> Dict[str, Any]:
        if include is None:
            return fields
        return {k: v for k, v in fields.items() if k in include}

    # ------------------------------------------------------------------
    #  Idle metrics
    # ------------------------------------------------------------------

    def _can_skip_metric(self, name: str, counting) -> bool:
        count = int(counting.get_count())
        is_idle = self._calculate_delta(name, count) == 0
        if self.settings.skip_idle_metrics and not is_idle:
            self._previous_counts[name] = count
        return self.settings.skip_idle_metrics and is_idle

    def _calculate_delta(self, name: str, count: int) -> int:
        previous = self._previous_counts.get(name)
        if previous is None:
            return -1
        if count < previous:
            logger.warning("Saw a non-monotonically increasing value for metric '%s'", name)
            return 0
        return count - previous

    # ------------------------------------------------------------------
    #  Points
    # ------------------------------------------------------------------

    def _append(self, name: str, now: int, fields: Dict[str, Any]) -> None:
        self.sink.append_points(
            Point(
                measurement=self.mapping_cache.get_measurement_name(name),
                tags=self._measurement_tags(name),
                timestamp_ms=now,
                fields=fields,
            )
        )

    def _measurement_tags(self, name: str) -> Dict[str, str]:
        tags = dict(self.settings.tags)
        tags["metricName"] = name
        tags.update(self.mapping_cache.get_measurement_tags(name))
        return tags


def build_reporter(
    registry: MetricsRegistry,
    sink: PointSink,
    settings: ReporterSettings,
    clock: Callable[[], float] = time.time,
) -> MetricsReporter:
    """Create the mapping cache and reporter described by ``settings``.

    With ``filter_with_mappings`` only metrics matching a measurement mapping
    are reported, in addition to any explicit ``settings.filter``.
    """
    mapping_cache = MeasurementMappingCache(
        settings.measurement_mappings,
        settings.measurement_tags,
        max_entries=settings.mapping_cache_size,
    )
    metric_filter = settings.filter
    if settings.filter_with_mappings:
        metric_filter = all_of(settings.filter, mapping_cache.get_filter())
    return MetricsReporter(
        registry,
        sink,
        settings,
        mapping_cache=mapping_cache,
        metric_filter=metric_filter,
        clock=clock,
    )
