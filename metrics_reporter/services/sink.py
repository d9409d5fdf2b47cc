from __future__ import annotations

import logging
import threading
from typing import List

from metrics_reporter.reporting.point import Point

logger = logging.getLogger(__name__)


class PointSink:
    """Buffer points for one report cycle and write them as a batch.

    The reporter calls :meth:`flush` at the start of every cycle, appends the
    cycle's points and calls :meth:`write_data` once. If writing fails the
    buffer is simply dropped by the next ``flush``.
    """

    def __init__(self) -> None:
        self._points: List[Point] = []

    def flush(self) -> None:
        self._points = []

    def append_points(self, *points: Point) -> None:
        self._points.extend(points)

    def has_series_data(self) -> bool:
        return bool(self._points)

    def pending(self) -> List[Point]:
        return list(self._points)

    def write_data(self) -> None:
        batch = self._points
        self._write(batch)
        self._points = []
        logger.debug("wrote %d points", len(batch))

    def _write(self, points: List[Point]) -> None:
        raise NotImplementedError


class MemorySink(PointSink):
    """Keeps every written batch in memory."""

    def __init__(self) -> None:
        super().__init__()
        self._lock = threading.Lock()
        self.batches: List[List[Point]] = []

    def _write(self, points: List[Point]) -> None:
        with self._lock:
            self.batches.append(list(points))

    @property
    def points(self) -> List[Point]:
        with self._lock:
            return [p for batch in self.batches for p in batch]
