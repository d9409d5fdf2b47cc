from __future__ import annotations

import logging
from typing import List

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import sessionmaker

from metrics_reporter.core.errors import SinkUnavailableError
from metrics_reporter.db.models import MetricPoint
from metrics_reporter.reporting.point import Point
from metrics_reporter.services.sink import PointSink

logger = logging.getLogger(__name__)


class SqlPointSink(PointSink):
    """Persist each report cycle's points to the ``points`` table."""

    def __init__(self, db_session_factory: sessionmaker):
        super().__init__()
        self.db_session_factory = db_session_factory

    def _write(self, points: List[Point]) -> None:
        rows = [
            MetricPoint(
                measurement=p.measurement,
                timestamp_ms=p.timestamp_ms,
                tags=dict(p.tags),
                fields=dict(p.fields),
            )
            for p in points
        ]
        try:
            with self.db_session_factory() as session:
                session.add_all(rows)
                session.commit()
        except DBAPIError as exc:
            raise SinkUnavailableError(f"metric points database unavailable: {exc}") from exc
        logger.debug("persisted %d metric points", len(rows))
