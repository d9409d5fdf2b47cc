import pytest
from pyformance.registry import MetricsRegistry
from sqlalchemy import create_engine, select, text
from sqlalchemy.exc import OperationalError

from metrics_reporter.core.errors import SinkUnavailableError
from metrics_reporter.db.models import MetricPoint
from metrics_reporter.db.session import create_session_factory
from metrics_reporter.mapping.rules import compile_mappings
from metrics_reporter.reporting.point import Point
from metrics_reporter.reporting.reporter import build_reporter
from metrics_reporter.reporting.settings import ReporterSettings
from metrics_reporter.services.sql_sink import SqlPointSink


def _build_session_factory():
    engine = create_engine("sqlite:///:memory:", future=True)
    return create_session_factory(engine)


def test_sql_sink_persists_batch():
    Session = _build_session_factory()
    sink = SqlPointSink(Session)

    sink.flush()
    sink.append_points(
        Point("requests", {"metricName": "api.requests"}, 1000, {"count": 3}),
        Point("latency", {"metricName": "api.latency"}, 1000, {"p99": 12.5}),
    )
    assert sink.has_series_data()
    sink.write_data()

    assert not sink.has_series_data()
    with Session() as session:
        rows = session.execute(select(MetricPoint).order_by(MetricPoint.id)).scalars().all()

    assert [r.measurement for r in rows] == ["requests", "latency"]
    assert rows[0].tags == {"metricName": "api.requests"}
    assert rows[0].fields == {"count": 3}
    assert rows[1].timestamp_ms == 1000


def test_reporter_writes_mapped_points_to_database():
    Session = _build_session_factory()
    registry = MetricsRegistry()
    registry.counter("com.example.resources.Users").inc(2)

    settings = ReporterSettings(
        measurement_mappings=compile_mappings({"resources": r".*\.resources\.(?<resourceName>.*)"}),
        measurement_tags={"resources": {"resourceName": None}},
    )
    reporter = build_reporter(registry, SqlPointSink(Session), settings, clock=lambda: 1.5)

    assert reporter.report_now() == 1

    with Session() as session:
        row = session.execute(select(MetricPoint)).scalar_one()
    assert row.measurement == "resources"
    assert row.tags["resourceName"] == "Users"
    assert row.timestamp_ms == 1500
    assert row.fields == {"count": 2}


def test_database_errors_become_sink_unavailable():
    def broken_factory():
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    sink = SqlPointSink(broken_factory)
    sink.append_points(Point("m", {}, 1, {"value": 1}))

    with pytest.raises(SinkUnavailableError, match="database is locked"):
        sink.write_data()

    # the failed batch stays buffered until the next cycle flushes it
    assert sink.has_series_data()
    sink.flush()
    assert not sink.has_series_data()


def test_points_are_stored_in_points_table():
    Session = _build_session_factory()
    sink = SqlPointSink(Session)
    sink.append_points(Point("requests", {}, 1000, {"count": 1}))
    sink.write_data()

    with Session() as session:
        measurements = session.execute(text("SELECT measurement FROM points")).scalars().all()

    assert MetricPoint.__tablename__ == "points"
    assert measurements == ["requests"]
