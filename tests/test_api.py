from fastapi.testclient import TestClient
from pyformance.registry import MetricsRegistry

from metrics_reporter.main import create_app
from metrics_reporter.mapping.rules import compile_mappings
from metrics_reporter.reporting.reporter import build_reporter
from metrics_reporter.reporting.settings import ReporterSettings
from metrics_reporter.services.sink import MemorySink


def _client():
    registry = MetricsRegistry()
    registry.counter("com.example.resources.Users").inc()
    settings = ReporterSettings(
        measurement_mappings=compile_mappings({"resources": r".*\.resources\.(?<resourceName>.*)"}),
        measurement_tags={"resources": {"resourceName": None}},
    )
    reporter = build_reporter(registry, MemorySink(), settings, clock=lambda: 2.0)
    return TestClient(create_app(reporter)), reporter


def test_health_reports_reporter_state():
    client, _ = _client()

    body = client.get("/health").json()

    assert body["status"] == "ok"
    assert body["reporter_running"] is False
    assert body["cached_metric_names"] == 0


def test_manual_report_trigger():
    client, reporter = _client()

    resp = client.post("/report/now")

    assert resp.status_code == 200
    assert resp.json() == {"points_written": 1}
    [point] = reporter.sink.points
    assert point.measurement == "resources"
    assert point.timestamp_ms == 2000


def test_resolve_mapping_endpoint():
    client, _ = _client()

    matched = client.get("/mappings/resolve", params={"metric_name": "com.example.resources.Orders"}).json()
    unmatched = client.get("/mappings/resolve", params={"metric_name": "jvm.threads"}).json()

    assert matched == {
        "metric_name": "com.example.resources.Orders",
        "matched": True,
        "measurement": "resources",
        "tags": {"resourceName": "Orders"},
    }
    assert unmatched["matched"] is False
    assert unmatched["measurement"] == "jvm.threads"
    assert unmatched["tags"] == {}
    assert client.get("/health").json()["cached_metric_names"] == 2
