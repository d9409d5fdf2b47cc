"""HTTP status surface and wiring for a configured reporter.

Run with ``uvicorn metrics_reporter.main:app_from_config --factory``.
"""
from datetime import datetime
from typing import Optional

from fastapi import FastAPI
from pyformance.registry import MetricsRegistry, global_registry

from metrics_reporter.core.config_loader import load_config
from metrics_reporter.core.logging_config import setup_logging
from metrics_reporter.db.session import create_db_engine, create_session_factory
from metrics_reporter.db.settings import load_database_settings
from metrics_reporter.reporting.reporter import MetricsReporter, build_reporter
from metrics_reporter.reporting.settings import ReporterSettings
from metrics_reporter.services.sql_sink import SqlPointSink


def create_app(reporter: MetricsReporter, start_reporter: bool = False) -> FastAPI:
    app = FastAPI(
        title="Metrics Reporter",
        version="0.1.0",
        description="Ships registry snapshots as mapped time-series points",
    )

    if start_reporter:

        @app.on_event("startup")
        def on_startup():
            reporter.start()

        @app.on_event("shutdown")
        def on_shutdown():
            reporter.stop(timeout=5.0)

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "reporter_running": reporter.running,
            "cached_metric_names": len(reporter.mapping_cache),
            "time": datetime.utcnow().isoformat() + "Z",
        }

    @app.post("/report/now")
    def report_now():
        written = reporter.report_now()
        return {"points_written": written}

    @app.get("/mappings/resolve")
    def resolve_mapping(metric_name: str):
        cache = reporter.mapping_cache
        entry = cache.resolve(metric_name)
        return {
            "metric_name": metric_name,
            "matched": entry.has_mapping,
            "measurement": cache.get_measurement_name(metric_name),
            "tags": dict(entry.tags),
        }

    return app


def app_from_config(registry: Optional[MetricsRegistry] = None) -> FastAPI:
    config = load_config()
    logger = setup_logging(config)

    settings = ReporterSettings.from_config(config)
    engine = create_db_engine(load_database_settings(config))
    sink = SqlPointSink(create_session_factory(engine))
    reporter = build_reporter(registry if registry is not None else global_registry(), sink, settings)

    logger.info(
        "Metrics reporter configured: %d measurement mappings, interval=%ss",
        len(settings.measurement_mappings),
        settings.interval_seconds,
    )
    return create_app(reporter, start_reporter=True)
