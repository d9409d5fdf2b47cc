from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from metrics_reporter.db.settings import DatabaseSettings, load_database_settings

Base = declarative_base()


def create_db_engine(settings: Optional[DatabaseSettings] = None) -> Engine:
    db_settings = settings or load_database_settings()
    return create_engine(
        db_settings.url,
        echo=db_settings.echo,
        pool_pre_ping=True,
        future=True,
    )


def create_session_factory(engine: Engine, create_tables: bool = True) -> sessionmaker:
    if create_tables:
        # models register themselves on Base when imported
        from metrics_reporter.db import models  # noqa: F401

        Base.metadata.create_all(engine)
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        future=True,
    )
