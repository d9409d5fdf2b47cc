"""Database settings for the SQL point sink.

The environment variable takes precedence over the ``database`` block of
config.yaml; without either, points go to a local SQLite file.
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

DB_URL_ENV_VAR = "METRICS_DB_URL"
DEFAULT_DB_URL = "sqlite:///metrics.db"


@dataclass
class DatabaseSettings:
    url: str = DEFAULT_DB_URL
    echo: bool = False


def load_database_settings(config: Optional[Dict[str, Any]] = None) -> DatabaseSettings:
    """Load DB settings from environment (preferred) or the given config."""

    db_cfg = (config or {}).get("database") or {}

    url = os.getenv(DB_URL_ENV_VAR) or db_cfg.get("url") or DEFAULT_DB_URL
    if not isinstance(url, str) or "://" not in url:
        raise RuntimeError(
            f"Invalid database url {url!r}. Set {DB_URL_ENV_VAR} or 'database.url' in config.yaml."
        )

    return DatabaseSettings(url=url, echo=bool(db_cfg.get("echo", False)))
