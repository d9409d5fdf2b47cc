import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from .config_loader import get_base_dir

LOGGER_NAME = "metrics_reporter"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


def setup_logging(config: Dict[str, Any]) -> logging.Logger:
    """Attach file and console handlers to the package logger.

    The ``logging`` block accepts ``level``, ``file`` (relative to the project
    root, or null to log to the console only), ``max_bytes`` and
    ``backup_count``. Calling this twice does not duplicate handlers.
    """
    logging_cfg = config.get("logging") or {}

    log_level_str = str(logging_cfg.get("level", "INFO")).upper()
    level = getattr(logging, log_level_str, logging.INFO)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    if logger.handlers:
        return logger

    fmt = logging.Formatter(LOG_FORMAT)

    log_file = _resolve_log_file(logging_cfg.get("file", "logs/metrics_reporter.log"))
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=int(logging_cfg.get("max_bytes", 10 * 1024 * 1024)),
            backupCount=int(logging_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setFormatter(fmt)
        logger.addHandler(file_handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(fmt)
    logger.addHandler(stream_handler)

    return logger


def _resolve_log_file(value: Optional[str]) -> Optional[Path]:
    if not value:
        return None
    path = Path(value)
    return path if path.is_absolute() else get_base_dir() / path
