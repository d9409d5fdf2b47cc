"""JSON event lines for warnings that downstream log shippers parse.

Every entry is a single JSON object with an ``event`` key followed by the
event's fields, e.g.::

    {"event":"tag_extraction_failed","metric_name":"a.b","tag_key":"host","error":"..."}
"""
from __future__ import annotations

import json
import logging
from typing import Any, Mapping


def format_event(event: str, fields: Mapping[str, Any]) -> str:
    payload = {"event": event}
    payload.update(fields)
    return json.dumps(payload, ensure_ascii=False, default=str, separators=(",", ":"))


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    *,
    exc_info: bool = False,
    **fields: Any,
) -> None:
    if not logger.isEnabledFor(level):
        return
    logger.log(level, format_event(event, fields), exc_info=exc_info)


def log_warning(logger: logging.Logger, event: str, **fields: Any) -> None:
    log_event(logger, logging.WARNING, event, **fields)
