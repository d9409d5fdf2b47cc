from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass
class Point:
    """One time-series point as handed to a sink."""

    measurement: str
    tags: Dict[str, str]
    timestamp_ms: int
    fields: Dict[str, Any] = field(default_factory=dict)
