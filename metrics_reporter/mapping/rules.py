"""Compile measurement mappings from configuration.

Mappings are an ordered ``{measurement name: regex}`` table. Order is
significant: when several patterns match a metric name the first one wins.
"""
from __future__ import annotations

import re
from typing import Dict, Mapping, Optional, Pattern

from metrics_reporter.core.errors import MappingConfigError

# (?<name>...) as written for Java/PCRE; lookbehinds (?<= and (?<! are left alone
_ANGLE_NAMED_GROUP = re.compile(r"(?<!\\)\(\?<(?=[A-Za-z_])")


def normalize_pattern(pattern: str) -> str:
    """Rewrite ``(?<name>...)`` named groups to Python's ``(?P<name>...)``."""
    return _ANGLE_NAMED_GROUP.sub("(?P<", pattern)


def compile_pattern(measurement: str, pattern: str) -> Pattern[str]:
    if not isinstance(pattern, str):
        raise MappingConfigError(
            f"Mapping for measurement '{measurement}' must be a regex string",
            measurement=measurement,
        )
    try:
        return re.compile(normalize_pattern(pattern))
    except re.error as exc:
        raise MappingConfigError(
            f"Could not compile regex '{pattern}' for measurement '{measurement}': {exc}",
            measurement=measurement,
            pattern=pattern,
        ) from exc


def compile_mappings(mappings: Optional[Mapping[str, str]]) -> Dict[str, Pattern[str]]:
    """Compile every pattern eagerly, keeping the declared order."""
    return {
        measurement: compile_pattern(measurement, pattern)
        for measurement, pattern in (mappings or {}).items()
    }
