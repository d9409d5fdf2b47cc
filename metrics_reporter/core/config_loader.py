import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

_BASE_DIR = Path(__file__).resolve().parents[2]

CONFIG_ENV_VAR = "METRICS_REPORTER_CONFIG"

REPORTER_DEFAULTS: Dict[str, Any] = {
    "interval_seconds": 10.0,
    "rate_unit": "seconds",
    "duration_unit": "milliseconds",
    "tags": {},
    "filter_with_mappings": False,
    "skip_idle_metrics": False,
    "group_gauges": False,
    "group_meters": False,
    "include_timer_fields": None,
    "include_meter_fields": None,
    "measurement_mappings": {},
    "measurement_tags": {},
    "mapping_cache_size": None,
}


def get_base_dir() -> Path:
    return _BASE_DIR


def _safe_load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return data if isinstance(data, dict) else {}


def _merge_dicts(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = dict(base)
    for key, value in override.items():
        if (
            key in merged
            and isinstance(merged[key], dict)
            and isinstance(value, dict)
        ):
            merged[key] = _merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def _default_config_path() -> Path:
    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return _BASE_DIR / "config" / "config.yaml"


def apply_reporter_defaults(data: Dict[str, Any]) -> Dict[str, Any]:
    """Fill in missing ``reporter`` keys without overwriting configured ones."""
    reporter = data.get("reporter")
    if not isinstance(reporter, dict):
        reporter = {}
        data["reporter"] = reporter

    for key, value in REPORTER_DEFAULTS.items():
        reporter.setdefault(key, copy.deepcopy(value))
    return data


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load the YAML config and add defaults for the ``reporter`` block.

    A ``config.local.yaml`` next to the main file is merged on top of it so
    that deployment-specific tags and database URLs stay out of the template.
    """

    base_config_path = Path(path) if path is not None else _default_config_path()
    local_config_path = base_config_path.with_name("config.local.yaml")

    base_data = _safe_load_yaml(base_config_path)
    local_data = _safe_load_yaml(local_config_path)
    data = _merge_dicts(base_data, local_data)

    if not data:
        raise FileNotFoundError(
            f"Config file not found: {base_config_path} (and no local override)"
        )

    return apply_reporter_defaults(data)
