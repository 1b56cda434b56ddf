"""
Configuration for the CRM metrics engine.

Defaults live in DEFAULT_CONFIG. An optional YAML file is merged over them,
then environment variables (loaded from .env) take precedence.

Usage:
    from scripts.lib.config import load_config
    config = load_config("configs/metrics.yaml")
"""
from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from scripts.lib.errors import ConfigError
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(PROJECT_ROOT / ".env")

WEEKDAYS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

DEFAULT_CONFIG: Dict[str, Any] = {
    "week_start": "sunday",
    "trend_months": 6,
    "health_thresholds": {
        # overdue / total receivables, upper bounds
        "cash_flow": {"excellent": 0.05, "good": 0.15, "fair": 0.30},
        # profit margin %, lower bounds
        "profitability": {"excellent": 30, "good": 20, "fair": 10},
    },
    "paths": {
        "raw_dir": str(PROJECT_ROOT / "data" / "raw"),
        "processed_dir": str(PROJECT_ROOT / "data" / "processed"),
        "export_prefix": "crm_export",
    },
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _validate(config: Dict[str, Any], config_path: Optional[str]) -> None:
    week_start = str(config.get("week_start", "")).lower()
    if week_start not in WEEKDAYS:
        raise ConfigError(
            f"Unknown week_start '{config.get('week_start')}'",
            config_path=config_path, key="week_start",
        )
    config["week_start"] = week_start

    try:
        months = int(config.get("trend_months"))
    except (TypeError, ValueError):
        raise ConfigError(
            f"trend_months must be an integer, got {config.get('trend_months')!r}",
            config_path=config_path, key="trend_months",
        ) from None
    if months < 1:
        raise ConfigError(
            "trend_months must be at least 1",
            config_path=config_path, key="trend_months",
        )
    config["trend_months"] = months


def load_config(path: Optional[str | Path] = None) -> Dict[str, Any]:
    """Build the effective configuration.

    Order of precedence: environment > YAML file > DEFAULT_CONFIG.
    Raises ConfigError when the file is unreadable or a value is invalid.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    config_path = str(path) if path else None

    if path:
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}", config_path=config_path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}", config_path=config_path) from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config root must be a mapping: {path}", config_path=config_path)
        config = _deep_merge(config, data)
        logger.info("Loaded config overrides from %s", path.name)

    if os.getenv("METRICS_WEEK_START"):
        config["week_start"] = os.environ["METRICS_WEEK_START"]
    if os.getenv("METRICS_TREND_MONTHS"):
        config["trend_months"] = os.environ["METRICS_TREND_MONTHS"]

    _validate(config, config_path)
    return config


def week_start_index(config: Optional[Dict[str, Any]] = None) -> int:
    """Python weekday number (Monday = 0) the week starts on."""
    config = config or DEFAULT_CONFIG
    return WEEKDAYS[str(config.get("week_start", "sunday")).lower()]
