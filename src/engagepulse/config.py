"""Configuration loading and shared settings helpers."""

from __future__ import annotations

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_PATH = Path("configs") / "config.yaml"

DEFAULT_LOOKBACK_DAYS = 7
DEFAULT_TIMEZONE = "UTC"
DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def load_config(path: Path | str) -> Dict[str, Any]:
    path = Path(path)
    with path.open("r", encoding="utf-8") as handle:
        cfg = yaml.safe_load(handle) or {}
    if not isinstance(cfg, dict):
        raise ValueError("Configuration must be a mapping.")
    return cfg


def resolve_config_path(config_path: Path | str) -> Path:
    cfg_path = Path(config_path)
    if not cfg_path.is_absolute():
        cfg_path = PROJECT_ROOT / cfg_path
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    return cfg_path


def resolve_path(path: Path | str) -> Path:
    path = Path(path)
    if path.is_absolute():
        return path
    return PROJECT_ROOT / path


def configure_logging(cfg: Dict[str, Any]) -> None:
    """Configure the root logger from the ``logging`` section."""
    log_cfg = cfg.get("logging") or {}
    level_name = str(log_cfg.get("level", "INFO")).upper()
    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        raise ValueError(f"Unknown logging level: {level_name}")
    logging.basicConfig(level=level, format=log_cfg.get("format", DEFAULT_LOG_FORMAT))


def lookback_days(cfg: Dict[str, Any], override: int | None = None) -> int:
    """Return the lookback window length, validating it is a positive integer."""
    if override is not None:
        value = override
    else:
        value = (cfg.get("missing_homework") or {}).get("lookback_days", DEFAULT_LOOKBACK_DAYS)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Lookback window must be an integer number of days, got {value!r}")
    if value <= 0:
        raise ValueError(f"Lookback window must be greater than zero, got {value}")
    return value


def engine_timezone(cfg: Dict[str, Any]) -> ZoneInfo:
    name = (cfg.get("engine") or {}).get("timezone") or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(str(name))
    except ZoneInfoNotFoundError as exc:
        raise ValueError(f"Unknown time zone in engine.timezone: {name}") from exc


def today_in_timezone(cfg: Dict[str, Any]) -> date:
    """Today's calendar date in the deployment's configured time zone."""
    return datetime.now(engine_timezone(cfg)).date()


def max_workers(cfg: Dict[str, Any]) -> int:
    workers = int((cfg.get("engine") or {}).get("max_workers", 8))
    return max(1, workers)
