"""Tests for configuration helpers."""

from __future__ import annotations

from datetime import date

import pytest

from engagepulse.config import (
    DEFAULT_CONFIG_PATH,
    PROJECT_ROOT,
    engine_timezone,
    load_config,
    lookback_days,
    max_workers,
    resolve_config_path,
    resolve_path,
    today_in_timezone,
)


def test_project_root_resolution() -> None:
    assert (PROJECT_ROOT / "configs").exists()
    assert resolve_config_path(DEFAULT_CONFIG_PATH) == PROJECT_ROOT / DEFAULT_CONFIG_PATH


def test_default_config_sections() -> None:
    cfg = load_config(resolve_config_path(DEFAULT_CONFIG_PATH))

    assert lookback_days(cfg) == 7
    assert str(engine_timezone(cfg)) == "Asia/Ho_Chi_Minh"
    assert cfg["store"]["backend"] == "files"


def test_lookback_override_and_validation() -> None:
    cfg = {"missing_homework": {"lookback_days": 14}}

    assert lookback_days(cfg) == 14
    assert lookback_days(cfg, 30) == 30
    assert lookback_days({}) == 7
    for bad in (0, -3, "7", 2.5, True):
        with pytest.raises(ValueError):
            lookback_days(cfg, bad)
    with pytest.raises(ValueError):
        lookback_days({"missing_homework": {"lookback_days": 0}})


def test_timezone_helpers() -> None:
    assert isinstance(today_in_timezone({"engine": {"timezone": "UTC"}}), date)
    with pytest.raises(ValueError):
        engine_timezone({"engine": {"timezone": "Mars/Olympus_Mons"}})


def test_max_workers_has_floor() -> None:
    assert max_workers({}) == 8
    assert max_workers({"engine": {"max_workers": 0}}) == 1


def test_config_must_be_mapping(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_config(path)
    with pytest.raises(FileNotFoundError):
        resolve_config_path(tmp_path / "missing.yaml")


def test_resolve_path_keeps_absolute(tmp_path) -> None:
    assert resolve_path(tmp_path) == tmp_path
    assert resolve_path("reports") == PROJECT_ROOT / "reports"
