"""Config layering: defaults <- config.yaml <- env."""

from __future__ import annotations

import pytest

from etf_analyzer import config as cfg_module


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    for var in (
        "ETF_LIMITER_MIN_TIME",
        "ETF_LIMITER_MAX_CONCURRENT",
        "ETF_REQUEST_TIMEOUT",
        "ETF_ERROR_LOG",
        "ETF_SYMBOLS",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("ETF_CONFIG", str(tmp_path / "missing.yaml"))


def test_defaults():
    cfg = cfg_module.get_config()
    assert cfg_module.provider_priority() == ["tencent", "sina", "netease"]
    assert cfg["breaker"]["failure_threshold"] == 3
    assert cfg_module.governor_settings()["min_time_ms"] == 500
    assert cfg_module.validation_settings()["price_ceiling"] == 1000.0
    assert cfg_module.error_log_path() == "data/datasource_error.log"


def test_deep_merge_keeps_siblings():
    merged = cfg_module._deep_merge({"a": {"x": 1, "y": 2}, "b": 1}, {"a": {"y": 3}})
    assert merged == {"a": {"x": 1, "y": 3}, "b": 1}


def test_yaml_overrides(monkeypatch, tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "providers:\n"
        "  priority: [sina, tencent]\n"
        "breaker:\n"
        "  cooldown_minutes: 5\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("ETF_CONFIG", str(path))
    assert cfg_module.provider_priority() == ["sina", "tencent"]
    assert cfg_module.breaker_settings()["cooldown_minutes"] == 5
    assert cfg_module.breaker_settings()["failure_threshold"] == 3
    assert "tencent" in cfg_module.provider_endpoints()


def test_empty_yaml_is_ignored(monkeypatch, tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("", encoding="utf-8")
    monkeypatch.setenv("ETF_CONFIG", str(path))
    assert cfg_module.request_timeout_s() == 10.0


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("ETF_LIMITER_MIN_TIME", "800")
    monkeypatch.setenv("ETF_LIMITER_MAX_CONCURRENT", "2")
    monkeypatch.setenv("ETF_REQUEST_TIMEOUT", "5")
    monkeypatch.setenv("ETF_SYMBOLS", "sh510300, sz159915,")
    assert cfg_module.governor_settings()["min_time_ms"] == 800
    assert cfg_module.governor_settings()["max_concurrent"] == 2
    assert cfg_module.request_timeout_s() == 5.0
    assert cfg_module.symbols() == ["sh510300", "sz159915"]


def test_empty_error_log_env_disables_file(monkeypatch):
    monkeypatch.setenv("ETF_ERROR_LOG", "")
    assert cfg_module.error_log_path() is None


def test_env_beats_yaml(monkeypatch, tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("governor:\n  min_time_ms: 1200\n", encoding="utf-8")
    monkeypatch.setenv("ETF_CONFIG", str(path))
    monkeypatch.setenv("ETF_LIMITER_MIN_TIME", "300")
    assert cfg_module.governor_settings()["min_time_ms"] == 300


def test_validation_limit_settings_reach_validator(monkeypatch, tmp_path):
    from etf_analyzer.providers.defaults import load_validation_config

    path = tmp_path / "config.yaml"
    path.write_text("validation:\n  limit_exempt_instruments: [sz159915]\n", encoding="utf-8")
    monkeypatch.setenv("ETF_CONFIG", str(path))
    vc = load_validation_config(cfg_module.validation_settings())
    assert vc.enforce_price_limit is True
    assert vc.limit_exempt_instruments == ["sz159915"]
