"""
Load config from config.yaml with optional env overrides.
Single source of truth for provider endpoints and priorities, breaker and
governor thresholds, validation limits, trading hours and the error log path.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

# Defaults if no YAML or env
_DEFAULTS: Dict[str, Any] = {
    "providers": {
        "priority": ["tencent", "sina", "netease"],
        "request_timeout_s": 10.0,
        "endpoints": {
            "tencent": {
                "name": "Tencent Finance",
                "realtime": "https://qt.gtimg.cn/q={symbol}",
                "series": "https://web.ifzq.gtimg.cn/appstock/app/fqkline/get?param={symbol},day,,,{count},qfq",
            },
            "sina": {
                "name": "Sina Finance",
                "realtime": "https://hq.sinajs.cn/list={symbol}",
                "series": (
                    "https://money.finance.sina.com.cn/quotes_service/api/json_v2.php/"
                    "CN_MarketData.getKLineData?symbol={symbol}&scale=240&ma=no&datalen={count}"
                ),
            },
            "netease": {
                "name": "NetEase Money",
                "realtime": "https://api.money.126.net/data/feed/{symbol},money.api",
                "series": "https://img1.money.126.net/data/hs/kline/day/history/{symbol}.json",
            },
        },
    },
    "breaker": {
        "failure_threshold": 3,
        "cooldown_minutes": 10,
        "quality_window_minutes": 60,
        "quality_issue_threshold": 10,
    },
    "governor": {
        "min_time_ms": 500,
        "max_concurrent": 3,
        "min_min_time_ms": 200,
        "max_min_time_ms": 2000,
        "min_concurrent": 1,
        "max_concurrent_limit": 5,
        "adjust_interval_s": 30,
        "min_requests": 10,
    },
    "validation": {
        "price_floor": 0.0,
        "price_ceiling": 1000.0,
        "max_change_pct": 0.20,
        "low_price_change_pct": 0.30,
        "low_price_cutoff": 1.0,
        "trading_hours_factor": 1.2,
        "limit_pct": 0.10,
        "limit_tolerance": 0.01,
        "cache_ttl_s": 300,
        "enforce_price_limit": True,
        "limit_exempt_instruments": [],
        "provider_ranges": {},
        "instrument_ranges": {},
    },
    "trading_hours": {
        "timezone": "Asia/Shanghai",
        "sessions": [["09:30", "11:30"], ["13:00", "15:00"]],
    },
    "cross_validation": {"race_width": 2, "max_deviation": 0.05},
    "logging": {"error_log": "data/datasource_error.log"},
    "symbols": ["sh510300", "sh510500", "sz159915"],
}


def _config_yaml_path() -> Path:
    """Config.yaml lives at repo root (parent of package dir), unless ETF_CONFIG points elsewhere."""
    override = os.environ.get("ETF_CONFIG")
    if override:
        return Path(override)
    return Path(__file__).resolve().parent.parent / "config.yaml"


def _load_yaml() -> dict:
    config_path = _config_yaml_path()
    if not config_path.exists():
        return {}
    with open(config_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def _deep_merge(base: dict, override: dict) -> dict:
    out = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _env_overrides() -> dict:
    overrides: dict = {}
    min_time = os.environ.get("ETF_LIMITER_MIN_TIME")
    if min_time:
        overrides.setdefault("governor", {})["min_time_ms"] = int(min_time)
    max_concurrent = os.environ.get("ETF_LIMITER_MAX_CONCURRENT")
    if max_concurrent:
        overrides.setdefault("governor", {})["max_concurrent"] = int(max_concurrent)
    timeout = os.environ.get("ETF_REQUEST_TIMEOUT")
    if timeout:
        overrides.setdefault("providers", {})["request_timeout_s"] = float(timeout)
    error_log = os.environ.get("ETF_ERROR_LOG")
    if error_log is not None:
        overrides.setdefault("logging", {})["error_log"] = error_log or None
    symbols = os.environ.get("ETF_SYMBOLS")
    if symbols:
        overrides["symbols"] = [s.strip() for s in symbols.split(",") if s.strip()]
    return overrides


def get_config() -> dict:
    """Return merged config: defaults <- config.yaml <- env."""
    merged = _deep_merge(_DEFAULTS, _load_yaml())
    merged = _deep_merge(merged, _env_overrides())
    return merged


# Convenience accessors
def provider_priority() -> List[str]:
    return list(get_config()["providers"]["priority"])


def provider_endpoints() -> Dict[str, Dict[str, str]]:
    return dict(get_config()["providers"]["endpoints"])


def request_timeout_s() -> float:
    return float(get_config()["providers"]["request_timeout_s"])


def breaker_settings() -> Dict[str, Any]:
    return dict(get_config()["breaker"])


def governor_settings() -> Dict[str, Any]:
    return dict(get_config()["governor"])


def validation_settings() -> Dict[str, Any]:
    return dict(get_config()["validation"])


def trading_hours() -> Dict[str, Any]:
    return dict(get_config()["trading_hours"])


def cross_validation_settings() -> Dict[str, Any]:
    return dict(get_config()["cross_validation"])


def error_log_path() -> Optional[str]:
    return get_config().get("logging", {}).get("error_log")


def symbols() -> List[str]:
    return list(get_config().get("symbols", _DEFAULTS["symbols"]))
