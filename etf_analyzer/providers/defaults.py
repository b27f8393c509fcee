"""
Default provider registry configuration.

Registers the built-in providers and builds an AcquisitionEngine from
config.yaml settings. The provider set is fixed: adding one means writing an
adapter and registering it here.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Type

from .. import config as cfg_module
from ..timeutils import TradingCalendar
from .base import ProviderDescriptor
from .chain import AcquisitionEngine, CrossValidationConfig
from .cn.netease import NeteaseProvider
from .cn.sina import SinaProvider
from .cn.tencent import TencentProvider
from .errors import ConfigurationError
from .event_log import ErrorEventLog
from .governor import AdaptiveGovernor, GovernorConfig
from .quality import QualityRecorder
from .registry import ProviderRegistry
from .resilience import BreakerConfig, FailureTracker, LastValidPriceCache
from .validation import PriceValidator, ValidationConfig

logger = logging.getLogger(__name__)

ADAPTERS: Dict[str, Type[Any]] = {
    "tencent": TencentProvider,
    "sina": SinaProvider,
    "netease": NeteaseProvider,
}

DEFAULT_PRIORITY = ["tencent", "sina", "netease"]


def _build(kind: Callable[..., Any], settings: Dict[str, Any], section: str) -> Any:
    try:
        return kind(**settings)
    except TypeError as exc:
        raise ConfigurationError(f"Invalid '{section}' settings: {exc}") from exc


def _ranges(raw: Dict[str, Any], section: str) -> Dict[str, tuple]:
    out = {}
    for key, bounds in (raw or {}).items():
        try:
            low, high = float(bounds[0]), float(bounds[1])
        except (TypeError, ValueError, IndexError, KeyError) as exc:
            raise ConfigurationError(f"Invalid {section} range for '{key}': {bounds!r}") from exc
        if low >= high:
            raise ConfigurationError(f"Empty {section} range for '{key}': {bounds!r}")
        out[key] = (low, high)
    return out


def load_breaker_config(settings: Dict[str, Any]) -> BreakerConfig:
    bc = BreakerConfig(
        failure_threshold=int(settings.get("failure_threshold", 3)),
        cooldown_seconds=float(settings.get("cooldown_minutes", 10)) * 60.0,
        quality_window_seconds=float(settings.get("quality_window_minutes", 60)) * 60.0,
        quality_issue_threshold=int(settings.get("quality_issue_threshold", 10)),
    )
    if bc.failure_threshold < 1 or bc.cooldown_seconds <= 0 or bc.quality_window_seconds <= 0:
        raise ConfigurationError(f"Breaker thresholds must be positive: {settings}")
    return bc


def load_governor_config(settings: Dict[str, Any]) -> GovernorConfig:
    gc = _build(GovernorConfig, settings, "governor")
    if not (0 < gc.min_min_time_ms <= gc.min_time_ms <= gc.max_min_time_ms):
        raise ConfigurationError(
            f"Governor min_time_ms {gc.min_time_ms} outside [{gc.min_min_time_ms}, {gc.max_min_time_ms}]"
        )
    if not (1 <= gc.min_concurrent <= gc.max_concurrent <= gc.max_concurrent_limit):
        raise ConfigurationError(
            f"Governor max_concurrent {gc.max_concurrent} outside [{gc.min_concurrent}, {gc.max_concurrent_limit}]"
        )
    return gc


def load_validation_config(settings: Dict[str, Any]) -> ValidationConfig:
    settings = dict(settings)
    settings["provider_ranges"] = _ranges(settings.get("provider_ranges", {}), "provider")
    settings["instrument_ranges"] = _ranges(settings.get("instrument_ranges", {}), "instrument")
    settings["limit_exempt_instruments"] = list(settings.get("limit_exempt_instruments") or [])
    vc = _build(ValidationConfig, settings, "validation")
    if vc.price_floor < 0 or vc.price_floor >= vc.price_ceiling:
        raise ConfigurationError(f"Invalid price range ({vc.price_floor}, {vc.price_ceiling}]")
    if vc.max_change_pct <= 0 or vc.low_price_change_pct <= 0 or vc.cache_ttl_s <= 0:
        raise ConfigurationError("Validation thresholds must be positive")
    return vc


def create_default_registry(
    priority: Optional[List[str]] = None,
    endpoints: Optional[Dict[str, Dict[str, str]]] = None,
    timeout_s: float = 10.0,
) -> ProviderRegistry:
    """Create a registry with the built-in providers; list position sets the static priority."""
    order = priority or DEFAULT_PRIORITY
    endpoints = endpoints or cfg_module.provider_endpoints()
    if timeout_s <= 0:
        raise ConfigurationError(f"Request timeout must be positive, got {timeout_s}")

    registry = ProviderRegistry()
    for rank, pid in enumerate(order, start=1):
        adapter = ADAPTERS.get(pid)
        if adapter is None:
            raise ConfigurationError(f"Unknown provider '{pid}'. Available: {list(ADAPTERS)}")
        ep = endpoints.get(pid)
        if not ep:
            raise ConfigurationError(f"No endpoints configured for provider '{pid}'")
        descriptor = ProviderDescriptor(
            id=pid,
            display_name=ep.get("name", pid),
            priority=rank,
            realtime_endpoint_template=ep.get("realtime", ""),
            series_endpoint_template=ep.get("series", ""),
        )
        registry.register(descriptor, lambda d, a=adapter: a(d, timeout=timeout_s))
    return registry


def create_engine(
    registry: Optional[ProviderRegistry] = None,
    config: Optional[Dict[str, Any]] = None,
    clock: Callable[[], float] = time.time,
    error_log: Optional[str] = None,
) -> AcquisitionEngine:
    """Build an engine with breaker, validator and per-provider governors from config."""
    cfg = config or cfg_module.get_config()
    providers_cfg = cfg["providers"]
    timeout_s = float(providers_cfg.get("request_timeout_s", 10.0))
    reg = registry or create_default_registry(
        priority=providers_cfg.get("priority"),
        endpoints=providers_cfg.get("endpoints"),
        timeout_s=timeout_s,
    )

    breaker = load_breaker_config(cfg["breaker"])
    governor_cfg = load_governor_config(cfg["governor"])
    validation_cfg = load_validation_config(cfg["validation"])
    hours = cfg["trading_hours"]
    calendar = TradingCalendar(hours.get("timezone", "Asia/Shanghai"), hours.get("sessions", ()))
    xv = cfg.get("cross_validation", {})
    xv_cfg = CrossValidationConfig(
        race_width=int(xv.get("race_width", 2)),
        max_deviation=float(xv.get("max_deviation", 0.05)),
        timeout_s=timeout_s,
    )
    if xv_cfg.race_width < 1 or xv_cfg.max_deviation <= 0:
        raise ConfigurationError(f"Invalid cross_validation settings: {xv}")

    log_path = error_log if error_log is not None else cfg.get("logging", {}).get("error_log")
    events = ErrorEventLog(log_path)
    tracker = FailureTracker(
        reg.descriptors,
        config=breaker,
        recorder=QualityRecorder(reg.names, window_s=breaker.quality_window_seconds),
        event_log=events,
        clock=clock,
    )
    validator = PriceValidator(
        validation_cfg,
        cache=LastValidPriceCache(validation_cfg.cache_ttl_s, clock=clock),
        calendar=calendar,
        clock=clock,
    )
    governors = {pid: AdaptiveGovernor(pid, governor_cfg) for pid in reg.names}
    logger.debug("Acquisition engine ready with providers %s", reg.names)
    return AcquisitionEngine(
        reg, tracker, validator,
        governors=governors,
        config=xv_cfg,
        clock=clock,
    )
