"""
Price validation.

A quote is rejected when the price is not a finite positive number inside the
plausible range for its provider/instrument, or when it moved too far from the
last accepted price. The change threshold is dynamic: wider for sub-1.0 prices
and during trading hours, widened for moves at the daily price limit and
capped at the limit band for moves past it (unless the instrument is exempt).
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..timeutils import TradingCalendar
from .base import Quote
from .errors import InvalidDataError
from .resilience import LastValidPriceCache

logger = logging.getLogger(__name__)

PriceRange = Tuple[float, float]


@dataclass
class ValidationConfig:
    price_floor: float = 0.0
    price_ceiling: float = 1000.0
    max_change_pct: float = 0.20
    low_price_change_pct: float = 0.30
    low_price_cutoff: float = 1.0
    trading_hours_factor: float = 1.2
    limit_pct: float = 0.10
    limit_tolerance: float = 0.01
    cache_ttl_s: float = 300.0
    enforce_price_limit: bool = True
    limit_exempt_instruments: List[str] = field(default_factory=list)
    provider_ranges: Dict[str, PriceRange] = field(default_factory=dict)
    instrument_ranges: Dict[str, PriceRange] = field(default_factory=dict)


def to_decimal(value: Any) -> Optional[Decimal]:
    """Parse a provider value into a finite Decimal, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        d = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not d.is_finite():
        return None
    return d


class PriceValidator:
    """Validates quotes against plausibility bounds and the recent-price baseline."""

    def __init__(
        self,
        config: Optional[ValidationConfig] = None,
        cache: Optional[LastValidPriceCache] = None,
        calendar: Optional[TradingCalendar] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or ValidationConfig()
        self._clock = clock
        self._cache = cache or LastValidPriceCache(self._config.cache_ttl_s, clock=clock)
        self._calendar = calendar or TradingCalendar()

    @property
    def cache(self) -> LastValidPriceCache:
        return self._cache

    def price_range(self, provider_id: str, instrument_id: str) -> PriceRange:
        cfg = self._config
        if instrument_id in cfg.instrument_ranges:
            return cfg.instrument_ranges[instrument_id]
        if provider_id in cfg.provider_ranges:
            return cfg.provider_ranges[provider_id]
        return (cfg.price_floor, cfg.price_ceiling)

    def change_threshold(
        self, baseline: Decimal, change: float, at: float, instrument_id: Optional[str] = None
    ) -> float:
        cfg = self._config
        threshold = cfg.max_change_pct
        if baseline < Decimal(str(cfg.low_price_cutoff)):
            threshold = cfg.low_price_change_pct
        if self._calendar.is_trading_time(at):
            threshold *= cfg.trading_hours_factor
        if not cfg.enforce_price_limit or instrument_id in cfg.limit_exempt_instruments:
            return threshold
        band = cfg.limit_pct + cfg.limit_tolerance
        if abs(change - cfg.limit_pct) <= cfg.limit_tolerance:
            # limit-up / limit-down moves are genuine
            threshold = max(threshold, band)
        elif change > band:
            # no genuine move goes past the daily limit band
            threshold = min(threshold, band)
        return threshold

    def validate(self, quote: Quote) -> Quote:
        """Return the quote unchanged or raise InvalidDataError."""
        pid = quote.source_provider_id
        price = to_decimal(quote.price)
        if price is None:
            raise InvalidDataError(pid, f"non-numeric price for {quote.instrument_id}", quote.price)
        if price <= 0:
            raise InvalidDataError(pid, f"non-positive price {price} for {quote.instrument_id}", price)

        low, high = self.price_range(pid, quote.instrument_id)
        if price <= Decimal(str(low)) or price > Decimal(str(high)):
            raise InvalidDataError(
                pid, f"price {price} outside plausible range ({low}, {high}] for {quote.instrument_id}", price
            )

        baseline = self._cache.get(quote.instrument_id)
        if baseline is not None and baseline > 0:
            change = float(abs(price - baseline) / baseline)
            threshold = self.change_threshold(baseline, change, self._clock(), quote.instrument_id)
            if change > threshold:
                logger.warning(
                    "Abnormal price move from %s for %s: %s -> %s (%.2f%% > %.2f%%)",
                    pid, quote.instrument_id, baseline, price, change * 100, threshold * 100,
                )
                raise InvalidDataError(
                    pid, f"price change {change:.2%} exceeds {threshold:.2%} for {quote.instrument_id}", price
                )
        return quote

    def accept(self, quote: Quote) -> None:
        self._cache.put(quote.instrument_id, quote.price)
