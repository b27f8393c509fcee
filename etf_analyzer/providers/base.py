"""
Provider interfaces and data contracts.

Every backend implements the PriceProvider protocol:
- fetch_realtime: latest traded price for one instrument
- fetch_series: daily candles for one instrument

Quotes and candles are frozen dataclasses; descriptors are the only mutable
piece and are changed exclusively by the failure tracker.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Protocol, runtime_checkable


class ProviderStatus(enum.Enum):
    """Availability of a data provider."""

    ACTIVE = "active"
    DISABLED = "disabled"


@dataclass
class ProviderDescriptor:
    """Static description of one provider plus its runtime status and priority."""

    id: str
    display_name: str
    priority: int
    realtime_endpoint_template: str
    series_endpoint_template: str
    status: ProviderStatus = ProviderStatus.ACTIVE

    def realtime_url(self, symbol: str) -> str:
        return self.realtime_endpoint_template.format(symbol=symbol)

    def series_url(self, symbol: str, count: int) -> str:
        return self.series_endpoint_template.format(symbol=symbol, count=count)


@dataclass(frozen=True)
class Quote:
    """Immutable realtime quote."""

    instrument_id: str
    price: Decimal
    observed_at: str
    source_provider_id: str


@dataclass(frozen=True)
class Candle:
    """Immutable daily OHLCV bar."""

    date: str
    open: float
    high: float
    low: float
    close: float
    volume: float

    def is_valid(self) -> bool:
        values = (self.open, self.high, self.low, self.close)
        if not self.date or any(v is None or not math.isfinite(v) for v in values):
            return False
        return self.high >= self.low and all(v > 0 for v in values)


@dataclass(frozen=True)
class MarketSnapshot:
    """Realtime price and recent candles for one instrument; either side may be missing."""

    instrument_id: str
    price: Optional[Decimal]
    candles: List[Candle]
    fetched_at: str


@runtime_checkable
class PriceProvider(Protocol):
    """Protocol for price providers (one adapter per backend)."""

    @property
    def provider_id(self) -> str: ...

    def fetch_realtime(self, symbol: str) -> Quote:
        """Fetch the latest price for a symbol (e.g. 'sh510300')."""
        ...

    def fetch_series(self, symbol: str, count: int) -> List[Candle]:
        """Fetch up to `count` daily candles, ascending by date."""
        ...
