"""
Acquisition engine: cross-validated realtime quotes and fallback candle series.

Realtime requests race the two best-ranked providers, validate both answers and
reconcile them into one price. When neither answer is usable the remaining
providers are probed one by one. Series requests walk the ranked providers
serially and return the first well-formed series. Every call goes through the
provider's governor, and every outcome is reported to the failure tracker.
Only AllSourcesUnavailable escapes to callers.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from ..timeutils import epoch_to_iso, now_utc_iso
from .base import Candle, MarketSnapshot, ProviderDescriptor, Quote
from .errors import AllSourcesUnavailable, InvalidDataError, TransientProviderError
from .governor import AdaptiveGovernor, GovernorConfig
from .registry import ProviderRegistry
from .resilience import FailureTracker
from .validation import PriceValidator

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 10.0
DEFAULT_LOOKBACK_DAYS = 20


@dataclass
class CrossValidationConfig:
    race_width: int = 2
    max_deviation: float = 0.05
    timeout_s: float = DEFAULT_TIMEOUT_S


@dataclass(frozen=True)
class _Outcome:
    provider_id: str
    quote: Optional[Quote] = None
    error: Optional[Exception] = None
    latency_ms: float = 0.0

    @property
    def valid(self) -> bool:
        return self.quote is not None


def price_decimals(price: Decimal) -> int:
    """Display precision by magnitude: 2 places >= 100, 3 places >= 1, else 4."""
    if price >= 100:
        return 2
    if price >= 1:
        return 3
    return 4


def _decimals_of(value: Decimal) -> int:
    exponent = value.as_tuple().exponent
    return -exponent if isinstance(exponent, int) and exponent < 0 else 0


def round_price(value: Decimal, inputs: Sequence[Decimal] = ()) -> Decimal:
    """Round half-up to the larger of the inputs' precision and the magnitude precision."""
    places = max([price_decimals(value)] + [_decimals_of(p) for p in inputs])
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def candles_to_frame(candles: Iterable[Candle]) -> pd.DataFrame:
    """Candles as a DataFrame indexed by date (ascending)."""
    rows = [
        {"date": c.date, "open": c.open, "high": c.high, "low": c.low, "close": c.close, "volume": c.volume}
        for c in candles
    ]
    df = pd.DataFrame(rows, columns=["date", "open", "high", "low", "close", "volume"])
    df["date"] = pd.to_datetime(df["date"])
    return df.set_index("date").sort_index()


class AcquisitionEngine:
    """
    Owns every piece of mutable acquisition state for one process (or one test).

    Shared tables are only touched from the event loop; adapter calls run in
    worker threads and hand their results back before any state changes.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        tracker: FailureTracker,
        validator: PriceValidator,
        governors: Optional[Dict[str, AdaptiveGovernor]] = None,
        governor_config: Optional[GovernorConfig] = None,
        config: Optional[CrossValidationConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = registry
        self._tracker = tracker
        self._validator = validator
        self._config = config or CrossValidationConfig()
        self._clock = clock
        self._governors: Dict[str, AdaptiveGovernor] = dict(governors or {})
        for pid in registry.names:
            if pid not in self._governors:
                self._governors[pid] = AdaptiveGovernor(pid, governor_config)
        self._current_source: Optional[str] = None

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def tracker(self) -> FailureTracker:
        return self._tracker

    @property
    def validator(self) -> PriceValidator:
        return self._validator

    @property
    def current_source(self) -> Optional[str]:
        return self._current_source

    def governor(self, provider_id: str) -> AdaptiveGovernor:
        return self._governors[provider_id]

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    async def _call(self, provider_id: str, method: str, *args: Any) -> Any:
        """Dispatch one adapter call through the governor; all failures come back as ProviderError."""
        adapter = self._registry.get_adapter(provider_id)
        func = getattr(adapter, method)
        try:
            return await self._governors[provider_id].schedule(func, *args, timeout=self._config.timeout_s)
        except (TransientProviderError, InvalidDataError):
            raise
        except asyncio.TimeoutError as exc:
            raise TransientProviderError(
                provider_id, f"timed out after {self._config.timeout_s:g}s"
            ) from exc
        except Exception as exc:
            raise TransientProviderError(provider_id, f"{type(exc).__name__}: {exc}") from exc

    async def _fetch_quote(self, provider_id: str, instrument_id: str) -> _Outcome:
        started = self._clock()
        try:
            quote = await self._call(provider_id, "fetch_realtime", instrument_id)
            latency_ms = (self._clock() - started) * 1000.0
            if quote.instrument_id != instrument_id or quote.source_provider_id != provider_id:
                quote = Quote(instrument_id, quote.price, quote.observed_at, provider_id)
            self._validator.validate(quote)
        except (InvalidDataError, TransientProviderError) as exc:
            return _Outcome(provider_id, error=exc)
        return _Outcome(provider_id, quote=quote, latency_ms=latency_ms)

    def _settle(self, outcome: _Outcome) -> None:
        """Report one provider outcome to the tracker."""
        pid = outcome.provider_id
        if outcome.valid:
            self._tracker.record_success(pid, outcome.latency_ms)
            return
        err = outcome.error
        if isinstance(err, InvalidDataError):
            self._tracker.record_quality_issue(pid, "invalid_price", err.value)
            logger.debug("Rejected quote from %s: %s", pid, err)
        else:
            logger.debug("Quote request to %s failed: %s", pid, err)
        self._tracker.record_failure(pid, err)

    # ------------------------------------------------------------------
    # Realtime
    # ------------------------------------------------------------------

    async def fetch_realtime(self, instrument_id: str) -> Quote:
        """
        Return one trusted quote for `instrument_id`.

        Races the top-ranked providers, reconciles valid answers, and falls
        back to serial probing of the rest when none is valid.
        """
        ranked = self._registry.select(self._tracker)
        if not ranked:
            raise AllSourcesUnavailable(instrument_id, ["no active provider"])

        racing = ranked[: self._config.race_width]
        outcomes = await asyncio.gather(*(self._fetch_quote(d.id, instrument_id) for d in racing))
        for outcome in outcomes:
            self._settle(outcome)

        valid = [o for o in outcomes if o.valid]
        if not valid:
            errors = [str(o.error) for o in outcomes]
            return await self._fallback_realtime(instrument_id, ranked[len(racing):], errors)

        quote = self._reconcile(instrument_id, valid)
        self._accept(quote)
        return quote

    async def _fallback_realtime(
        self,
        instrument_id: str,
        remaining: Sequence[ProviderDescriptor],
        errors: List[str],
    ) -> Quote:
        for desc in remaining:
            if not self._tracker.is_available(desc.id):
                errors.append(f"{desc.id}: disabled")
                continue
            outcome = await self._fetch_quote(desc.id, instrument_id)
            self._settle(outcome)
            if outcome.quote is not None:
                self._accept(outcome.quote)
                return outcome.quote
            errors.append(str(outcome.error))
            logger.warning("Provider %s failed for %s: %s", desc.display_name, instrument_id, outcome.error)

        raise AllSourcesUnavailable(instrument_id, errors)

    def _reconcile(self, instrument_id: str, valid: Sequence[_Outcome]) -> Quote:
        quotes = [o.quote for o in valid if o.quote is not None]
        if len(quotes) == 1:
            return quotes[0]

        prices = [q.price for q in quotes]
        mean = sum(prices, Decimal(0)) / len(prices)
        deviations = [abs(p - mean) / mean for p in prices]
        max_dev = max(deviations)

        if max_dev > Decimal(str(self._config.max_deviation)):
            # min() keeps the first (best-ranked) quote on ties
            best = min(range(len(quotes)), key=lambda i: deviations[i])
            logger.warning(
                "Providers disagree on %s: %s (mean %.4f, max deviation %.2f%%); using %s from %s",
                instrument_id,
                ", ".join(f"{q.source_provider_id}={q.price}" for q in quotes),
                mean, max_dev * 100, quotes[best].price, quotes[best].source_provider_id,
            )
            return quotes[best]

        if all(p == prices[0] for p in prices):
            price = prices[0]
        else:
            price = round_price(mean, prices)
        return Quote(
            instrument_id=instrument_id,
            price=price,
            observed_at=now_utc_iso(),
            source_provider_id="+".join(q.source_provider_id for q in quotes),
        )

    def _accept(self, quote: Quote) -> None:
        self._validator.accept(quote)
        self._current_source = quote.source_provider_id.split("+")[0]

    async def fetch_realtime_price(self, instrument_id: str) -> Decimal:
        quote = await self.fetch_realtime(instrument_id)
        return quote.price

    # ------------------------------------------------------------------
    # Series
    # ------------------------------------------------------------------

    async def fetch_series(self, instrument_id: str, lookback_days: int = DEFAULT_LOOKBACK_DAYS) -> List[Candle]:
        """First non-empty, well-formed series from the ranked providers, trimmed to `lookback_days`."""
        errors: List[str] = []
        for desc in self._registry.select(self._tracker):
            pid = desc.id
            started = self._clock()
            try:
                candles = await self._call(pid, "fetch_series", instrument_id, lookback_days)
                if not candles:
                    raise TransientProviderError(pid, f"empty series for {instrument_id}")
                bad = [c for c in candles if not c.is_valid()]
                if bad:
                    raise InvalidDataError(pid, f"{len(bad)} malformed candles for {instrument_id}", bad[0])
                dates = [c.date for c in candles]
                if dates != sorted(dates):
                    raise InvalidDataError(pid, f"series for {instrument_id} is not ascending", dates[:3])
            except InvalidDataError as exc:
                self._tracker.record_quality_issue(pid, "invalid_series", exc.value)
                self._tracker.record_failure(pid, exc)
                errors.append(str(exc))
                logger.warning("Series from %s rejected for %s: %s", desc.display_name, instrument_id, exc)
                continue
            except TransientProviderError as exc:
                self._tracker.record_failure(pid, exc)
                errors.append(str(exc))
                logger.warning("Series source %s failed for %s: %s", desc.display_name, instrument_id, exc)
                continue

            self._tracker.record_success(pid, (self._clock() - started) * 1000.0)
            self._current_source = pid
            return list(candles[-lookback_days:]) if lookback_days > 0 else list(candles)

        raise AllSourcesUnavailable(instrument_id, errors)

    async def fetch_kline_data(self, instrument_id: str, lookback_days: int = DEFAULT_LOOKBACK_DAYS) -> List[Candle]:
        return await self.fetch_series(instrument_id, lookback_days)

    # ------------------------------------------------------------------
    # Batch helpers
    # ------------------------------------------------------------------

    async def fetch_many(self, instrument_ids: Iterable[str], concurrency: int = 3) -> Dict[str, Decimal]:
        """Realtime prices for many instruments; exhausted instruments are skipped for this cycle."""
        ids = list(dict.fromkeys(instrument_ids))
        limit = asyncio.Semaphore(max(1, concurrency))
        results: Dict[str, Decimal] = {}

        async def one(instrument_id: str) -> None:
            async with limit:
                try:
                    results[instrument_id] = await self.fetch_realtime_price(instrument_id)
                except AllSourcesUnavailable as exc:
                    logger.warning("Skipping %s this cycle: %s", instrument_id, exc)

        await asyncio.gather(*(one(i) for i in ids))
        return {i: results[i] for i in ids if i in results}

    async def fetch_market_snapshot(
        self, instrument_id: str, lookback_days: int = DEFAULT_LOOKBACK_DAYS
    ) -> MarketSnapshot:
        price: Optional[Decimal] = None
        candles: List[Candle] = []
        try:
            price = await self.fetch_realtime_price(instrument_id)
        except AllSourcesUnavailable as exc:
            logger.warning("No realtime price for %s: %s", instrument_id, exc)
        try:
            candles = await self.fetch_series(instrument_id, lookback_days)
        except AllSourcesUnavailable as exc:
            logger.warning("No kline data for %s: %s", instrument_id, exc)
        return MarketSnapshot(
            instrument_id=instrument_id,
            price=price,
            candles=candles,
            fetched_at=now_utc_iso(),
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        """Read-only snapshot for dashboards and the CLI."""
        now = self._clock()
        recorder = self._tracker.recorder
        providers = []
        for desc in self._registry.descriptors:
            st = self._tracker.state(desc.id)
            entry: Dict[str, Any] = {
                "id": desc.id,
                "name": desc.display_name,
                "status": self._tracker.status(desc.id).value,
                "failure_count": st.consecutive_failures,
                "last_success_at": epoch_to_iso(st.last_success_at),
                "disabled_until": epoch_to_iso(st.disabled_until),
                "priority": desc.priority,
            }
            entry.update(recorder.summary(desc.id, now))
            entry["governor"] = self._governors[desc.id].stats()
            providers.append(entry)
        return {"current_source": self._current_source, "providers": providers}
