"""
Sina quote provider.

Public endpoints (no authentication, but a finance.sina.com.cn Referer is required):
  GET https://hq.sinajs.cn/list={symbol}
      var hq_str_sh510300="沪深300ETF,4.512,4.508,4.530,4.541,4.500,...";
  GET https://money.finance.sina.com.cn/quotes_service/api/json_v2.php/CN_MarketData.getKLineData
      ?symbol={symbol}&scale=240&ma=no&datalen={count}
      [{"day": "2024-01-02", "open": "3.5", "high": ..., "low": ..., "close": ..., "volume": ...}, ...]
"""
from __future__ import annotations

import re
from typing import List

from ...timeutils import now_utc_iso
from ..base import Candle, ProviderDescriptor, Quote
from ..errors import InvalidDataError, TransientProviderError
from ..validation import to_decimal
from .common import HTTP_TIMEOUT_S, build_candle, http_get, sort_candles

SINA_HEADERS = {"Referer": "https://finance.sina.com.cn"}
_QUOTED = re.compile(r'"(.*)"', re.S)
PRICE_FIELD = 3


def to_sina_symbol(symbol: str) -> str:
    s = symbol.strip().lower()
    if s.startswith(("sh", "sz")):
        return s
    return f"sh{s}" if s.startswith(("5", "6")) else f"sz{s}"


class SinaProvider:
    """Fetch quotes and daily candles from Sina Finance."""

    def __init__(self, descriptor: ProviderDescriptor, timeout: float = HTTP_TIMEOUT_S) -> None:
        self._descriptor = descriptor
        self._timeout = timeout

    @property
    def provider_id(self) -> str:
        return self._descriptor.id

    def fetch_realtime(self, symbol: str) -> Quote:
        url = self._descriptor.realtime_url(to_sina_symbol(symbol))
        resp = http_get(self.provider_id, url, self._timeout, headers=SINA_HEADERS)
        match = _QUOTED.search(resp.text or "")
        if not match or not match.group(1):
            raise TransientProviderError(self.provider_id, f"no quote payload for {symbol}")
        fields = match.group(1).split(",")
        if len(fields) <= PRICE_FIELD:
            raise TransientProviderError(self.provider_id, f"truncated quote payload for {symbol}")

        raw = fields[PRICE_FIELD]
        price = to_decimal(raw)
        if price is None:
            raise InvalidDataError(self.provider_id, f"non-numeric price for {symbol}", raw)
        return Quote(
            instrument_id=symbol,
            price=price,
            observed_at=now_utc_iso(),
            source_provider_id=self.provider_id,
        )

    def fetch_series(self, symbol: str, count: int) -> List[Candle]:
        url = self._descriptor.series_url(to_sina_symbol(symbol), count)
        resp = http_get(self.provider_id, url, self._timeout, headers=SINA_HEADERS)
        try:
            data = resp.json()
        except ValueError as exc:
            raise TransientProviderError(self.provider_id, f"invalid JSON for {symbol}: {exc}") from exc
        if data is None:
            return []
        if not isinstance(data, list):
            raise TransientProviderError(self.provider_id, f"unexpected kline payload type {type(data).__name__}")

        candles = [
            build_candle(d.get("day"), d.get("open"), d.get("high"), d.get("low"), d.get("close"), d.get("volume"))
            for d in data
            if isinstance(d, dict)
        ]
        return sort_candles(candles, count)
