"""
NetEase quote provider.

Codes are prefixed with the exchange digit: sh -> 0, sz -> 1 (sh510300 -> 0510300).
  GET https://api.money.126.net/data/feed/{symbol},money.api
      _ntes_quote_callback({"0510300": {"price": 4.53, ...}});
  GET https://img1.money.126.net/data/hs/kline/day/history/{symbol}.json
      {"symbol": "510300", "data": [[date, open, high, low, close, volume], ...]}
"""
from __future__ import annotations

import json
import re
from typing import Any, List

from ...timeutils import now_utc_iso
from ..base import Candle, ProviderDescriptor, Quote
from ..errors import InvalidDataError, TransientProviderError
from ..validation import to_decimal
from .common import HTTP_TIMEOUT_S, build_candle, http_get, sort_candles

_JSONP = re.compile(r"^[^(]*\((.*)\)\s*;?\s*$", re.S)


def to_netease_symbol(symbol: str) -> str:
    s = symbol.strip().lower()
    if s.startswith("sh"):
        return "0" + s[2:]
    if s.startswith("sz"):
        return "1" + s[2:]
    return s


def _load_payload(provider_id: str, text: str) -> Any:
    body = (text or "").strip()
    match = _JSONP.match(body)
    if match:
        body = match.group(1)
    try:
        return json.loads(body)
    except ValueError as exc:
        raise TransientProviderError(provider_id, f"invalid JSON payload: {exc}") from exc


class NeteaseProvider:
    """Fetch quotes and daily candles from NetEase Money."""

    def __init__(self, descriptor: ProviderDescriptor, timeout: float = HTTP_TIMEOUT_S) -> None:
        self._descriptor = descriptor
        self._timeout = timeout

    @property
    def provider_id(self) -> str:
        return self._descriptor.id

    def fetch_realtime(self, symbol: str) -> Quote:
        code = to_netease_symbol(symbol)
        resp = http_get(self.provider_id, self._descriptor.realtime_url(code), self._timeout)
        data = _load_payload(self.provider_id, resp.text)
        entry = data.get(code) if isinstance(data, dict) else None
        if not isinstance(entry, dict) or "price" not in entry:
            raise TransientProviderError(self.provider_id, f"quote payload missing {code}.price")

        raw = entry["price"]
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
        code = to_netease_symbol(symbol)
        resp = http_get(self.provider_id, self._descriptor.series_url(code, count), self._timeout)
        data = _load_payload(self.provider_id, resp.text)
        rows = data.get("data") if isinstance(data, dict) else None
        if not isinstance(rows, list):
            raise TransientProviderError(self.provider_id, f"kline payload missing data for {code}")

        candles = [
            build_candle(r[0], r[1], r[2], r[3], r[4], r[5] if len(r) > 5 else 0)
            for r in rows
            if isinstance(r, list) and len(r) >= 5
        ]
        return sort_candles(candles, count)
