"""
Tencent quote provider.

Public endpoints (no authentication):
  GET https://qt.gtimg.cn/q={symbol}
      v_sh510300="1~沪深300ETF~510300~4.530~4.512~...";
  GET https://web.ifzq.gtimg.cn/appstock/app/fqkline/get?param={symbol},day,,,{count},qfq
      {"code": 0, "data": {"sh510300": {"qfqday": [[date, open, close, high, low, volume], ...]}}}
"""
from __future__ import annotations

import re
from typing import List

from ...timeutils import now_utc_iso
from ..base import Candle, ProviderDescriptor, Quote
from ..errors import InvalidDataError, TransientProviderError
from ..validation import to_decimal
from .common import HTTP_TIMEOUT_S, build_candle, http_get, sort_candles

_QUOTED = re.compile(r'"(.*)"', re.S)
PRICE_FIELD = 3


class TencentProvider:
    """Fetch quotes and daily candles from Tencent Finance."""

    def __init__(self, descriptor: ProviderDescriptor, timeout: float = HTTP_TIMEOUT_S) -> None:
        self._descriptor = descriptor
        self._timeout = timeout

    @property
    def provider_id(self) -> str:
        return self._descriptor.id

    def fetch_realtime(self, symbol: str) -> Quote:
        resp = http_get(self.provider_id, self._descriptor.realtime_url(symbol), self._timeout)
        match = _QUOTED.search(resp.text or "")
        if not match or not match.group(1):
            raise TransientProviderError(self.provider_id, f"no quote payload for {symbol}")
        fields = match.group(1).split("~")
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
        resp = http_get(self.provider_id, self._descriptor.series_url(symbol, count), self._timeout)
        try:
            data = resp.json()
        except ValueError as exc:
            raise TransientProviderError(self.provider_id, f"invalid JSON for {symbol}: {exc}") from exc

        node = (data.get("data") or {}).get(symbol) if isinstance(data, dict) else None
        if not isinstance(node, dict):
            raise TransientProviderError(self.provider_id, f"kline response missing data.{symbol}")
        rows = node.get("qfqday") or node.get("day") or []
        if not isinstance(rows, list):
            raise TransientProviderError(self.provider_id, f"unexpected kline rows for {symbol}")

        candles = [
            build_candle(r[0], r[1], r[3], r[4], r[2], r[5] if len(r) > 5 else 0)
            for r in rows
            if isinstance(r, list) and len(r) >= 5
        ]
        return sort_candles(candles, count)
