"""HTTP and parsing helpers shared by the quote adapters."""
from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Optional

import requests

from ..base import Candle
from ..errors import TransientProviderError

HTTP_TIMEOUT_S = 10.0
USER_AGENT = "Mozilla/5.0 (compatible; etf-analyzer)"


def http_get(
    provider_id: str,
    url: str,
    timeout: float = HTTP_TIMEOUT_S,
    headers: Optional[Dict[str, str]] = None,
) -> requests.Response:
    """GET with provider-attributed errors. 429 and other HTTP errors are transient."""
    merged = {"User-Agent": USER_AGENT}
    merged.update(headers or {})
    try:
        resp = requests.get(url, headers=merged, timeout=timeout)
    except requests.RequestException as exc:
        raise TransientProviderError(provider_id, f"{type(exc).__name__}: {exc}") from exc
    if resp.status_code == 429:
        raise TransientProviderError(provider_id, "rate limit (HTTP 429)")
    try:
        resp.raise_for_status()
    except requests.HTTPError as exc:
        raise TransientProviderError(provider_id, f"HTTP error: {exc}") from exc
    return resp


def to_float(x: Any) -> Optional[float]:
    if x is None:
        return None
    try:
        v = float(x)
    except (TypeError, ValueError):
        return None
    return v if math.isfinite(v) else None


def normalize_date(value: Any) -> str:
    """Accept 'YYYY-MM-DD', 'YYYYMMDD' or 'YYYY-MM-DD HH:MM:SS'; return 'YYYY-MM-DD'."""
    s = str(value or "").strip()
    if len(s) == 8 and s.isdigit():
        return f"{s[:4]}-{s[4:6]}-{s[6:]}"
    return s[:10]


def build_candle(date: Any, open_: Any, high: Any, low: Any, close: Any, volume: Any) -> Candle:
    return Candle(
        date=normalize_date(date),
        open=to_float(open_),  # type: ignore[arg-type]
        high=to_float(high),  # type: ignore[arg-type]
        low=to_float(low),  # type: ignore[arg-type]
        close=to_float(close),  # type: ignore[arg-type]
        volume=to_float(volume) or 0.0,
    )


def sort_candles(candles: Iterable[Candle], count: int) -> List[Candle]:
    """Ascending by date, keeping the most recent `count` bars."""
    ordered = sorted(candles, key=lambda c: c.date)
    return ordered[-count:] if count > 0 else ordered
