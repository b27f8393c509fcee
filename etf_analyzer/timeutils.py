"""
Single source for "now" strings and exchange trading-session checks.

Supports deterministic mode for tests via ETF_ANALYZER_DETERMINISTIC_TIME
(ISO format, e.g. 2026-01-05T02:00:00Z).
"""

from __future__ import annotations

import os
from datetime import datetime, time as dtime, timezone
from typing import Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "Asia/Shanghai"
DEFAULT_SESSIONS: Tuple[Tuple[str, str], ...] = (("09:30", "11:30"), ("13:00", "15:00"))


def now_utc_iso() -> str:
    """
    Return current UTC time in ISO format (seconds).
    If env ETF_ANALYZER_DETERMINISTIC_TIME is set, return that value instead.
    """
    fixed = os.environ.get("ETF_ANALYZER_DETERMINISTIC_TIME", "").strip()
    if fixed:
        return fixed if fixed.endswith("Z") or "+" in fixed else f"{fixed}Z"
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def epoch_to_iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(timespec="seconds")


def _parse_hhmm(value: str) -> dtime:
    hh, mm = value.split(":")
    return dtime(int(hh), int(mm))


class TradingCalendar:
    """Weekday trading sessions in the exchange's local time zone. Holidays are not modelled."""

    def __init__(
        self,
        tz: str = DEFAULT_TIMEZONE,
        sessions: Sequence[Sequence[str]] = DEFAULT_SESSIONS,
    ) -> None:
        self._tz = ZoneInfo(tz)
        self._sessions = [(_parse_hhmm(start), _parse_hhmm(end)) for start, end in sessions]

    def is_trading_time(self, ts: float) -> bool:
        local = datetime.fromtimestamp(ts, tz=self._tz)
        if local.weekday() >= 5:
            return False
        t = local.time()
        return any(start <= t <= end for start, end in self._sessions)
