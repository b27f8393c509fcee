"""
Tests for price validation: plausibility range and dynamic change threshold.
"""
from __future__ import annotations

from decimal import Decimal

import pytest

from etf_analyzer.providers.base import Quote
from etf_analyzer.providers.errors import InvalidDataError
from etf_analyzer.providers.validation import PriceValidator, ValidationConfig, to_decimal
from etf_analyzer.timeutils import TradingCalendar
from tests.fakes.providers import TRADING_TS, WEEKEND_TS, FakeClock


def _quote(price, symbol="sh510300", provider="tencent"):
    return Quote(symbol, price, "2026-01-03T00:00:00+00:00", provider)


def _validator(clock=None, **kwargs):
    return PriceValidator(ValidationConfig(**kwargs), calendar=TradingCalendar(), clock=clock or FakeClock())


class TestToDecimal:
    @pytest.mark.parametrize("raw", [None, "", "-", "abc", "nan", "inf", True])
    def test_rejects_non_numeric(self, raw):
        assert to_decimal(raw) is None

    def test_parses_strings_and_numbers(self):
        assert to_decimal(" 4.530 ") == Decimal("4.53")
        assert to_decimal(4.5) == Decimal("4.5")


class TestBasicChecks:
    def test_accepts_plausible_price(self):
        q = _quote(Decimal("4.53"))
        assert _validator().validate(q) is q

    @pytest.mark.parametrize("price", [Decimal("0"), Decimal("-1"), Decimal("1000.01")])
    def test_rejects_out_of_range(self, price):
        with pytest.raises(InvalidDataError):
            _validator().validate(_quote(price))

    def test_rejects_nan(self):
        with pytest.raises(InvalidDataError, match="non-numeric"):
            _validator().validate(_quote(Decimal("NaN")))

    def test_instrument_range_overrides_provider_range(self):
        v = _validator(
            provider_ranges={"tencent": (0.0, 3.0)},
            instrument_ranges={"sh510300": (1.0, 10.0)},
        )
        v.validate(_quote(Decimal("4.53")))
        with pytest.raises(InvalidDataError):
            v.validate(_quote(Decimal("4.53"), symbol="sh510500"))


class TestChangeThreshold:
    def test_no_baseline_no_change_check(self):
        v = _validator()
        v.validate(_quote(Decimal("900")))

    def test_rejects_move_above_twenty_percent(self):
        v = _validator(enforce_price_limit=False)
        v.accept(_quote(Decimal("4.00")))
        v.validate(_quote(Decimal("4.80")))
        with pytest.raises(InvalidDataError, match="exceeds"):
            v.validate(_quote(Decimal("4.81")))

    def test_low_price_gets_thirty_percent(self):
        v = _validator(enforce_price_limit=False)
        v.accept(_quote(Decimal("0.800")))
        v.validate(_quote(Decimal("1.030")))
        with pytest.raises(InvalidDataError):
            v.validate(_quote(Decimal("1.050")))

    def test_trading_hours_widen_threshold(self):
        clock = FakeClock(start=TRADING_TS)
        v = _validator(clock, enforce_price_limit=False)
        v.accept(_quote(Decimal("4.00")))
        # 22% passes with 20% * 1.2 = 24%
        v.validate(_quote(Decimal("4.88")))
        with pytest.raises(InvalidDataError):
            v.validate(_quote(Decimal("5.00")))

    def test_limit_move_never_rejected(self):
        v = _validator(max_change_pct=0.05)
        v.accept(_quote(Decimal("4.00")))
        v.validate(_quote(Decimal("4.40")))
        v.validate(_quote(Decimal("3.60")))
        with pytest.raises(InvalidDataError):
            v.validate(_quote(Decimal("4.30")))

    def test_default_config_accepts_limit_move(self):
        v = _validator()
        v.accept(_quote(Decimal("4.00")))
        v.validate(_quote(Decimal("4.40")))
        v.validate(_quote(Decimal("4.42")))

    def test_default_config_rejects_move_past_limit_band(self):
        v = _validator()
        v.accept(_quote(Decimal("4.00")))
        with pytest.raises(InvalidDataError, match="exceeds 11.00%"):
            v.validate(_quote(Decimal("4.60")))

    def test_past_limit_band_rejected_in_trading_hours(self):
        v = _validator(FakeClock(start=TRADING_TS))
        v.accept(_quote(Decimal("4.00")))
        with pytest.raises(InvalidDataError):
            v.validate(_quote(Decimal("4.80")))

    def test_exempt_instrument_keeps_base_threshold(self):
        v = _validator(limit_exempt_instruments=["sh510300"])
        v.accept(_quote(Decimal("4.00")))
        v.validate(_quote(Decimal("4.60")))
        v.accept(_quote(Decimal("4.00"), symbol="sh510500"))
        with pytest.raises(InvalidDataError):
            v.validate(_quote(Decimal("4.60"), symbol="sh510500"))

    def test_stale_baseline_ignored(self):
        clock = FakeClock(start=WEEKEND_TS)
        v = _validator(clock)
        v.accept(_quote(Decimal("4.00")))
        clock.advance(301)
        v.validate(_quote(Decimal("6.00")))

    def test_change_threshold_values(self):
        v = _validator()
        assert v.change_threshold(Decimal("4"), 0.0, WEEKEND_TS) == pytest.approx(0.20)
        assert v.change_threshold(Decimal("4"), 0.10, WEEKEND_TS) == pytest.approx(0.20)
        assert v.change_threshold(Decimal("4"), 0.15, WEEKEND_TS) == pytest.approx(0.11)
        assert v.change_threshold(Decimal("0.5"), 0.0, WEEKEND_TS) == pytest.approx(0.30)
        assert v.change_threshold(Decimal("4"), 0.0, TRADING_TS) == pytest.approx(0.24)

    def test_change_threshold_without_limit(self):
        v = _validator(enforce_price_limit=False)
        assert v.change_threshold(Decimal("4"), 0.15, WEEKEND_TS) == pytest.approx(0.20)
