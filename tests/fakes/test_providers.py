"""
Tests for fake providers: deterministic data, fail-N-then-succeed, always-fail behavior.

No live network; validates that fakes behave as required for engine tests.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from etf_analyzer.providers.errors import TransientProviderError

from .providers import FakeClock, FakeProviderFailNThenSucceed, FakeQuoteProvider, make_candles


class TestFakeQuoteProvider:
    def test_deterministic_quotes(self):
        p = FakeQuoteProvider("ok", {"sh510300": "4.53"})
        q1 = p.fetch_realtime("sh510300")
        q2 = p.fetch_realtime("sh510300")
        assert q1 == q2
        assert q1.price == Decimal("4.53")
        assert p.call_count == 2

    def test_fail_flag_raises(self):
        p = FakeQuoteProvider("down", fail=True)
        with pytest.raises(TransientProviderError):
            p.fetch_realtime("sh510300")

    def test_series_trimmed_to_count(self):
        p = FakeQuoteProvider("ok", candles=make_candles(10))
        assert len(p.fetch_series("sh510300", 3)) == 3


class TestFailNThenSucceed:
    def test_fails_then_succeeds(self):
        p = FakeProviderFailNThenSucceed("flaky", fail_times=2)
        for _ in range(2):
            with pytest.raises(TransientProviderError):
                p.fetch_realtime("sh510300")
        assert p.fetch_realtime("sh510300").price == Decimal("4.50")


def test_fake_clock_advances():
    clock = FakeClock(start=100.0)
    clock.advance(5)
    assert clock() == 105.0
