"""Fake providers and fixtures for acquisition tests (no live network)."""

from .providers import (
    FakeClock,
    FakeProviderFailNThenSucceed,
    FakeProviderRaisingRaw,
    FakeQuoteProvider,
    make_candles,
    make_engine,
)

__all__ = [
    "FakeClock",
    "FakeProviderFailNThenSucceed",
    "FakeProviderRaisingRaw",
    "FakeQuoteProvider",
    "make_candles",
    "make_engine",
]
