"""
Provider architecture for ETF price acquisition.

A fixed set of quote providers sits behind one AcquisitionEngine that ranks
them, races the best two for realtime quotes, validates and reconciles their
answers, falls back serially on failure, and throttles every call through an
adaptive per-provider governor.
"""

from __future__ import annotations

from .base import (
    Candle,
    MarketSnapshot,
    PriceProvider,
    ProviderDescriptor,
    ProviderStatus,
    Quote,
)
from .chain import AcquisitionEngine, CrossValidationConfig, candles_to_frame
from .errors import (
    AllSourcesUnavailable,
    ConfigurationError,
    InvalidDataError,
    ProviderError,
    TransientProviderError,
)
from .governor import AdaptiveGovernor, GovernorConfig
from .registry import ProviderRegistry
from .resilience import BreakerConfig, FailureTracker, LastValidPriceCache
from .validation import PriceValidator, ValidationConfig

__all__ = [
    "Quote",
    "Candle",
    "MarketSnapshot",
    "PriceProvider",
    "ProviderDescriptor",
    "ProviderStatus",
    "AcquisitionEngine",
    "CrossValidationConfig",
    "candles_to_frame",
    "AllSourcesUnavailable",
    "ConfigurationError",
    "InvalidDataError",
    "ProviderError",
    "TransientProviderError",
    "AdaptiveGovernor",
    "GovernorConfig",
    "ProviderRegistry",
    "BreakerConfig",
    "FailureTracker",
    "LastValidPriceCache",
    "PriceValidator",
    "ValidationConfig",
]
