"""
Error taxonomy for the acquisition layer.

Per-provider errors (transient and invalid-data) are absorbed by the engine and
turned into breaker/quality state transitions. Only AllSourcesUnavailable is
surfaced to callers; ConfigurationError is fatal at startup.
"""
from __future__ import annotations

from typing import Any, List, Optional


class ProviderError(Exception):
    """Base class for errors attributed to a single provider."""

    def __init__(self, provider_id: str, message: str) -> None:
        super().__init__(f"{provider_id}: {message}")
        self.provider_id = provider_id
        self.message = message


class TransientProviderError(ProviderError):
    """Timeout, HTTP failure or malformed payload. Retried via provider rotation."""


class InvalidDataError(ProviderError):
    """A response parsed fine but its content failed validation."""

    def __init__(self, provider_id: str, message: str, value: Any = None) -> None:
        super().__init__(provider_id, message)
        self.value = value


class AllSourcesUnavailable(Exception):
    """Every eligible provider was tried for this request and none produced a valid result."""

    def __init__(self, instrument_id: str, errors: Optional[List[str]] = None) -> None:
        self.instrument_id = instrument_id
        self.errors = list(errors or [])
        detail = "; ".join(self.errors) if self.errors else "no provider available"
        super().__init__(f"All sources unavailable for {instrument_id}: {detail}")


class ConfigurationError(Exception):
    """Bad endpoint template, unknown provider or inconsistent thresholds."""
