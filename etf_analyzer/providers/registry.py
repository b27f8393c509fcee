"""
Provider registry: catalog of descriptors and adapters, and the source selector.

The provider set is fixed at startup. Each entry pairs a ProviderDescriptor
(display name, priority, endpoint templates, runtime status) with the adapter
that speaks that provider's wire format. `select` orders the providers that
are currently available for a request.
"""
from __future__ import annotations

import logging
import string
from typing import Any, Callable, Dict, List, Union

from .base import PriceProvider, ProviderDescriptor
from .errors import ConfigurationError
from .resilience import FailureTracker

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[ProviderDescriptor], PriceProvider]


def _template_fields(template: str) -> set[str]:
    try:
        return {name for _, name, _, _ in string.Formatter().parse(template) if name}
    except ValueError as exc:
        raise ConfigurationError(f"Malformed endpoint template {template!r}: {exc}") from exc


def check_descriptor(desc: ProviderDescriptor) -> None:
    """Raise ConfigurationError for templates the adapters cannot fill."""
    if not desc.id:
        raise ConfigurationError("Provider descriptor without id")
    realtime = _template_fields(desc.realtime_endpoint_template or "")
    series = _template_fields(desc.series_endpoint_template or "")
    if "symbol" not in realtime:
        raise ConfigurationError(f"Realtime endpoint for '{desc.id}' must contain {{symbol}}")
    if "symbol" not in series:
        raise ConfigurationError(f"Series endpoint for '{desc.id}' must contain {{symbol}}")
    unknown = (realtime | series) - {"symbol", "count"}
    if unknown:
        raise ConfigurationError(f"Unknown placeholders {sorted(unknown)} in endpoints for '{desc.id}'")


class ProviderRegistry:
    """
    Registry mapping provider ids to descriptors and adapters.

    Usage:
        registry = ProviderRegistry()
        registry.register(tencent_descriptor, TencentProvider)
        registry.register(sina_descriptor, SinaProvider)

        ordered = registry.select(tracker)
    """

    def __init__(self) -> None:
        self._descriptors: Dict[str, ProviderDescriptor] = {}
        self._factories: Dict[str, Any] = {}
        self._instances: Dict[str, PriceProvider] = {}

    def register(
        self,
        descriptor: ProviderDescriptor,
        factory: Union[AdapterFactory, PriceProvider],
    ) -> None:
        """Register a provider; `factory` is an adapter class/callable taking the descriptor, or an instance."""
        check_descriptor(descriptor)
        if descriptor.id in self._descriptors:
            raise ConfigurationError(f"Provider '{descriptor.id}' registered twice")
        self._descriptors[descriptor.id] = descriptor
        self._factories[descriptor.id] = factory
        logger.debug("Registered provider: %s (priority %d)", descriptor.id, descriptor.priority)

    def descriptor(self, provider_id: str) -> ProviderDescriptor:
        try:
            return self._descriptors[provider_id]
        except KeyError:
            raise ConfigurationError(
                f"Unknown provider '{provider_id}'. Available: {list(self._descriptors)}"
            ) from None

    def get_adapter(self, provider_id: str) -> PriceProvider:
        """Get or instantiate the adapter for a provider."""
        if provider_id not in self._instances:
            desc = self.descriptor(provider_id)
            factory = self._factories[provider_id]
            if isinstance(factory, type) or not hasattr(factory, "fetch_realtime"):
                self._instances[provider_id] = factory(desc)
            else:
                self._instances[provider_id] = factory
        return self._instances[provider_id]

    @property
    def names(self) -> List[str]:
        return list(self._descriptors)

    @property
    def descriptors(self) -> List[ProviderDescriptor]:
        return list(self._descriptors.values())

    def select(self, tracker: FailureTracker) -> List[ProviderDescriptor]:
        """
        Available providers ordered by (consecutive failures asc, priority asc).

        Ties keep registration order, so the result is deterministic for a
        given tracker state.
        """
        available = [d for d in self._descriptors.values() if tracker.is_available(d.id)]
        return sorted(
            available,
            key=lambda d: (tracker.state(d.id).consecutive_failures, d.priority),
        )
