"""
Resilience primitives: per-provider failure tracking with a cooldown circuit
breaker, quality-issue priority penalties, and the last-valid-price cache.

The breaker is non-preemptive: after `failure_threshold` consecutive failures
a provider is excluded from selection until `disabled_until`, then becomes
eligible again with no probe request. Re-enabling is a timestamp comparison
made whenever status is read, so breaker state is a pure function of the
injected clock.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Optional

from .base import ProviderDescriptor, ProviderStatus
from .event_log import ErrorEventLog
from .quality import QualityRecorder

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass
class BreakerConfig:
    failure_threshold: int = 3
    cooldown_seconds: float = 600.0
    quality_window_seconds: float = 3600.0
    quality_issue_threshold: int = 10


@dataclass
class FailureState:
    """Mutable failure state for a single provider."""

    consecutive_failures: int = 0
    disabled_until: Optional[float] = None
    last_success_at: Optional[float] = None
    last_error: Optional[str] = None


class FailureTracker:
    """
    Counts consecutive failures per provider and disables providers that cross
    the threshold.

    States:
    - ACTIVE: provider is eligible for selection.
    - DISABLED: provider is skipped until the cooldown timer expires.

    Transitions:
    - ACTIVE -> DISABLED: consecutive failures reach `failure_threshold`.
    - DISABLED -> ACTIVE: `now >= disabled_until`. Only the timer does this;
      a success during the cooldown resets the count but keeps the provider out.
    """

    def __init__(
        self,
        descriptors: Iterable[ProviderDescriptor],
        config: Optional[BreakerConfig] = None,
        recorder: Optional[QualityRecorder] = None,
        event_log: Optional[ErrorEventLog] = None,
        clock: Clock = time.time,
    ) -> None:
        self._descriptors: Dict[str, ProviderDescriptor] = {d.id: d for d in descriptors}
        self._config = config or BreakerConfig()
        self._clock = clock
        self._states: Dict[str, FailureState] = {pid: FailureState() for pid in self._descriptors}
        self._recorder = recorder or QualityRecorder(
            self._descriptors, window_s=self._config.quality_window_seconds
        )
        self._events = event_log or ErrorEventLog()

    @property
    def config(self) -> BreakerConfig:
        return self._config

    @property
    def recorder(self) -> QualityRecorder:
        return self._recorder

    @property
    def events(self) -> ErrorEventLog:
        return self._events

    def state(self, provider_id: str) -> FailureState:
        return self._states[provider_id]

    def status(self, provider_id: str) -> ProviderStatus:
        self._refresh(provider_id)
        return self._descriptors[provider_id].status

    def is_available(self, provider_id: str) -> bool:
        return self.status(provider_id) == ProviderStatus.ACTIVE

    def _refresh(self, provider_id: str) -> None:
        st = self._states[provider_id]
        desc = self._descriptors[provider_id]
        if st.disabled_until is not None and self._clock() >= st.disabled_until:
            st.disabled_until = None
            desc.status = ProviderStatus.ACTIVE
            logger.info(
                "Provider %s re-enabled after cooldown (consecutive failures: %d)",
                desc.display_name, st.consecutive_failures,
            )

    def record_success(self, provider_id: str, latency_ms: float = 0.0) -> None:
        st = self._states[provider_id]
        st.consecutive_failures = 0
        st.last_success_at = self._clock()
        st.last_error = None
        self._recorder.record_request(provider_id, True, latency_ms)
        self._refresh(provider_id)

    def record_failure(self, provider_id: str, error: Any) -> None:
        st = self._states[provider_id]
        desc = self._descriptors[provider_id]
        now = self._clock()
        message = str(error)
        st.consecutive_failures += 1
        st.last_error = message[:500]
        self._recorder.record_request(provider_id, False)
        self._events.record(provider_id, type(error).__name__, message, now)

        self._refresh(provider_id)
        if (
            st.consecutive_failures >= self._config.failure_threshold
            and desc.status == ProviderStatus.ACTIVE
        ):
            st.disabled_until = now + self._config.cooldown_seconds
            desc.status = ProviderStatus.DISABLED
            logger.warning(
                "Provider %s disabled for %.0fs after %d consecutive failures: %s",
                desc.display_name, self._config.cooldown_seconds,
                st.consecutive_failures, message[:200],
            )

    def record_quality_issue(self, provider_id: str, kind: str, payload: Any = None) -> int:
        """Record an invalid-but-delivered response; penalize priority when issues pile up."""
        now = self._clock()
        desc = self._descriptors[provider_id]
        recent = self._recorder.record_issue(provider_id, kind, payload, now)
        self._events.record(provider_id, kind, repr(payload), now)
        if recent > self._config.quality_issue_threshold:
            desc.priority += 1
            logger.warning(
                "Provider %s has %d quality issues in the last hour, priority lowered to %d",
                desc.display_name, recent, desc.priority,
            )
            self._events.record(provider_id, "quality_penalty", f"priority={desc.priority}", now)
        return recent

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        out: Dict[str, Dict[str, Any]] = {}
        for pid, st in self._states.items():
            out[pid] = {
                "status": self.status(pid).value,
                "consecutive_failures": st.consecutive_failures,
                "disabled_until": st.disabled_until,
                "last_success_at": st.last_success_at,
                "last_error": st.last_error,
            }
        return out


class LastValidPriceCache:
    """
    Last accepted price per instrument.

    Used only as the baseline for validating the next quote; entries older than
    `max_age_seconds` are ignored.
    """

    def __init__(self, max_age_seconds: float = 300.0, clock: Clock = time.time) -> None:
        self._max_age_s = max_age_seconds
        self._clock = clock
        self._store: Dict[str, tuple[Decimal, float]] = {}

    def get(self, key: str) -> Optional[Decimal]:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, timestamp = entry
        if (self._clock() - timestamp) > self._max_age_s:
            return None
        return value

    def put(self, key: str, value: Decimal) -> None:
        self._store[key] = (value, self._clock())
