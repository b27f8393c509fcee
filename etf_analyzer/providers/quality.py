"""
Rolling per-provider performance and data-quality statistics.

Success rate and latency accumulate over the process lifetime; quality issues
live in a bounded buffer pruned to the trailing window. The failure tracker
reads the recent-issue count to decide on priority penalties.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Iterable, Optional

MAX_QUALITY_ISSUES = 100
DEFAULT_QUALITY_WINDOW_S = 3600.0


@dataclass(frozen=True)
class QualityIssue:
    timestamp: float
    kind: str
    payload: Any = None


@dataclass
class PerformanceMetrics:
    """Counters for a single provider."""

    total_requests: int = 0
    successful_requests: int = 0
    total_response_time_ms: float = 0.0
    recent_quality_issues: Deque[QualityIssue] = field(
        default_factory=lambda: deque(maxlen=MAX_QUALITY_ISSUES)
    )

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests

    @property
    def avg_response_time_ms(self) -> float:
        if self.successful_requests == 0:
            return 0.0
        return self.total_response_time_ms / self.successful_requests

    def prune(self, now: float, window_s: float) -> None:
        while self.recent_quality_issues and now - self.recent_quality_issues[0].timestamp >= window_s:
            self.recent_quality_issues.popleft()

    def recent_issue_count(self, now: float, window_s: float) -> int:
        return sum(1 for issue in self.recent_quality_issues if now - issue.timestamp < window_s)


class QualityRecorder:
    """Owns PerformanceMetrics for every provider of one engine."""

    def __init__(
        self,
        provider_ids: Iterable[str],
        window_s: float = DEFAULT_QUALITY_WINDOW_S,
    ) -> None:
        self._window_s = window_s
        self._metrics: Dict[str, PerformanceMetrics] = {pid: PerformanceMetrics() for pid in provider_ids}

    @property
    def window_s(self) -> float:
        return self._window_s

    def metrics(self, provider_id: str) -> PerformanceMetrics:
        return self._metrics[provider_id]

    def record_request(self, provider_id: str, success: bool, latency_ms: Optional[float] = None) -> None:
        m = self._metrics[provider_id]
        m.total_requests += 1
        if success:
            m.successful_requests += 1
            m.total_response_time_ms += max(0.0, latency_ms or 0.0)

    def record_issue(self, provider_id: str, kind: str, payload: Any, now: float) -> int:
        """Append an issue and return how many issues fall in the trailing window."""
        m = self._metrics[provider_id]
        m.recent_quality_issues.append(QualityIssue(timestamp=now, kind=kind, payload=payload))
        m.prune(now, self._window_s)
        return m.recent_issue_count(now, self._window_s)

    def summary(self, provider_id: str, now: float) -> Dict[str, Any]:
        m = self._metrics[provider_id]
        m.prune(now, self._window_s)
        return {
            "total_requests": m.total_requests,
            "success_rate": round(m.success_rate, 4),
            "avg_response_time_ms": round(m.avg_response_time_ms, 1),
            "recent_quality_issues": m.recent_issue_count(now, self._window_s),
        }
