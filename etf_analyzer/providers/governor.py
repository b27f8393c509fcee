"""
Adaptive rate/concurrency governor.

Every outbound provider call is dispatched through `AdaptiveGovernor.schedule`,
which enforces a minimum interval between dispatches and a cap on in-flight
calls. Both limits are tuned from a trailing window of outcomes:

- every `adjust_interval_s` with at least `min_requests` samples, a healthy
  window (error rate < 5 %, avg latency < 1 s) raises throughput and an
  unhealthy one (error rate >= 15 % or avg latency >= 2 s) lowers it;
- a failure that pushes the instantaneous error rate above 20 % triggers an
  emergency backoff straight away.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]


@dataclass
class GovernorConfig:
    min_time_ms: int = 500
    max_concurrent: int = 3
    min_min_time_ms: int = 200
    max_min_time_ms: int = 2000
    min_concurrent: int = 1
    max_concurrent_limit: int = 5
    adjust_interval_s: float = 30.0
    min_requests: int = 10
    healthy_error_rate: float = 0.05
    healthy_latency_ms: float = 1000.0
    unhealthy_error_rate: float = 0.15
    unhealthy_latency_ms: float = 2000.0
    emergency_error_rate: float = 0.20


@dataclass
class GovernorState:
    min_interval_ms: int
    max_concurrent: int
    success_count: int = 0
    error_count: int = 0
    total_response_time_ms: float = 0.0
    window_started_at: float = field(default=0.0)

    @property
    def request_count(self) -> int:
        return self.success_count + self.error_count

    @property
    def error_rate(self) -> float:
        if self.request_count == 0:
            return 0.0
        return self.error_count / self.request_count

    @property
    def avg_response_time_ms(self) -> float:
        if self.success_count == 0:
            return 0.0
        return self.total_response_time_ms / self.success_count


class AdaptiveGovernor:
    """Per-provider scheduler with self-tuning interval and concurrency."""

    def __init__(
        self,
        name: str,
        config: Optional[GovernorConfig] = None,
        clock: Clock = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.name = name
        self._config = config or GovernorConfig()
        self._clock = clock
        self._sleep = sleep
        self._state = GovernorState(
            min_interval_ms=self._config.min_time_ms,
            max_concurrent=self._config.max_concurrent,
            window_started_at=clock(),
        )
        self._in_flight = 0
        self._next_dispatch_at = 0.0
        self._cond: Optional[asyncio.Condition] = None
        self._cond_loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def state(self) -> GovernorState:
        return self._state

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def _condition(self) -> asyncio.Condition:
        # one condition per event loop; asyncio primitives are loop-bound
        loop = asyncio.get_running_loop()
        if self._cond is None or self._cond_loop is not loop:
            self._cond = asyncio.Condition()
            self._cond_loop = loop
        return self._cond

    async def _acquire(self) -> None:
        cond = self._condition()
        async with cond:
            await cond.wait_for(lambda: self._in_flight < self._state.max_concurrent)
            self._in_flight += 1
            now = self._clock()
            start_at = max(now, self._next_dispatch_at)
            self._next_dispatch_at = start_at + self._state.min_interval_ms / 1000.0
        delay = start_at - now
        if delay > 0:
            try:
                await self._sleep(delay)
            except BaseException:
                # cancelled during the spacing delay: hand the slot back
                await self._release()
                raise

    async def _release(self) -> None:
        cond = self._condition()
        async with cond:
            self._in_flight -= 1
            cond.notify_all()

    async def _wake_waiters(self) -> None:
        cond = self._condition()
        async with cond:
            cond.notify_all()

    async def _dispatch(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        await self._acquire()
        started = self._clock()
        try:
            result = await asyncio.to_thread(func, *args, **kwargs)
        finally:
            await self._release()
        self.record_success((self._clock() - started) * 1000.0)
        if self._in_flight < self._state.max_concurrent:
            await self._wake_waiters()
        return result

    async def schedule(
        self,
        func: Callable[..., T],
        *args: Any,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> T:
        """
        Run a blocking provider call in a worker thread under the governor's limits.

        `timeout` covers the whole dispatch: waiting for a slot, the spacing
        delay and the call itself. Raises whatever the call raises, or
        asyncio.TimeoutError when `timeout` elapses first; both count as
        errors. A cancelled caller releases its slot and is not counted.
        """
        try:
            return await asyncio.wait_for(self._dispatch(func, *args, **kwargs), timeout)
        except Exception:
            self.record_error()
            raise

    def record_success(self, response_time_ms: float) -> None:
        st = self._state
        st.success_count += 1
        st.total_response_time_ms += max(0.0, response_time_ms)
        self._adjust_if_needed()

    def record_error(self) -> None:
        st = self._state
        st.error_count += 1
        if st.error_rate > self._config.emergency_error_rate:
            self._emergency_backoff()

    def _adjust_if_needed(self) -> None:
        st = self._state
        cfg = self._config
        if self._clock() - st.window_started_at < cfg.adjust_interval_s:
            return
        if st.request_count < cfg.min_requests:
            return

        error_rate = st.error_rate
        avg_ms = st.avg_response_time_ms
        if error_rate < cfg.healthy_error_rate and avg_ms < cfg.healthy_latency_ms:
            self._increase_throughput()
        elif error_rate >= cfg.unhealthy_error_rate or avg_ms >= cfg.unhealthy_latency_ms:
            self._decrease_throughput()
        self._reset_window()

    def _apply(self, min_interval_ms: int, max_concurrent: int, reason: str) -> None:
        st = self._state
        if min_interval_ms == st.min_interval_ms and max_concurrent == st.max_concurrent:
            return
        log = logger.warning if reason == "emergency" else logger.info
        log(
            "Governor %s %s: min_interval %d->%dms, max_concurrent %d->%d",
            self.name, reason, st.min_interval_ms, min_interval_ms,
            st.max_concurrent, max_concurrent,
        )
        st.min_interval_ms = min_interval_ms
        st.max_concurrent = max_concurrent

    def _increase_throughput(self) -> None:
        cfg = self._config
        st = self._state
        self._apply(
            max(cfg.min_min_time_ms, int(st.min_interval_ms * 0.8)),
            min(cfg.max_concurrent_limit, st.max_concurrent + 1),
            "increase",
        )

    def _decrease_throughput(self) -> None:
        cfg = self._config
        st = self._state
        self._apply(
            min(cfg.max_min_time_ms, int(st.min_interval_ms * 1.5)),
            max(cfg.min_concurrent, st.max_concurrent - 1),
            "decrease",
        )

    def _emergency_backoff(self) -> None:
        cfg = self._config
        st = self._state
        self._apply(
            min(cfg.max_min_time_ms, st.min_interval_ms * 2),
            max(cfg.min_concurrent, st.max_concurrent // 2),
            "emergency",
        )
        self._reset_window()

    def _reset_window(self) -> None:
        st = self._state
        st.success_count = 0
        st.error_count = 0
        st.total_response_time_ms = 0.0
        st.window_started_at = self._clock()

    def stats(self) -> Dict[str, Any]:
        st = self._state
        out = asdict(st)
        out["error_rate"] = round(st.error_rate, 4)
        out["avg_response_time_ms"] = round(st.avg_response_time_ms, 1)
        out["in_flight"] = self._in_flight
        return out
