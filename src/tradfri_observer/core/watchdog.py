"""
Periodic liveness probe for the gateway session.

Each cycle queues one ping and arms a fail-check ``ping_timeout`` seconds
later. Three consecutive cycles without a successful ping trigger a session
reset. The cycle keeps running across resets.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass

from .contracts import CoapTransport
from .queue import TaskQueue
from .timers import Timer

logger = logging.getLogger(__name__)


class PingState(enum.Enum):
    WAITING = "waiting"
    PROBE_IN_FLIGHT = "probe_in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(eq=False)
class PingCycle:
    number: int
    state: PingState = PingState.WAITING


class PingWatchdog:
    def __init__(
        self,
        *,
        queue: TaskQueue,
        transport: CoapTransport,
        target: str,
        interval: float,
        timeout: float,
        on_threshold: Callable[[], None],
        threshold: int = 3,
    ) -> None:
        if interval <= timeout:
            raise ValueError("ping interval must be more than ping timeout")
        self._queue = queue
        self._transport = transport
        self._target = target
        self._interval = interval
        self._timeout = timeout
        self._on_threshold = on_threshold
        self._threshold = threshold
        self._timer = Timer("ping")
        self._cycle: PingCycle | None = None
        self._cycles = 0
        self.failures = 0
        self.resets_triggered = 0

    @property
    def running(self) -> bool:
        return self._cycle is not None

    @property
    def cycle(self) -> PingCycle | None:
        return self._cycle

    def start(self) -> None:
        if self._cycle is None:
            self._next_cycle()

    def stop(self) -> None:
        self._timer.cancel()
        self._cycle = None

    def _next_cycle(self) -> None:
        self._cycles += 1
        cycle = PingCycle(self._cycles)
        self._cycle = cycle
        self._timer.schedule(self._timeout, lambda: self._check(cycle))
        self._queue.enqueue(self._probe(cycle))

    def _probe(self, cycle: PingCycle):
        async def ping() -> None:
            # A timed-out probe is re-queued; only the first run pings.
            if cycle.state is not PingState.WAITING:
                return
            cycle.state = PingState.PROBE_IN_FLIGHT
            try:
                logger.debug("Sending ping")
                await self._transport.ping(self._target)
            except Exception as exc:
                logger.error("Error while pinging target %s: %s", self._target, exc)
                cycle.state = PingState.FAILED
            else:
                cycle.state = PingState.SUCCEEDED

        return ping

    def _check(self, cycle: PingCycle) -> None:
        self._timer.schedule(self._interval - self._timeout, self._next_cycle)
        if cycle.state is PingState.SUCCEEDED:
            self.failures = 0
            return
        self.failures += 1
        logger.debug("Ping cycle %d missed (%d consecutive)", cycle.number, self.failures)
        if self.failures >= self._threshold:
            self.failures = 0
            self.resets_triggered += 1
            logger.debug("Ping missed %d cycles in a row", self._threshold)
            self._on_threshold()


__all__ = ["PingCycle", "PingState", "PingWatchdog"]
