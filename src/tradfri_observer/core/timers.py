"""
Explicit timer handles for the observer's loops.

Each loop owns one or more ``Timer`` objects instead of a bare
``asyncio.TimerHandle`` field, so "is anything scheduled?" is a state query
rather than a ``None`` check racing against the callback itself.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class TimerState(enum.Enum):
    NOT_SCHEDULED = "not_scheduled"
    SCHEDULED = "scheduled"
    FIRING = "firing"


class Timer:
    """One-shot, re-armable ``call_later`` wrapper."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._handle: asyncio.TimerHandle | None = None
        self._state = TimerState.NOT_SCHEDULED

    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def scheduled(self) -> bool:
        return self._state is TimerState.SCHEDULED

    def schedule(self, delay: float, callback: Callable[[], None]) -> None:
        """Arm the timer, replacing any pending firing."""
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(max(0.0, delay), self._fire, callback)
        self._state = TimerState.SCHEDULED
        logger.debug("Timer %s armed for %.3fs", self.name, delay)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._state = TimerState.NOT_SCHEDULED

    def _fire(self, callback: Callable[[], None]) -> None:
        self._handle = None
        self._state = TimerState.FIRING
        try:
            callback()
        finally:
            # The callback may have re-armed or cancelled us.
            if self._state is TimerState.FIRING:
                self._state = TimerState.NOT_SCHEDULED


__all__ = ["Timer", "TimerState"]
