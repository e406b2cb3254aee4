"""
Serialised, retrying work queue for CoAP operations.

The gateway is a constrained device, so every outbound request goes through
this queue and only one is ever in flight. A task that fails or overruns its
execution timeout is moved to the tail and retried after a backoff; it is
never dropped unless the queue is cleared by a session reset.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from .contracts import Task
from .timers import Timer

logger = logging.getLogger(__name__)


class DrainState(enum.Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    CLOSED = "closed"


class AttemptState(enum.Enum):
    PENDING = "pending"
    SETTLED = "settled"
    TIMED_OUT = "timed_out"
    ABANDONED = "abandoned"


@dataclass(eq=False)
class _Attempt:
    task: Task
    state: AttemptState = AttemptState.PENDING
    timeout: asyncio.TimerHandle | None = field(default=None, repr=False)

    def finish(self, state: AttemptState) -> bool:
        """Leave PENDING exactly once; later transitions report False."""
        if self.state is not AttemptState.PENDING:
            return False
        self.state = state
        if self.timeout is not None:
            self.timeout.cancel()
            self.timeout = None
        return True


class TaskQueue:
    """FIFO of coroutine factories drained one at a time."""

    def __init__(
        self,
        *,
        deque_interval: float = 0.1,
        task_timeout: float = 20.0,
        timeout_backoff: float = 10.0,
        failure_backoff: float = 10.0,
    ) -> None:
        self._pending: deque[Task] = deque()
        self._timer = Timer("queue-drain")
        self._state = DrainState.IDLE
        self._current: _Attempt | None = None
        self._deque_interval = deque_interval
        self._task_timeout = task_timeout
        self._timeout_backoff = timeout_backoff
        self._failure_backoff = failure_backoff
        self.completed_total = 0
        self.failed_total = 0
        self.timed_out_total = 0

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def state(self) -> DrainState:
        return self._state

    @property
    def in_flight(self) -> bool:
        return self._current is not None

    def enqueue(self, task: Task) -> None:
        """Append a task; start draining on the next loop turn if idle."""
        self._pending.append(task)
        if self._state is DrainState.IDLE:
            self._schedule_drain(0.0)

    def clear(self) -> None:
        """Drop pending work and detach from any in-flight task."""
        dropped = len(self._pending)
        self._pending.clear()
        self._timer.cancel()
        if self._current is not None:
            self._current.finish(AttemptState.ABANDONED)
            self._current = None
        if self._state is not DrainState.CLOSED:
            self._state = DrainState.IDLE
        if dropped:
            logger.info("Task queue cleared; dropped %d pending task(s).", dropped)

    def close(self) -> None:
        """Clear the queue and stop draining until ``open`` is called."""
        self._state = DrainState.CLOSED
        self.clear()

    def open(self) -> None:
        if self._state is not DrainState.CLOSED:
            return
        self._state = DrainState.IDLE
        if self._pending:
            self._schedule_drain(0.0)

    def _schedule_drain(self, delay: float) -> None:
        self._state = DrainState.SCHEDULED
        self._timer.schedule(delay, self._drain)

    def _drain(self) -> None:
        if not self._pending:
            self._state = DrainState.IDLE
            return
        self._state = DrainState.RUNNING
        task = self._pending.popleft()
        attempt = _Attempt(task)
        self._current = attempt
        loop = asyncio.get_running_loop()
        attempt.timeout = loop.call_later(self._task_timeout, self._on_timeout, attempt)
        try:
            future = asyncio.ensure_future(task())
        except Exception as exc:
            self._on_failure(attempt, exc)
            return
        future.add_done_callback(lambda fut: self._on_settled(attempt, fut))

    def _on_timeout(self, attempt: _Attempt) -> None:
        # The timer handle has already fired; drop it before finishing.
        attempt.timeout = None
        if not attempt.finish(AttemptState.TIMED_OUT):
            return
        self._current = None
        self.timed_out_total += 1
        logger.warning(
            "Timeout in queue, re-queueing and pausing for %.1fs", self._timeout_backoff
        )
        self._pending.append(attempt.task)
        self._schedule_drain(self._timeout_backoff)

    def _on_settled(self, attempt: _Attempt, future: asyncio.Future[Any]) -> None:
        if future.cancelled():
            error: BaseException | None = asyncio.CancelledError()
        else:
            error = future.exception()
        if attempt.state is not AttemptState.PENDING:
            if error is not None:
                logger.debug("Late failure from detached task ignored: %r", error)
            return
        if error is not None:
            self._on_failure(attempt, error)
            return
        attempt.finish(AttemptState.SETTLED)
        self._current = None
        self.completed_total += 1
        self._schedule_drain(self._deque_interval)

    def _on_failure(self, attempt: _Attempt, error: BaseException) -> None:
        attempt.finish(AttemptState.SETTLED)
        self._current = None
        self.failed_total += 1
        logger.error(
            "Error from queued task, re-queuing and delaying queue %.1fs: %s",
            self._failure_backoff,
            error,
        )
        self._pending.append(attempt.task)
        self._schedule_drain(self._failure_backoff)


__all__ = ["AttemptState", "DrainState", "TaskQueue"]
