"""
Registry of observed resource paths.

A path is enqueued for observation at most once per session; the entry stays
``False`` until the gateway acknowledged the observe request.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from .contracts import CoapResponse, CoapTransport
from .queue import TaskQueue

logger = logging.getLogger(__name__)


UpdateHandler = Callable[[str, CoapResponse], None]


class ObservationRegistry:
    """Tracks pending and confirmed observations for one gateway session."""

    def __init__(
        self,
        *,
        queue: TaskQueue,
        transport: CoapTransport,
        base_url: str,
        on_update: UpdateHandler,
    ) -> None:
        self._queue = queue
        self._transport = transport
        self._base_url = base_url
        self._on_update = on_update
        self._entries: dict[str, bool] = {}
        self._generation = 0

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> dict[str, bool]:
        return dict(self._entries)

    @property
    def confirmed(self) -> int:
        return sum(1 for value in self._entries.values() if value)

    def observe(self, path: str) -> bool:
        """Queue an observe registration for ``path`` unless one already exists."""
        if path in self._entries:
            return False
        self._entries[path] = False
        self._queue.enqueue(self._registration(path, self._generation))
        return True

    def clear(self) -> None:
        self._entries.clear()
        self._generation += 1

    def _registration(self, path: str, generation: int):
        async def register() -> None:
            logger.debug("Observing %s", path)

            def notify(response: CoapResponse) -> None:
                self._on_update(path, response)

            await self._transport.observe(
                f"{self._base_url}{path}",
                notify,
                method="GET",
                keep_alive=True,
                confirmable=True,
                retransmit=True,
            )
            if generation == self._generation and path in self._entries:
                self._entries[path] = True

        return register


__all__ = ["ObservationRegistry", "UpdateHandler"]
