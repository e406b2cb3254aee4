"""
Periodic discovery of the gateway's resource tree.

Fetches ``.well-known/core``, and when the document changed since the last
cycle, republishes it and registers every observable link.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from .contracts import LINK_FORMAT, CoapTransport, LinkParser
from .publisher import UpdatePublisher
from .queue import TaskQueue
from .registry import ObservationRegistry
from .timers import Timer

logger = logging.getLogger(__name__)

DISCOVERY_PATH = ".well-known/core"


class DiscoveryLoop:
    def __init__(
        self,
        *,
        queue: TaskQueue,
        transport: CoapTransport,
        parser: LinkParser,
        registry: ObservationRegistry,
        publisher: UpdatePublisher,
        base_url: str,
        interval: float,
        on_threshold: Callable[[], None],
        threshold: int = 3,
    ) -> None:
        self._queue = queue
        self._transport = transport
        self._parser = parser
        self._registry = registry
        self._publisher = publisher
        self._base_url = base_url
        self._interval = interval
        self._on_threshold = on_threshold
        self._threshold = threshold
        self._timer = Timer("discovery")
        self.snapshot: str | None = None
        self.failures = 0
        self.cycles = 0
        self._session = 0

    @property
    def timer(self) -> Timer:
        return self._timer

    def start(self) -> None:
        self._run()

    def clear(self) -> None:
        """Forget the snapshot and failure count, cancelling the next cycle."""
        self._timer.cancel()
        self.snapshot = None
        self.failures = 0
        self._session += 1

    def stop(self) -> None:
        self.clear()

    def _run(self) -> None:
        self._timer.cancel()
        if self.failures >= self._threshold:
            logger.debug("Discovery failed %d times", self.failures)
            self.failures = 0
            self._on_threshold()
            return
        self._queue.enqueue(self._discover)

    async def _discover(self) -> None:
        self.cycles += 1
        session = self._session
        try:
            logger.debug("Fetching well-known endpoints")
            response = await self._transport.request(f"{self._base_url}{DISCOVERY_PATH}", "GET")
            if session != self._session:
                logger.debug("Discarding discovery reply from a previous session")
                return
            payload = response.text
            if self.snapshot is None or self.snapshot != payload:
                self._publisher.on_update(DISCOVERY_PATH, response)
                self.snapshot = payload
                if response.is_success and response.content_format == LINK_FORMAT:
                    self._register_links(payload)
                else:
                    logger.error(
                        "Unknown reply for %s: %s (content-format %s)",
                        DISCOVERY_PATH,
                        response.code,
                        response.content_format,
                    )
                    self.failures += 1
        except Exception:
            logger.exception("Error discovering gateway endpoints")
            if session != self._session:
                return
            self.failures += 1
        if self._interval > 0:
            self._timer.schedule(self._interval, self._run)

    def _register_links(self, document: str) -> None:
        links = self._parser(document)
        added = 0
        for path, link in links.items():
            if link.observable and self._registry.observe(path.lstrip("/")):
                added += 1
        logger.info("Discovered %d link(s), %d new observation(s)", len(links), added)


__all__ = ["DISCOVERY_PATH", "DiscoveryLoop"]
