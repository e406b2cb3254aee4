"""
Gateway observer that bridges CoAP observations onto MQTT.

The observer owns the task queue, ping watchdog, discovery loop, observation
registry and update publisher for a single gateway, and coordinates the
session reset that ties them together.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ..modules.process.linkformat import parse_core_links
from .config import ObserverSettings, load_observer_settings
from .contracts import CoapTransport, HealthStatus, LinkParser, MqttClient, Task
from .discovery import DiscoveryLoop
from .publisher import UpdatePublisher
from .queue import TaskQueue
from .registry import ObservationRegistry
from .watchdog import PingWatchdog

logger = logging.getLogger(__name__)


class Observer:
    """Observe every resource of one gateway and republish updates."""

    def __init__(
        self,
        settings: ObserverSettings | Mapping[str, Any],
        *,
        transport: CoapTransport,
        mqtt: MqttClient,
        link_parser: LinkParser | None = None,
    ) -> None:
        self.settings = load_observer_settings(
            settings if isinstance(settings, ObserverSettings) else dict(settings)
        )
        self._base_url = self.settings.coap_url
        self._transport = transport
        self._running = False
        self._resetting = False
        self.reset_count = 0
        self.last_reset_reason: str | None = None

        self.queue = TaskQueue(
            deque_interval=self.settings.deque_interval,
            task_timeout=self.settings.task_timeout,
            timeout_backoff=self.settings.timeout_backoff,
            failure_backoff=self.settings.failure_backoff,
        )
        self.publisher = UpdatePublisher(
            mqtt=mqtt,
            observe=self._observe,
            topic_prefix=self.settings.topic_prefix,
            index_resources=self.settings.index_resources,
        )
        self.registry = ObservationRegistry(
            queue=self.queue,
            transport=transport,
            base_url=self._base_url,
            on_update=self.publisher.on_update,
        )
        self.discovery = DiscoveryLoop(
            queue=self.queue,
            transport=transport,
            parser=link_parser or parse_core_links,
            registry=self.registry,
            publisher=self.publisher,
            base_url=self._base_url,
            interval=self.settings.discover_interval,
            on_threshold=lambda: self.reset("discovery failed"),
            threshold=self.settings.failure_threshold,
        )
        self.watchdog = PingWatchdog(
            queue=self.queue,
            transport=transport,
            target=self._base_url,
            interval=self.settings.ping_interval,
            timeout=self.settings.ping_timeout,
            on_threshold=lambda: self.reset("ping timed out"),
            threshold=self.settings.failure_threshold,
        )

    @property
    def running(self) -> bool:
        return self._running

    def url(self) -> str:
        return self._base_url

    def enqueue(self, task: Task) -> None:
        self.queue.enqueue(task)

    async def start(self) -> None:
        """Start the ping cycle and the first discovery."""
        if self._running:
            logger.warning("Observer for %s already running.", self._base_url)
            return
        self._running = True
        self.queue.open()
        self.watchdog.start()
        self.discovery.start()
        logger.info("Observing gateway %s", self._base_url)

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self.watchdog.stop()
        self.discovery.stop()
        self.queue.close()
        self.registry.clear()
        self._reset_transport()
        logger.info("Stopped observing gateway %s", self._base_url)

    def reset(self, reason: str = "requested") -> None:
        """Tear down the session and restart discovery; the ping cycle keeps running."""
        if self._resetting:
            logger.debug("Reset requested while a reset is in progress; ignoring.")
            return
        self._resetting = True
        try:
            logger.warning("Resetting CoAP session for %s: %s", self._base_url, reason)
            self.reset_count += 1
            self.last_reset_reason = reason
            self._reset_transport()
            self.queue.clear()
            self.discovery.clear()
            self.registry.clear()
            if self._running:
                self.discovery.start()
        finally:
            self._resetting = False

    async def health(self) -> HealthStatus:
        if not self._running:
            status = "stopped"
        elif self.watchdog.failures or self.discovery.failures:
            status = "degraded"
        else:
            status = "healthy"
        return HealthStatus(
            status=status,
            details={
                "url": self._base_url,
                "queue_depth": len(self.queue),
                "in_flight": self.queue.in_flight,
                "observed": len(self.registry),
                "confirmed": self.registry.confirmed,
                "ping_failures": self.watchdog.failures,
                "discover_failures": self.discovery.failures,
                "resets": self.reset_count,
                "last_reset_reason": self.last_reset_reason,
                "published": self.publisher.published_total,
            },
        )

    def _observe(self, path: str) -> bool:
        return self.registry.observe(path)

    def _reset_transport(self) -> None:
        try:
            self._transport.reset()
        except Exception:
            logger.exception("Failed to reset CoAP transport for %s", self._base_url)


__all__ = ["Observer"]
