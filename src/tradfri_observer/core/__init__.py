"""
Core engine of the observer.

This package exposes the serialised task queue, the ping watchdog, the
discovery loop, the observation registry and the observer that wires them.
"""

from .config import ConfigError, ConfigService, ConfigSnapshot, ObserverSettings
from .contracts import (
    CoapResponse,
    CoapTransport,
    HealthStatus,
    Link,
    MqttClient,
    PublishError,
    TransportError,
)
from .discovery import DiscoveryLoop
from .observer import Observer
from .publisher import UpdatePublisher
from .queue import TaskQueue
from .registry import ObservationRegistry
from .watchdog import PingWatchdog

__all__ = [
    "CoapResponse",
    "CoapTransport",
    "ConfigError",
    "ConfigService",
    "ConfigSnapshot",
    "DiscoveryLoop",
    "HealthStatus",
    "Link",
    "MqttClient",
    "ObservationRegistry",
    "Observer",
    "ObserverSettings",
    "PingWatchdog",
    "PublishError",
    "TaskQueue",
    "TransportError",
    "UpdatePublisher",
]
