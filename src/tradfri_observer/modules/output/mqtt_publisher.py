"""
paho-mqtt publisher used to republish gateway resources.

paho runs its network loop on a background thread; ``publish`` only hands
the message to that loop, so calls from the event loop never block.
"""

from __future__ import annotations

import logging
from typing import Any

from ...core.config import MqttSettings
from ...core.contracts import PublishError

logger = logging.getLogger(__name__)


class PahoMqttPublisher:
    """Fire-and-forget MQTT client."""

    def __init__(self, settings: MqttSettings | None = None, *, client: Any | None = None) -> None:
        try:
            import paho.mqtt.client as mqtt
        except ModuleNotFoundError as exc:  # pragma: no cover - import guard
            raise PublishError("paho-mqtt is not installed") from exc
        self._mqtt = mqtt
        self._settings = settings or MqttSettings()
        self._client = client or mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=self._settings.client_id,
        )
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        """Connect asynchronously and start paho's network thread."""
        settings = self._settings
        logger.info("Connecting to MQTT broker %s:%s", settings.host, settings.port)
        try:
            self._client.connect_async(settings.host, settings.port, keepalive=settings.keepalive)
        except (OSError, ValueError) as exc:
            raise PublishError(f"Cannot connect to {settings.host}:{settings.port}: {exc}") from exc
        self._client.loop_start()

    def disconnect(self) -> None:
        self._client.disconnect()
        self._client.loop_stop()
        self._connected = False

    def publish(
        self,
        topic: str,
        payload: str,
        *,
        qos: int = 1,
        retain: bool = True,
        dup: bool = False,
    ) -> None:
        # paho sets the DUP flag itself on redelivery.
        if not topic:
            return
        info = self._client.publish(topic, payload, qos=qos, retain=retain)
        if info.rc not in (self._mqtt.MQTT_ERR_SUCCESS, self._mqtt.MQTT_ERR_NO_CONN):
            raise PublishError(f"Publishing to {topic} failed: {self._mqtt.error_string(info.rc)}")
        logger.debug("Queued publish to %s (mid=%s)", topic, info.mid)

    def _on_connect(
        self, client: Any, userdata: Any, flags: Any, reason_code: Any, properties: Any = None
    ) -> None:
        if getattr(reason_code, "is_failure", False):
            logger.error("MQTT connection refused: %s", reason_code)
            return
        self._connected = True
        logger.info("Connected to MQTT broker %s:%s", self._settings.host, self._settings.port)

    def _on_disconnect(
        self,
        client: Any,
        userdata: Any,
        flags: Any,
        reason_code: Any = None,
        properties: Any = None,
    ) -> None:
        self._connected = False
        logger.warning("Disconnected from MQTT broker: %s", reason_code)


__all__ = ["PahoMqttPublisher"]
