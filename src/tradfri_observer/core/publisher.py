"""
Republish CoAP notifications to MQTT.

Index resources (device, group and scene lists on a Trådfri gateway) carry a
JSON array of child identifiers instead of a value; their children are
registered for observation as notifications arrive, which is how the tree
below the index roots is discovered.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping

from .contracts import CoapResponse, MqttClient, PublishError

logger = logging.getLogger(__name__)

DEFAULT_INDEX_RESOURCES: dict[str, int] = {"15001": 1, "15004": 1, "15005": 2}


class UpdatePublisher:
    """Turns resource notifications into retained MQTT messages."""

    def __init__(
        self,
        *,
        mqtt: MqttClient,
        observe: Callable[[str], object],
        topic_prefix: str = "tradfri-raw",
        index_resources: Mapping[str, int] | None = None,
        qos: int = 1,
        retain: bool = True,
    ) -> None:
        self._mqtt = mqtt
        self._observe = observe
        self._topic_prefix = topic_prefix
        self._index_resources = dict(
            DEFAULT_INDEX_RESOURCES if index_resources is None else index_resources
        )
        self._qos = qos
        self._retain = retain
        self.published_total = 0

    def topic_for(self, path: str) -> str:
        return f"{self._topic_prefix}/{path.lstrip('/')}"

    def is_index(self, path: str) -> bool:
        segments = path.strip("/").split("/")
        depth = self._index_resources.get(segments[0])
        return depth is not None and len(segments) <= depth

    def on_update(self, path: str, response: CoapResponse) -> None:
        payload = response.text
        logger.debug("Got update for %s: %s", path, payload)
        self._publish(self.topic_for(path), payload)
        if self.is_index(path):
            self._observe_children(path, payload)

    def _publish(self, topic: str, payload: str) -> None:
        try:
            self._mqtt.publish(topic, payload, qos=self._qos, retain=self._retain, dup=False)
        except PublishError as exc:
            logger.error("Failed to publish %s: %s", topic, exc)
            return
        self.published_total += 1

    def _observe_children(self, path: str, payload: str) -> None:
        try:
            children = json.loads(payload)
        except ValueError as exc:
            logger.error("In observe %s response (%s): %s", path, payload, exc)
            return
        if not isinstance(children, list):
            logger.error("In observe %s response (%s): expected a list of ids", path, payload)
            return
        base = path.strip("/")
        for child in children:
            self._observe(f"{base}/{child}")


__all__ = ["DEFAULT_INDEX_RESOURCES", "UpdatePublisher"]
