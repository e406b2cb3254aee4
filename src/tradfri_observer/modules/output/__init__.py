"""Message-bus publishers."""

from .mqtt_publisher import PahoMqttPublisher

__all__ = ["PahoMqttPublisher"]
