"""
Adapters plugged into the observer core, grouped by responsibility.
"""

from .input.coap_transport import AiocoapTransport
from .output.mqtt_publisher import PahoMqttPublisher
from .process.linkformat import parse_core_links

__all__ = ["AiocoapTransport", "PahoMqttPublisher", "parse_core_links"]
