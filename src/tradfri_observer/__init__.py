"""
tradfri-observer - CoAP to MQTT bridge

Observes every resource of an IKEA Trådfri (or any CoAP) gateway and
republishes the raw payloads as retained MQTT messages.
"""

__version__ = "0.1.0"

from tradfri_observer.core import Observer, ObserverSettings

__all__ = ["Observer", "ObserverSettings"]
