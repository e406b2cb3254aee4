"""Device-protocol transports."""

from .coap_transport import AiocoapTransport

__all__ = ["AiocoapTransport"]
