"""
Contracts shared by the observer core and its adapters.

The observer never talks to aiocoap or paho directly; it depends on the
protocols below so tests can inject deterministic fakes and the runtime can
plug in the concrete clients from ``tradfri_observer.modules``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

LINK_FORMAT = 40
"""CoAP content-format identifier for ``application/link-format``."""


class TransportError(RuntimeError):
    """Raised by transports when a CoAP exchange cannot be completed."""


class PublishError(RuntimeError):
    """Raised by bus clients when a publish cannot be handed to the broker."""


class CoapResponse(BaseModel):
    """Transport-neutral view of a CoAP response or notification."""

    model_config = ConfigDict(frozen=True)

    code_class: int = Field(description="Response class, e.g. 2 for 2.05 Content.")
    code_detail: int = Field(default=0, description="Response detail, e.g. 5 for 2.05.")
    content_format: int | None = Field(default=None)
    payload: bytes = Field(default=b"")

    @property
    def is_success(self) -> bool:
        return self.code_class == 2

    @property
    def text(self) -> str:
        if not self.payload:
            return ""
        return self.payload.decode("utf-8", errors="replace")

    @property
    def code(self) -> str:
        return f"{self.code_class}.{self.code_detail:02d}"


class Link(BaseModel):
    """Single entry of a CoRE link-format document."""

    model_config = ConfigDict(frozen=True)

    path: str
    attributes: dict[str, str | bool] = Field(default_factory=dict)

    @property
    def observable(self) -> bool:
        value = self.attributes.get("obs")
        if value is None:
            return False
        if isinstance(value, bool):
            return value
        return value.lower() not in ("0", "false")


class HealthStatus(BaseModel):
    """Structured health report for the observer."""

    model_config = ConfigDict(extra="allow", frozen=True)

    status: str = Field(description="Health classification such as healthy/degraded/stopped.")
    details: dict[str, Any] = Field(default_factory=dict)


Task = Callable[[], Awaitable[Any]]
NotificationCallback = Callable[[CoapResponse], None]
LinkParser = Callable[[str], dict[str, Link]]


@runtime_checkable
class CoapTransport(Protocol):
    """Operations the observer needs from the device-protocol client."""

    async def ping(self, target: str) -> None: ...

    async def request(self, url: str, method: str = "GET") -> CoapResponse: ...

    async def observe(
        self,
        url: str,
        callback: NotificationCallback,
        *,
        method: str = "GET",
        keep_alive: bool = True,
        confirmable: bool = True,
        retransmit: bool = True,
    ) -> None: ...

    def reset(self) -> None: ...


@runtime_checkable
class MqttClient(Protocol):
    """Fire-and-forget publisher used to republish resource updates."""

    def publish(
        self,
        topic: str,
        payload: str,
        *,
        qos: int = 1,
        retain: bool = True,
        dup: bool = False,
    ) -> None: ...


__all__ = [
    "LINK_FORMAT",
    "CoapResponse",
    "CoapTransport",
    "HealthStatus",
    "Link",
    "LinkParser",
    "MqttClient",
    "NotificationCallback",
    "PublishError",
    "Task",
    "TransportError",
]
