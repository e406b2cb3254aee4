"""Fakes and helpers shared by the unit tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from tradfri_observer.core.contracts import LINK_FORMAT, CoapResponse, NotificationCallback

BASE_URL = "coap://gw.test/"


def link_document(payload: str) -> CoapResponse:
    """2.05 Content response carrying a link-format document."""
    return CoapResponse(
        code_class=2, code_detail=5, content_format=LINK_FORMAT, payload=payload.encode()
    )


def json_response(payload: str) -> CoapResponse:
    return CoapResponse(code_class=2, code_detail=5, content_format=50, payload=payload.encode())


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Poll ``predicate`` on the running loop until it holds."""

    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout=timeout)


class FakeTransport:
    """In-memory CoAP transport that records every call."""

    def __init__(self) -> None:
        self.ping_error: Exception | None = None
        self.ping_results: list[bool] = []
        self.pings = 0
        self.discovery: CoapResponse | Exception = link_document("")
        self.requests: list[tuple[str, str]] = []
        self.observed: list[str] = []
        self.observe_options: dict[str, dict[str, Any]] = {}
        self.callbacks: dict[str, NotificationCallback] = {}
        self.resets = 0
        self.on_reset: Callable[[], None] | None = None
        self._active = 0
        self.max_concurrency = 0

    async def _enter(self) -> None:
        self._active += 1
        self.max_concurrency = max(self.max_concurrency, self._active)
        await asyncio.sleep(0)

    async def ping(self, target: str) -> None:
        await self._enter()
        try:
            self.pings += 1
            if self.ping_results:
                if not self.ping_results.pop(0):
                    raise RuntimeError("ping lost")
            elif self.ping_error is not None:
                raise self.ping_error
        finally:
            self._active -= 1

    async def request(self, url: str, method: str = "GET") -> CoapResponse:
        await self._enter()
        try:
            self.requests.append((url, method))
            if isinstance(self.discovery, Exception):
                raise self.discovery
            return self.discovery
        finally:
            self._active -= 1

    async def observe(
        self,
        url: str,
        callback: NotificationCallback,
        *,
        method: str = "GET",
        keep_alive: bool = True,
        confirmable: bool = True,
        retransmit: bool = True,
    ) -> None:
        await self._enter()
        try:
            self.observed.append(url)
            self.observe_options[url] = {
                "method": method,
                "keep_alive": keep_alive,
                "confirmable": confirmable,
                "retransmit": retransmit,
            }
            self.callbacks[url] = callback
        finally:
            self._active -= 1

    def reset(self) -> None:
        self.resets += 1
        if self.on_reset is not None:
            self.on_reset()

    def notify(self, path: str, payload: str) -> None:
        self.callbacks[f"{BASE_URL}{path}"](json_response(payload))


class FakeMqtt:
    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []

    def publish(
        self,
        topic: str,
        payload: str,
        *,
        qos: int = 1,
        retain: bool = True,
        dup: bool = False,
    ) -> None:
        self.messages.append(
            {"topic": topic, "payload": payload, "qos": qos, "retain": retain, "dup": dup}
        )

    def topics(self) -> list[str]:
        return [message["topic"] for message in self.messages]


class RecordingQueue:
    """Queue stand-in that only records tasks so tests can run them by hand."""

    def __init__(self) -> None:
        self.tasks: list[Callable[[], Any]] = []

    def enqueue(self, task: Callable[[], Any]) -> None:
        self.tasks.append(task)

    async def run_next(self) -> None:
        task = self.tasks.pop(0)
        await task()


