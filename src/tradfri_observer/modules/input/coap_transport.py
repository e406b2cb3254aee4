"""
aiocoap-backed transport for the observer.

All exchanges are confirmable; aiocoap handles retransmission itself, so the
``retransmit`` and ``keep_alive`` flags only select the message reliability
and keep the observation registered until the next reset. A failing callback
drops that notification only; the observation keeps delivering.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

from ...core.contracts import CoapResponse, NotificationCallback, TransportError

logger = logging.getLogger(__name__)


class AiocoapTransport:
    """CoAP client context shared by every request of one gateway session."""

    def __init__(self, *, request_timeout: float | None = None) -> None:
        try:
            import aiocoap
        except ModuleNotFoundError as exc:  # pragma: no cover - import guard
            raise TransportError("aiocoap is not installed") from exc
        self._aiocoap = aiocoap
        self._request_timeout = request_timeout
        self._context: Any | None = None
        self._context_lock = asyncio.Lock()
        self._observations: list[Any] = []
        self._listeners: set[asyncio.Task[None]] = set()

    async def ping(self, target: str) -> None:
        # Any answer, error codes included, proves the gateway is responsive.
        response = await self._exchange(target, "GET", confirmable=True)
        logger.debug("Ping %s answered with %s", target, response.code)

    async def request(self, url: str, method: str = "GET") -> CoapResponse:
        return await self._exchange(url, method, confirmable=True)

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
        context = await self._ensure_context()
        aiocoap = self._aiocoap
        message = self._message(method, url, confirmable=confirmable or retransmit, observe=0)
        request = context.request(message)
        try:
            first = await self._await(request.response)
        except aiocoap.error.Error as exc:
            raise TransportError(f"Observe {url} failed: {exc}") from exc
        converted = self._convert(first)
        # The gateway's answer is forwarded whatever its code.
        callback(converted)
        if not converted.is_success:
            logger.warning("Observe %s answered with %s; not listening", url, converted.code)
            request.observation.cancel()
            return
        if not keep_alive:
            request.observation.cancel()
            return
        self._observations.append(request.observation)
        listener = asyncio.create_task(
            self._listen(url, request.observation, callback), name=f"observe-{url}"
        )
        self._listeners.add(listener)
        listener.add_done_callback(self._listeners.discard)

    def reset(self) -> None:
        """Drop every observation and the client context."""
        for observation in self._observations:
            with contextlib.suppress(Exception):
                observation.cancel()
        self._observations.clear()
        for listener in list(self._listeners):
            listener.cancel()
        self._listeners.clear()
        context, self._context = self._context, None
        if context is not None:
            task = asyncio.get_running_loop().create_task(context.shutdown())
            task.add_done_callback(self._log_shutdown)

    async def _listen(self, url: str, observation: Any, callback: NotificationCallback) -> None:
        try:
            async for notification in observation:
                try:
                    callback(self._convert(notification))
                except Exception:
                    logger.exception("Observation callback for %s failed", url)
        except self._aiocoap.error.Error as exc:
            logger.warning("Observation of %s ended: %s", url, exc)

    async def _exchange(self, url: str, method: str, *, confirmable: bool) -> CoapResponse:
        context = await self._ensure_context()
        message = self._message(method, url, confirmable=confirmable)
        try:
            response = await self._await(context.request(message).response)
        except self._aiocoap.error.Error as exc:
            raise TransportError(f"{method.upper()} {url} failed: {exc}") from exc
        return self._convert(response)

    def _message(self, method: str, url: str, *, confirmable: bool, **options: Any) -> Any:
        # Confirmable is aiocoap's default reliability.
        if not confirmable:
            options["transport_tuning"] = self._aiocoap.Unreliable
        return self._aiocoap.Message(code=self._method_code(method), uri=url, **options)

    async def _await(self, awaitable: Any) -> Any:
        if self._request_timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, self._request_timeout)
        except TimeoutError as exc:
            raise TransportError("CoAP request timed out") from exc

    async def _ensure_context(self) -> Any:
        async with self._context_lock:
            if self._context is None:
                self._context = await self._aiocoap.Context.create_client_context()
                logger.debug("Created CoAP client context")
            return self._context

    def _method_code(self, method: str) -> Any:
        try:
            return getattr(self._aiocoap.numbers.codes.Code, method.upper())
        except AttributeError as exc:
            raise TransportError(f"Unsupported CoAP method {method!r}") from exc

    @staticmethod
    def _convert(message: Any) -> CoapResponse:
        code = int(message.code)
        content_format = message.opt.content_format
        return CoapResponse(
            code_class=code >> 5,
            code_detail=code & 0x1F,
            content_format=int(content_format) if content_format is not None else None,
            payload=bytes(message.payload or b""),
        )

    @staticmethod
    def _log_shutdown(task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("CoAP context shutdown failed: %s", exc)


__all__ = ["AiocoapTransport"]
