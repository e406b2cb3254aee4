from __future__ import annotations

import logging
from typing import Any

import pytest
from pydantic import ValidationError

from tests.support import BASE_URL, FakeMqtt, FakeTransport, link_document, wait_until
from tradfri_observer.core.config import ConfigError, ObserverSettings
from tradfri_observer.core.observer import Observer


@pytest.fixture
def observer(
    fast_settings: dict[str, Any], transport: FakeTransport, mqtt: FakeMqtt
) -> Observer:
    transport.discovery = link_document("</15001>;obs,</15011/15012>;obs")
    return Observer(fast_settings, transport=transport, mqtt=mqtt)


def test_ping_window_is_validated_on_construction(
    transport: FakeTransport, mqtt: FakeMqtt
) -> None:
    with pytest.raises(ConfigError):
        Observer(
            {"coap_url": BASE_URL, "ping_interval": 100, "ping_timeout": 30000},
            transport=transport,
            mqtt=mqtt,
        )
    with pytest.raises(ValidationError):
        ObserverSettings(coap_url=BASE_URL, ping_interval=30, ping_timeout=30)


def test_url_returns_configured_base(observer: Observer) -> None:
    assert observer.url() == BASE_URL
    assert not observer.running


@pytest.mark.asyncio
async def test_start_discovers_observes_and_publishes(
    observer: Observer, transport: FakeTransport, mqtt: FakeMqtt
) -> None:
    await observer.start()
    await wait_until(lambda: observer.registry.confirmed == 2)

    transport.notify("15001", "[65536]")
    await wait_until(lambda: observer.registry.confirmed == 3)
    transport.notify("15001/65536", '{"3311":[{"5850":1}]}')

    assert transport.pings == 1
    assert transport.observed == [
        f"{BASE_URL}15001",
        f"{BASE_URL}15011/15012",
        f"{BASE_URL}15001/65536",
    ]
    assert mqtt.topics() == [
        "tradfri-raw/.well-known/core",
        "tradfri-raw/15001",
        "tradfri-raw/15001/65536",
    ]
    health = await observer.health()
    assert health.status == "healthy"
    assert health.details["confirmed"] == 3
    assert health.details["published"] == 3

    await observer.stop()


@pytest.mark.asyncio
async def test_start_twice_is_a_no_op(observer: Observer, transport: FakeTransport) -> None:
    await observer.start()
    await observer.start()
    await wait_until(lambda: observer.registry.confirmed == 2)

    assert len(transport.requests) == 1
    await observer.stop()


@pytest.mark.asyncio
async def test_transport_calls_never_overlap(
    observer: Observer, transport: FakeTransport
) -> None:
    await observer.start()
    await wait_until(lambda: observer.registry.confirmed == 2)
    transport.notify("15001", "[1,2,3]")
    await wait_until(lambda: observer.registry.confirmed == 5)

    assert transport.max_concurrency == 1
    await observer.stop()


@pytest.mark.asyncio
async def test_reset_clears_session_and_rediscovers(
    observer: Observer, transport: FakeTransport, mqtt: FakeMqtt
) -> None:
    await observer.start()
    await wait_until(lambda: observer.registry.confirmed == 2)

    observer.reset()

    assert transport.resets == 1
    assert len(observer.registry) == 0
    assert observer.discovery.snapshot is None
    assert observer.reset_count == 1

    await wait_until(lambda: observer.registry.confirmed == 2)
    assert len(transport.requests) == 2
    # The fresh session republishes the unchanged discovery document.
    assert mqtt.topics().count("tradfri-raw/.well-known/core") == 2
    await observer.stop()


@pytest.mark.asyncio
async def test_reset_requested_during_reset_is_ignored(
    observer: Observer, transport: FakeTransport
) -> None:
    await observer.start()
    transport.on_reset = observer.reset

    observer.reset()

    assert observer.reset_count == 1
    assert transport.resets == 1
    await observer.stop()


@pytest.mark.asyncio
async def test_transport_reset_error_does_not_abort_reset(
    observer: Observer, transport: FakeTransport
) -> None:
    def explode() -> None:
        raise RuntimeError("socket already closed")

    await observer.start()
    await wait_until(lambda: observer.registry.confirmed == 2)
    transport.on_reset = explode

    observer.reset()

    assert len(observer.registry) == 0
    await wait_until(lambda: observer.registry.confirmed == 2)
    await observer.stop()


@pytest.mark.asyncio
async def test_repeated_discovery_failures_reset_the_session(
    fast_settings: dict[str, Any], transport: FakeTransport, mqtt: FakeMqtt
) -> None:
    transport.discovery = RuntimeError("gateway unreachable")
    observer = Observer(
        {**fast_settings, "discover_interval": 0.01}, transport=transport, mqtt=mqtt
    )

    await observer.start()
    await wait_until(lambda: observer.reset_count >= 1, timeout=2.0)

    assert len(transport.requests) >= 3
    assert transport.resets >= 1
    await observer.stop()


@pytest.mark.asyncio
async def test_stop_tears_down_and_reports_stopped(
    observer: Observer, transport: FakeTransport
) -> None:
    await observer.start()
    await wait_until(lambda: observer.registry.confirmed == 2)

    await observer.stop()
    health = await observer.health()

    assert not observer.running
    assert health.status == "stopped"
    assert health.details["observed"] == 0
    assert not observer.watchdog.running
    assert not observer.discovery.timer.scheduled
    assert transport.resets == 1


@pytest.mark.asyncio
async def test_health_reports_degraded_after_discovery_failure(
    fast_settings: dict[str, Any], transport: FakeTransport, mqtt: FakeMqtt
) -> None:
    transport.discovery = RuntimeError("gateway unreachable")
    observer = Observer(fast_settings, transport=transport, mqtt=mqtt)

    await observer.start()
    await wait_until(lambda: observer.discovery.failures == 1)
    health = await observer.health()

    assert health.status == "degraded"
    assert health.details["discover_failures"] == 1
    await observer.stop()


@pytest.mark.asyncio
async def test_reset_logs_its_reason_once(
    fast_settings: dict[str, Any],
    transport: FakeTransport,
    mqtt: FakeMqtt,
    caplog: pytest.LogCaptureFixture,
) -> None:
    transport.ping_error = RuntimeError("no route to gateway")
    observer = Observer(
        {**fast_settings, "ping_interval": 0.04, "ping_timeout": 0.02},
        transport=transport,
        mqtt=mqtt,
    )

    with caplog.at_level(logging.WARNING, logger="tradfri_observer"):
        await observer.start()
        await wait_until(lambda: observer.reset_count == 1)
        await observer.stop()

    resets = [
        record for record in caplog.records if "Resetting CoAP session" in record.getMessage()
    ]
    assert len(resets) == 1
    assert resets[0].getMessage().endswith("ping timed out")
    assert observer.last_reset_reason == "ping timed out"


@pytest.mark.asyncio
async def test_reset_reason_reported_in_health(
    fast_settings: dict[str, Any], transport: FakeTransport, mqtt: FakeMqtt
) -> None:
    transport.discovery = RuntimeError("gateway unreachable")
    observer = Observer(
        {**fast_settings, "discover_interval": 0.01}, transport=transport, mqtt=mqtt
    )

    await observer.start()
    await wait_until(lambda: observer.reset_count >= 1, timeout=2.0)
    health = await observer.health()
    await observer.stop()

    assert health.details["last_reset_reason"] == "discovery failed"

    observer.reset()
    assert observer.last_reset_reason == "requested"
