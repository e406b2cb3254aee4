from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Any

import pytest

from tests.support import BASE_URL, FakeMqtt, FakeTransport, RecordingQueue


def _write_yaml(path: Path, content: str) -> None:
    path.write_text(textwrap.dedent(content).strip() + "\n", encoding="utf-8")


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def mqtt() -> FakeMqtt:
    return FakeMqtt()


@pytest.fixture
def recording_queue() -> RecordingQueue:
    return RecordingQueue()


@pytest.fixture
def fast_settings() -> dict[str, Any]:
    """Observer settings scaled down so cycles complete within a test."""

    return {
        "coap_url": BASE_URL,
        "ping_interval": 10.0,
        "ping_timeout": 5.0,
        "deque_interval": 0.001,
        "discover_interval": 0,
        "task_timeout": 0.5,
        "timeout_backoff": 0.01,
        "failure_backoff": 0.01,
    }


@pytest.fixture
def sample_config_dir(tmp_path: Path) -> Path:
    """
    Provide a temporary configuration directory for tests.
    """

    config_dir = tmp_path / "config"
    config_dir.mkdir()
    config_yaml = f"""
    observer:
      coap_url: "coap://10.0.0.2/"
      ping_interval: 45
      ping_timeout: 15
      topic_prefix: "lab-raw"
      index_resources:
        "15001": 1
        "15005": 2

    mqtt:
      host: "broker.test"
      port: 1884

    logging:
      level: "DEBUG"
      file: "{(tmp_path / 'logs' / 'observer.log').as_posix()}"
    """
    _write_yaml(config_dir / "config.yaml", config_yaml)
    return config_dir
