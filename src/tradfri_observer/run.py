"""
CLI entrypoint that bridges one CoAP gateway onto an MQTT broker.

Loads Dynaconf configuration, configures logging, wires the aiocoap
transport and the paho publisher into an ``Observer`` and runs until
SIGINT/SIGTERM.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import logging.handlers
import signal
from collections.abc import Sequence
from pathlib import Path

from .core.config import ConfigError, ConfigService, ConfigSnapshot, LoggingSettings
from .core.observer import Observer
from .modules.input.coap_transport import AiocoapTransport
from .modules.output.mqtt_publisher import PahoMqttPublisher

LOGGER = logging.getLogger(__name__)
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _ensure_rotating_file_handler(
    log_file: Path,
    *,
    max_mb: int = 10,
    backup_count: int = 3,
) -> None:
    """Attach a rotating file handler pointed at ``log_file`` if missing."""

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.warning("Unable to create log directory %s: %s", log_file.parent, exc)
        return

    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        if isinstance(handler, logging.handlers.RotatingFileHandler):
            existing = getattr(handler, "baseFilename", None)
            if existing and Path(existing) == log_file.resolve():
                return

    handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=max_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(handler)


def configure_logging(level: str, settings: LoggingSettings | None = None) -> None:
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric_level, format=LOG_FORMAT)
    logging.getLogger().setLevel(numeric_level)
    if settings is not None and settings.file is not None:
        _ensure_rotating_file_handler(
            settings.file, max_mb=settings.max_mb, backup_count=settings.backup_count
        )


def load_snapshot(config_dir: Path | None, coap_url: str | None) -> ConfigSnapshot:
    overrides = {"observer": {"coap_url": coap_url}} if coap_url else None
    return ConfigService(config_dir=config_dir, overrides=overrides).snapshot


async def run_observer(snapshot: ConfigSnapshot) -> None:
    """Connect to the broker, observe the gateway and run until interrupted."""

    publisher = PahoMqttPublisher(snapshot.mqtt)
    observer = Observer(snapshot.observer, transport=AiocoapTransport(), mqtt=publisher)

    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)

    publisher.connect()
    await observer.start()
    LOGGER.info(
        "Bridging %s to mqtt://%s:%s under %s/. Press Ctrl+C to stop.",
        observer.url(),
        snapshot.mqtt.host,
        snapshot.mqtt.port,
        snapshot.observer.topic_prefix,
    )
    try:
        await stop_event.wait()
    finally:
        await observer.stop()
        publisher.disconnect()


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def _request_shutdown(sig_name: str) -> None:
        if not stop_event.is_set():
            LOGGER.info("Received %s, beginning graceful shutdown.", sig_name)
            stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_shutdown, sig.name)
        except NotImplementedError:  # Windows Proactor loop
            signal.signal(  # type: ignore[arg-type]
                sig,
                lambda signum, _frame, sig_name=sig.name: loop.call_soon_threadsafe(
                    _request_shutdown, sig_name or str(signum)
                ),
            )


def parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Republish CoAP gateway resources to MQTT.")
    parser.add_argument(
        "--config-dir",
        type=Path,
        default=None,
        help="Directory that contains config.yaml/secrets.yaml (default: repo config/).",
    )
    parser.add_argument(
        "--coap-url",
        default=None,
        help="Gateway base URL, overrides observer.coap_url (e.g. coap://10.0.0.2/).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Python logging level (default: logging.level from config, else INFO).",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        snapshot = load_snapshot(args.config_dir, args.coap_url)
    except ConfigError as exc:
        configure_logging(args.log_level or "INFO")
        LOGGER.error("Configuration failed: %s", exc)
        return 2
    configure_logging(args.log_level or snapshot.logging.level, snapshot.logging)
    try:
        asyncio.run(run_observer(snapshot))
    except KeyboardInterrupt:
        LOGGER.info("Interrupted by user.")
        return 0
    except ConfigError as exc:
        LOGGER.error("Configuration failed: %s", exc)
        return 2
    except Exception:  # pragma: no cover - surfaced to operator
        LOGGER.exception("tradfri-observer crashed.")
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())


__all__ = ["configure_logging", "load_snapshot", "main", "run_observer"]
