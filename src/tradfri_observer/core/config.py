"""
Dynaconf-powered configuration loader with Pydantic validation.

The configuration service loads ``config.yaml`` (plus an optional
``secrets.yaml``) from a config directory, applies ``TRADFRI_OBSERVER_*``
environment overrides, and validates the result into a ``ConfigSnapshot``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from dynaconf import Dynaconf
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .publisher import DEFAULT_INDEX_RESOURCES


def _section(raw: dict[str, Any], key: str) -> dict[str, Any]:
    """Case-insensitive dictionary lookup helper; nested keys come back lower-cased."""
    value = raw.get(key) or raw.get(key.upper()) or raw.get(key.lower())
    if isinstance(value, dict):
        # Environment overrides arrive upper-cased.
        return {str(name).lower(): item for name, item in value.items()}
    return {}


def _deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge dictionaries without mutating the originals."""
    result: dict[str, Any] = {**base}
    for key, value in updates.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


CONFIG_FILENAMES = ("config.yaml", "secrets.yaml")
_REPO_ROOT = Path(__file__).resolve().parents[3]
DEFAULT_CONFIG_DIR = _REPO_ROOT / "config"


class ConfigError(RuntimeError):
    """Raised when configuration files are missing or invalid."""


class ObserverSettings(BaseModel):
    """Timing and topic parameters for one gateway observer (seconds)."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    coap_url: str = Field(description="Base URL of the gateway, e.g. coaps://gw.local:5684/")
    ping_interval: float = Field(default=60.0, gt=0.0)
    ping_timeout: float = Field(default=30.0, gt=0.0)
    deque_interval: float = Field(default=0.1, ge=0.0)
    discover_interval: float = Field(
        default=300.0, ge=0.0, description="Seconds between discovery cycles; 0 disables."
    )
    topic_prefix: str = Field(default="tradfri-raw")
    task_timeout: float = Field(default=20.0, gt=0.0)
    timeout_backoff: float = Field(default=10.0, ge=0.0)
    failure_backoff: float = Field(default=10.0, ge=0.0)
    failure_threshold: int = Field(default=3, ge=1)
    index_resources: dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_INDEX_RESOURCES),
        description="Root resource id -> number of path segments that list children.",
    )

    @field_validator("coap_url")
    @classmethod
    def _require_url(cls, value: str) -> str:
        if not value:
            raise ValueError("coap_url is required")
        return value

    @field_validator("topic_prefix")
    @classmethod
    def _strip_prefix(cls, value: str) -> str:
        return value.rstrip("/")

    @model_validator(mode="after")
    def _check_ping_window(self) -> ObserverSettings:
        if self.ping_interval <= self.ping_timeout:
            raise ValueError("ping_interval must be more than ping_timeout")
        return self


class MqttSettings(BaseModel):
    """Broker connection parameters."""

    model_config = ConfigDict(extra="ignore")

    host: str = Field(default="localhost")
    port: int = Field(default=1883, gt=0, lt=65536)
    client_id: str = Field(default="tradfri-observer")
    keepalive: int = Field(default=60, ge=0)


class LoggingSettings(BaseModel):
    """Log level and rotating file destination."""

    model_config = ConfigDict(extra="ignore")

    level: str = Field(default="INFO")
    file: Path | None = Field(default=None)
    max_mb: int = Field(default=10, ge=1)
    backup_count: int = Field(default=3, ge=0)

    @field_validator("file", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path | None:
        if value in (None, ""):
            return None
        return Path(value)


class ConfigSnapshot(BaseModel):
    """Validated view over the merged configuration sources."""

    model_config = ConfigDict(extra="ignore")

    observer: ObserverSettings
    mqtt: MqttSettings = Field(default_factory=MqttSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_observer_settings(raw: ObserverSettings | dict[str, Any]) -> ObserverSettings:
    """Validate a mapping into ``ObserverSettings``, raising ``ConfigError``."""
    if isinstance(raw, ObserverSettings):
        return raw
    try:
        return ObserverSettings.model_validate(dict(raw))
    except ValidationError as exc:
        raise ConfigError(f"Invalid observer settings: {exc}") from exc


class ConfigService:
    """
    Runtime facade for loading and validating configuration.
    """

    def __init__(
        self,
        *,
        config_dir: str | Path | None = None,
        settings: Dynaconf | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> None:
        self._config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        if settings is None:
            settings_files = [self._config_dir / name for name in CONFIG_FILENAMES]
            existing_files = [str(path) for path in settings_files if path.exists()]
            if not existing_files:
                raise ConfigError(
                    f"No configuration files found in {self._config_dir}. "
                    "Expected at least config.yaml."
                )
            settings = Dynaconf(
                envvar_prefix="TRADFRI_OBSERVER",
                settings_files=existing_files,
                load_dotenv=True,
                environments=False,
            )
        self._settings = settings
        self._overrides: dict[str, Any] = dict(overrides or {})
        self._snapshot = self._build_snapshot()

    @property
    def snapshot(self) -> ConfigSnapshot:
        """Latest validated configuration snapshot."""
        return self._snapshot

    def refresh(self) -> ConfigSnapshot:
        """Reload configuration files and rebuild the snapshot."""
        self._settings.reload()
        self._snapshot = self._build_snapshot()
        return self._snapshot

    def apply_changes(self, changes: dict[str, Any]) -> ConfigSnapshot:
        """
        Merge the provided changes into the current configuration snapshot.

        Changes are kept in memory only and survive ``refresh``.
        """
        self._overrides = _deep_merge(self._overrides, changes)
        self._snapshot = self._build_snapshot()
        return self._snapshot

    def _build_snapshot(self) -> ConfigSnapshot:
        loaded = {str(key).lower(): value for key, value in self._settings.as_dict().items()}
        raw = _deep_merge(loaded, self._overrides)
        data = {
            "observer": _section(raw, "observer"),
            "mqtt": _section(raw, "mqtt"),
            "logging": _section(raw, "logging"),
        }
        try:
            return ConfigSnapshot.model_validate(data)
        except ValidationError as exc:
            raise ConfigError("Configuration validation failed") from exc


__all__ = [
    "ConfigError",
    "ConfigService",
    "ConfigSnapshot",
    "LoggingSettings",
    "MqttSettings",
    "ObserverSettings",
    "load_observer_settings",
]
