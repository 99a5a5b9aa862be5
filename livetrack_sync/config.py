"""
Configuration for live tracking clients.

Values can be given directly, read from environment variables or loaded
from the ``livetrack`` section of a YAML settings file:

```yaml
livetrack:
  broker_url: "wss://broker.example.com/ws"
  initial_backoff: 1
  max_backoff: 30
  sample_interval: 10
```
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml

from .exceptions import ConfigurationError

DEFAULT_BROKER_URL = "ws://localhost:8765/ws"

_NUMERIC_FIELDS = (
    "initial_backoff",
    "max_backoff",
    "backoff_multiplier",
    "sample_interval",
    "sensor_timeout",
    "heartbeat",
)


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}", field=name) from None


@dataclass
class TrackingConfig:
    """Configuration for the transport client and location sampler.

    Environment Variables:
        LIVETRACK_BROKER_URL: WebSocket URL of the broker
        LIVETRACK_INITIAL_BACKOFF: First reconnect delay in seconds (default: 1)
        LIVETRACK_MAX_BACKOFF: Reconnect delay cap in seconds (default: 30)
        LIVETRACK_BACKOFF_MULTIPLIER: Growth factor per failed attempt (default: 2)
        LIVETRACK_SAMPLE_INTERVAL: Seconds between location samples (default: 10)
        LIVETRACK_SENSOR_TIMEOUT: Seconds to wait for one sensor read (default: 10)
        LIVETRACK_HEARTBEAT: WebSocket ping interval in seconds (default: off)
        LIVETRACK_LOG_LEVEL: Logging level name (default: INFO)

    Attributes:
        broker_url: WebSocket URL (ws:// or wss://) of the broker
        initial_backoff: Delay before the first reconnect attempt
        max_backoff: Upper bound for reconnect delays
        backoff_multiplier: Factor applied to the delay after each failure
        sample_interval: Period of the location sampler
        sensor_timeout: Timeout for a single location read
        heartbeat: aiohttp WebSocket heartbeat, None to disable
        log_level: Logging level name
    """

    broker_url: str = DEFAULT_BROKER_URL
    initial_backoff: float = 1.0
    max_backoff: float = 30.0
    backoff_multiplier: float = 2.0
    sample_interval: float = 10.0
    sensor_timeout: float = 10.0
    heartbeat: float | None = None
    log_level: str = "INFO"

    @classmethod
    def from_environment(cls) -> TrackingConfig:
        """Create configuration from environment variables."""
        config = cls(
            broker_url=os.environ.get("LIVETRACK_BROKER_URL", DEFAULT_BROKER_URL),
            initial_backoff=_env_float("LIVETRACK_INITIAL_BACKOFF", 1.0),
            max_backoff=_env_float("LIVETRACK_MAX_BACKOFF", 30.0),
            backoff_multiplier=_env_float("LIVETRACK_BACKOFF_MULTIPLIER", 2.0),
            sample_interval=_env_float("LIVETRACK_SAMPLE_INTERVAL", 10.0),
            sensor_timeout=_env_float("LIVETRACK_SENSOR_TIMEOUT", 10.0),
            heartbeat=_env_float("LIVETRACK_HEARTBEAT", None),
            log_level=os.environ.get("LIVETRACK_LOG_LEVEL", "INFO"),
        )
        config.validate()
        return config

    @classmethod
    def from_yaml(cls, path: Path | str) -> TrackingConfig:
        """Load configuration from the ``livetrack`` section of a YAML file.

        Missing keys keep their defaults; unknown keys are rejected.
        """
        path = Path(path)
        try:
            content = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

        section: Any = content.get("livetrack", {}) if isinstance(content, dict) else None
        if not isinstance(section, dict):
            raise ConfigurationError(f"'livetrack' section in {path} must be a mapping")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(section) - known)
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration keys: {', '.join(unknown)}", field=unknown[0]
            )

        config = cls(**section)
        config.validate()
        return config

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ConfigurationError: If any value is out of range
        """
        if not isinstance(self.broker_url, str):
            raise ConfigurationError("broker_url must be a string", field="broker_url")
        for name in _NUMERIC_FIELDS:
            value = getattr(self, name)
            if value is None and name == "heartbeat":
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationError(f"{name} must be a number, got {value!r}", field=name)

        scheme = urlparse(self.broker_url).scheme
        if scheme not in ("ws", "wss"):
            raise ConfigurationError(
                f"broker_url must use ws:// or wss://, got {self.broker_url!r}",
                field="broker_url",
            )
        for name in ("initial_backoff", "sample_interval", "sensor_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive", field=name)
        if self.max_backoff < self.initial_backoff:
            raise ConfigurationError(
                "max_backoff must be greater than or equal to initial_backoff",
                field="max_backoff",
            )
        if self.backoff_multiplier < 1:
            raise ConfigurationError(
                "backoff_multiplier must be at least 1", field="backoff_multiplier"
            )
        if self.heartbeat is not None and self.heartbeat <= 0:
            raise ConfigurationError("heartbeat must be positive", field="heartbeat")
