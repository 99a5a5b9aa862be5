"""Tests for TrackingConfig."""

import pytest

from livetrack_sync.config import DEFAULT_BROKER_URL, TrackingConfig
from livetrack_sync.exceptions import ConfigurationError

ENV_VARS = [
    "LIVETRACK_BROKER_URL",
    "LIVETRACK_INITIAL_BACKOFF",
    "LIVETRACK_MAX_BACKOFF",
    "LIVETRACK_BACKOFF_MULTIPLIER",
    "LIVETRACK_SAMPLE_INTERVAL",
    "LIVETRACK_SENSOR_TIMEOUT",
    "LIVETRACK_HEARTBEAT",
    "LIVETRACK_LOG_LEVEL",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestDefaults:
    def test_defaults(self):
        config = TrackingConfig()

        assert config.broker_url == DEFAULT_BROKER_URL
        assert config.initial_backoff == 1.0
        assert config.max_backoff == 30.0
        assert config.sample_interval == 10.0
        assert config.heartbeat is None

    def test_defaults_are_valid(self):
        TrackingConfig().validate()


class TestFromEnvironment:
    """Tests for loading from environment variables."""

    def test_empty_environment_uses_defaults(self, clean_env):
        assert TrackingConfig.from_environment() == TrackingConfig()

    def test_reads_variables(self, clean_env):
        clean_env.setenv("LIVETRACK_BROKER_URL", "wss://broker.example.com/ws")
        clean_env.setenv("LIVETRACK_MAX_BACKOFF", "60")
        clean_env.setenv("LIVETRACK_SAMPLE_INTERVAL", "2.5")
        clean_env.setenv("LIVETRACK_HEARTBEAT", "15")
        clean_env.setenv("LIVETRACK_LOG_LEVEL", "DEBUG")

        config = TrackingConfig.from_environment()

        assert config.broker_url == "wss://broker.example.com/ws"
        assert config.max_backoff == 60.0
        assert config.sample_interval == 2.5
        assert config.heartbeat == 15.0
        assert config.log_level == "DEBUG"

    def test_non_numeric_value(self, clean_env):
        clean_env.setenv("LIVETRACK_SAMPLE_INTERVAL", "often")

        with pytest.raises(ConfigurationError) as exc_info:
            TrackingConfig.from_environment()

        assert exc_info.value.field == "LIVETRACK_SAMPLE_INTERVAL"

    def test_invalid_scheme(self, clean_env):
        clean_env.setenv("LIVETRACK_BROKER_URL", "http://broker.example.com")

        with pytest.raises(ConfigurationError, match="ws://"):
            TrackingConfig.from_environment()


class TestFromYaml:
    """Tests for loading from a YAML settings file."""

    def test_loads_section(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(
            "livetrack:\n"
            "  broker_url: wss://relay.example.org/ws\n"
            "  initial_backoff: 0.5\n"
            "  sample_interval: 5\n"
        )

        config = TrackingConfig.from_yaml(path)

        assert config.broker_url == "wss://relay.example.org/ws"
        assert config.initial_backoff == 0.5
        assert config.sample_interval == 5
        assert config.max_backoff == 30.0

    def test_missing_section_uses_defaults(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("other:\n  key: value\n")

        assert TrackingConfig.from_yaml(path) == TrackingConfig()

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("")

        assert TrackingConfig.from_yaml(path) == TrackingConfig()

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("livetrack:\n  broker: ws://x\n")

        with pytest.raises(ConfigurationError, match="Unknown configuration keys: broker"):
            TrackingConfig.from_yaml(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("livetrack: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            TrackingConfig.from_yaml(path)

    def test_quoted_number_rejected(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text('livetrack:\n  sample_interval: "ten"\n')

        with pytest.raises(ConfigurationError) as exc_info:
            TrackingConfig.from_yaml(path)

        assert exc_info.value.field == "sample_interval"

    def test_section_must_be_mapping(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("livetrack: 5\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            TrackingConfig.from_yaml(path)


class TestValidate:
    @pytest.mark.parametrize(
        "kwargs,field",
        [
            ({"initial_backoff": 0}, "initial_backoff"),
            ({"sample_interval": -1}, "sample_interval"),
            ({"sensor_timeout": 0}, "sensor_timeout"),
            ({"initial_backoff": 10, "max_backoff": 5}, "max_backoff"),
            ({"backoff_multiplier": 0.5}, "backoff_multiplier"),
            ({"heartbeat": 0}, "heartbeat"),
            ({"broker_url": "localhost:8765"}, "broker_url"),
            ({"sample_interval": "ten"}, "sample_interval"),
            ({"heartbeat": "often"}, "heartbeat"),
            ({"initial_backoff": True}, "initial_backoff"),
            ({"broker_url": 8765}, "broker_url"),
        ],
    )
    def test_rejects_invalid_values(self, kwargs, field):
        with pytest.raises(ConfigurationError) as exc_info:
            TrackingConfig(**kwargs).validate()

        assert exc_info.value.field == field
