"""
Configuration Tests
===================
"""

import pytest

from screen_relay.config import load_config


ENV_VARS = [
    "PORT",
    "SCREEN_RELAY_HOST",
    "SCREEN_RELAY_PORT",
    "SCREEN_RELAY_SEND_TIMEOUT",
    "SCREEN_RELAY_URL",
    "SCREEN_RELAY_FRAME_RATE",
    "SCREEN_RELAY_MAX_WIDTH",
    "SCREEN_RELAY_JPEG_QUALITY",
    "SCREEN_RELAY_LOCAL_IP",
    "SCREEN_RELAY_SHARE_PORT",
    "SCREEN_RELAY_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "server:\n"
        "  port: 4000\n"
        "producer:\n"
        "  frame_rate: 10\n"
        "  jpeg_quality: 80\n"
        "logging:\n"
        "  format: text\n"
    )
    return str(path)


class TestDefaults:

    def test_defaults(self, tmp_path):
        settings = load_config(str(tmp_path / "missing.yaml"))
        assert settings.server.host == "0.0.0.0"
        assert settings.server.port == 3001
        assert settings.server.send_timeout_seconds == 2.0
        assert settings.producer.frame_rate == 25
        assert settings.producer.max_width == 640
        assert settings.producer.jpeg_quality == 60
        assert settings.consumer.relay_url == "ws://localhost:3001"
        assert settings.share.port == 5173
        assert settings.share.local_ip is None


class TestSources:

    def test_yaml_values(self, config_file):
        settings = load_config(config_file)
        assert settings.server.port == 4000
        assert settings.producer.frame_rate == 10
        assert settings.producer.jpeg_quality == 80
        assert settings.producer.max_width == 640
        assert settings.logging.format == "text"

    def test_env_overrides_yaml(self, config_file, monkeypatch):
        monkeypatch.setenv("SCREEN_RELAY_PORT", "5000")
        monkeypatch.setenv("SCREEN_RELAY_FRAME_RATE", "30")
        monkeypatch.setenv("SCREEN_RELAY_URL", "ws://10.0.0.2:5000")
        monkeypatch.setenv("SCREEN_RELAY_LOCAL_IP", "10.0.0.2")
        settings = load_config(config_file)
        assert settings.server.port == 5000
        assert settings.producer.frame_rate == 30
        assert settings.producer.relay_url == "ws://10.0.0.2:5000"
        assert settings.consumer.relay_url == "ws://10.0.0.2:5000"
        assert settings.share.local_ip == "10.0.0.2"

    def test_port_takes_precedence(self, config_file, monkeypatch):
        monkeypatch.setenv("SCREEN_RELAY_PORT", "5000")
        monkeypatch.setenv("PORT", "8080")
        assert load_config(config_file).server.port == 8080

    def test_invalid_value_rejected(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SCREEN_RELAY_JPEG_QUALITY", "0")
        with pytest.raises(ValueError):
            load_config(str(tmp_path / "missing.yaml"))
