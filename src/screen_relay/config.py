"""
Screen Relay Configuration
==========================

This module handles configuration loading for the relay and its runtimes.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    SCREEN_RELAY_HOST          -> server.host
    SCREEN_RELAY_PORT          -> server.port
    SCREEN_RELAY_SEND_TIMEOUT  -> server.send_timeout_seconds
    SCREEN_RELAY_URL           -> producer.relay_url, consumer.relay_url
    SCREEN_RELAY_FRAME_RATE    -> producer.frame_rate
    SCREEN_RELAY_MAX_WIDTH     -> producer.max_width
    SCREEN_RELAY_JPEG_QUALITY  -> producer.jpeg_quality
    SCREEN_RELAY_LOCAL_IP      -> share.local_ip
    SCREEN_RELAY_SHARE_PORT    -> share.port
    SCREEN_RELAY_LOG_LEVEL     -> logging.level
    PORT                       -> server.port

Example:
    from screen_relay.config import settings

    print(settings.server.port)
    print(settings.producer.frame_rate)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class AppConfig(BaseModel):
    """Service identification."""

    name: str = Field(default="screen-relay", description="Service name")
    version: str = Field(default="0.1.0", description="Service version")


class ServerConfig(BaseModel):
    """Relay server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=3001, ge=1, le=65535, description="Bind port")
    send_timeout_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Per-consumer send timeout; exceeding it drops the consumer",
    )


class ProducerConfig(BaseModel):
    """Producer runtime configuration."""

    relay_url: str = Field(
        default="ws://localhost:3001",
        description="WebSocket URL of the relay server",
    )
    frame_rate: int = Field(
        default=25,
        ge=1,
        le=120,
        description="Target captures per second",
    )
    max_width: int = Field(
        default=640,
        ge=16,
        description="Frames wider than this are downscaled",
    )
    jpeg_quality: int = Field(
        default=60,
        ge=1,
        le=100,
        description="JPEG quality factor",
    )
    monitor: int = Field(
        default=1,
        ge=0,
        description="mss monitor index (0 = all monitors)",
    )


class ConsumerConfig(BaseModel):
    """Consumer runtime configuration."""

    relay_url: str = Field(
        default="ws://localhost:3001",
        description="WebSocket URL of the relay server",
    )
    max_message_bytes: int = Field(
        default=16 * 1024 * 1024,
        ge=1024,
        description="Largest inbound frame message accepted",
    )


class ShareConfig(BaseModel):
    """Shareable viewer URL configuration."""

    scheme: str = Field(default="http", description="URL scheme")
    port: int = Field(default=5173, ge=1, le=65535, description="Viewer page port")
    local_ip: Optional[str] = Field(
        default=None,
        description="Private address override for the share URL host",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for the screen relay.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    app: AppConfig = Field(default_factory=AppConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    producer: ProducerConfig = Field(default_factory=ProducerConfig)
    consumer: ConsumerConfig = Field(default_factory=ConsumerConfig)
    share: ShareConfig = Field(default_factory=ShareConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.debug("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Server settings (PORT wins for container platforms)
    if env_host := os.environ.get("SCREEN_RELAY_HOST"):
        config_data.setdefault("server", {})["host"] = env_host
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("SCREEN_RELAY_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    if env_timeout := os.environ.get("SCREEN_RELAY_SEND_TIMEOUT"):
        config_data.setdefault("server", {})["send_timeout_seconds"] = float(env_timeout)

    # Runtime settings
    if env_url := os.environ.get("SCREEN_RELAY_URL"):
        config_data.setdefault("producer", {})["relay_url"] = env_url
        config_data.setdefault("consumer", {})["relay_url"] = env_url
    if env_rate := os.environ.get("SCREEN_RELAY_FRAME_RATE"):
        config_data.setdefault("producer", {})["frame_rate"] = int(env_rate)
    if env_width := os.environ.get("SCREEN_RELAY_MAX_WIDTH"):
        config_data.setdefault("producer", {})["max_width"] = int(env_width)
    if env_quality := os.environ.get("SCREEN_RELAY_JPEG_QUALITY"):
        config_data.setdefault("producer", {})["jpeg_quality"] = int(env_quality)

    # Share URL settings
    if env_ip := os.environ.get("SCREEN_RELAY_LOCAL_IP"):
        config_data.setdefault("share", {})["local_ip"] = env_ip
    if env_share_port := os.environ.get("SCREEN_RELAY_SHARE_PORT"):
        config_data.setdefault("share", {})["port"] = int(env_share_port)

    # Logging settings
    if env_log := os.environ.get("SCREEN_RELAY_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
