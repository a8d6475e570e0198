"""File relay configuration.

Settings come from a single YAML file:
  * relay.settings.yaml: non-secret configuration (the relay has no secrets)

The path can be overridden with the ``RELAY_SETTINGS_FILE`` environment
variable. A missing file means "all defaults".
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("relay.settings.yaml")
SETTINGS_ENV_VAR = "RELAY_SETTINGS_FILE"

GIB = 1024 * 1024 * 1024


def _settings_path() -> Path:
    override = os.environ.get(SETTINGS_ENV_VAR)
    return Path(override) if override else SETTINGS_FILE


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s (using defaults)", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 3000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class StorageSettings(BaseModel):
    """Where uploaded bytes live and how long they are kept."""
    upload_dir:           str = "./uploads"
    max_upload_bytes:     int = GIB
    file_ttl_seconds:     int = 4 * 60 * 60
    download_chunk_bytes: int = 64 * 1024

    @field_validator("max_upload_bytes", "file_ttl_seconds", "download_chunk_bytes")
    @classmethod
    def check_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value


class SessionSettings(BaseModel):
    cookie_name:            str = "sessionId"
    cookie_max_age_seconds: int = 7 * 24 * 60 * 60
    stale_after_seconds:    int = 24 * 60 * 60

    @field_validator("stale_after_seconds")
    @classmethod
    def check_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value


class SweeperSettings(BaseModel):
    enabled:          bool  = True
    interval_seconds: float = 60.0

    @field_validator("interval_seconds")
    @classmethod
    def check_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value


class LoggingSettings(BaseModel):
    level: str = "info"


class RelayConfig(BaseModel):
    server:     ServerSettings  = Field(default_factory=ServerSettings)
    storage:    StorageSettings = Field(default_factory=StorageSettings)
    sessions:   SessionSettings = Field(default_factory=SessionSettings)
    sweeper:    SweeperSettings = Field(default_factory=SweeperSettings)
    logging:    LoggingSettings = Field(default_factory=LoggingSettings)
    static_dir: Optional[str]   = None


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(path: Optional[Path] = None) -> RelayConfig:
    """Load settings from YAML into a :class:`RelayConfig`."""
    path = path or _settings_path()
    config = RelayConfig(**_load_yaml(path))
    logger.info(
        "Settings loaded (server=%s:%s, upload_dir=%s, ttl=%ss, sweep=%ss)",
        config.server.host,
        config.server.port,
        config.storage.upload_dir,
        config.storage.file_ttl_seconds,
        config.sweeper.interval_seconds,
    )
    return config


@lru_cache
def get_config() -> RelayConfig:
    return load_config()


def reset_config() -> None:
    """Drop the cached config (for testing)."""
    get_config.cache_clear()
