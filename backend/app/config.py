"""Chat service configuration.

Loads settings from two YAML files:
  * chat.settings.yaml: non-secret configuration
  * chat.secrets.yaml: secrets (never committed)

Both files are optional. Missing files log a warning and the defaults below
apply.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("chat.settings.yaml")
SECRETS_FILE  = Path("chat.secrets.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class JWTSecrets(BaseModel):
    secret_key: str = "change-me-in-production"
    algorithm:  str = "HS256"


class Secrets(BaseModel):
    jwt: JWTSecrets = Field(default_factory=JWTSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 8000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    level: str = "info"


class AuthSettings(BaseModel):
    """Where the session token is looked up on requests and handshakes."""
    cookie_names: List[str] = Field(default_factory=lambda: ["jwt", "token"])


class RealtimeSettings(BaseModel):
    """Limits for the WebSocket layer.

    Attributes:
        max_sessions_per_user: Concurrent sessions one user may hold. The
            next connection attempt is rejected, existing ones are kept.
        typing_timeout_seconds: Inactivity window after which a typing
            indicator is stopped automatically.
        typing_rate_limit: Typing relays allowed per sender→receiver
            direction inside one rolling window.
        typing_rate_window_seconds: Length of that rolling window.
    """
    max_sessions_per_user:      int   = 5
    typing_timeout_seconds:     float = 5.0
    typing_rate_limit:          int   = 2
    typing_rate_window_seconds: float = 1.0

    @field_validator("max_sessions_per_user", "typing_rate_limit")
    @classmethod
    def _positive_int(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @field_validator("typing_timeout_seconds", "typing_rate_window_seconds")
    @classmethod
    def _positive_float(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than 0")
        return value


class MessageSettings(BaseModel):
    max_text_length: int = 5000
    contacts_limit:  int = 500
    chats_limit:     int = 100


class StorageSettings(BaseModel):
    messages_db:     str = "chat.duckdb"
    users_db:        str = "users.duckdb"
    images_db:       str = "images.duckdb"
    upload_dir:      str = "uploads"
    max_image_bytes: int = 5 * 1024 * 1024


class AppSettings(BaseModel):
    server:   ServerSettings   = Field(default_factory=ServerSettings)
    logging:  LoggingSettings  = Field(default_factory=LoggingSettings)
    auth:     AuthSettings     = Field(default_factory=AuthSettings)
    realtime: RealtimeSettings = Field(default_factory=RealtimeSettings)
    messages: MessageSettings  = Field(default_factory=MessageSettings)
    storage:  StorageSettings  = Field(default_factory=StorageSettings)
    secrets:  Secrets          = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(
    settings_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
) -> AppSettings:
    """Load and merge settings + secrets into a single *AppSettings* object."""
    settings_data = _load_yaml(Path(settings_path) if settings_path else SETTINGS_FILE)
    secrets_data  = _load_yaml(Path(secrets_path) if secrets_path else SECRETS_FILE)

    # Merge: secrets live under the "secrets" key in AppSettings
    settings_data["secrets"] = secrets_data

    app_settings = AppSettings(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, max_sessions_per_user=%s, typing_timeout=%ss)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.realtime.max_sessions_per_user,
        app_settings.realtime.typing_timeout_seconds,
    )
    return app_settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: Optional[AppSettings]) -> None:
    """Replace (or with ``None``, forget) the cached settings."""
    global _config
    _config = config
