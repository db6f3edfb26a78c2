"""MovieSquad realtime application configuration.

Loads settings from two YAML files:
  * moviesquad.settings.yaml: non-secret configuration
  * moviesquad.secrets.yaml: secrets (never committed)

The paths can be overridden with the ``MOVIESQUAD_SETTINGS`` and
``MOVIESQUAD_SECRETS`` environment variables.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("moviesquad.settings.yaml")
SECRETS_FILE  = Path("moviesquad.secrets.yaml")


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
    host:            str  = "0.0.0.0"
    port:            int  = 5000
    reload:          bool = False
    allowed_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])


class LoggingSettings(BaseModel):
    level: str = "info"

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        if getattr(logging, value.upper(), None) is None:
            raise ValueError(f"Unknown log level: {value}")
        return value.lower()


class ChatSettings(BaseModel):
    """Limits for the live chat layer."""
    history_limit:              int = Field(default=50, ge=1)
    max_content_length:         int = Field(default=500, ge=1)
    conversation_history_limit: int = Field(default=100, ge=1)


class NotificationSettings(BaseModel):
    max_message_length: int = Field(default=250, ge=1)


class StoreSettings(BaseModel):
    backend:     Literal["memory", "duckdb"] = "memory"
    duckdb_path: str                         = "moviesquad.duckdb"


class AppConfig(BaseModel):
    server:        ServerSettings       = Field(default_factory=ServerSettings)
    logging:       LoggingSettings      = Field(default_factory=LoggingSettings)
    chat:          ChatSettings         = Field(default_factory=ChatSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    store:         StoreSettings        = Field(default_factory=StoreSettings)
    secrets:       Secrets              = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def _resolve_store_path(config: AppConfig, settings_path: Path) -> None:
    """Resolve a relative DuckDB path against the settings file directory."""
    db_path = Path(config.store.duckdb_path)
    if db_path.is_absolute() or config.store.duckdb_path == ":memory:":
        return
    config.store.duckdb_path = str(settings_path.resolve().parent / db_path)


def load_config(
    settings_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
) -> AppConfig:
    """Load and merge settings + secrets into a single *AppConfig* object."""
    settings_path = Path(
        settings_path or os.environ.get("MOVIESQUAD_SETTINGS") or SETTINGS_FILE
    )
    secrets_path = Path(
        secrets_path or os.environ.get("MOVIESQUAD_SECRETS") or SECRETS_FILE
    )
    settings_data = _load_yaml(settings_path)
    secrets_data  = _load_yaml(secrets_path)

    # Merge: secrets live under the "secrets" key in AppConfig
    settings_data["secrets"] = secrets_data

    config = AppConfig(**settings_data)
    _resolve_store_path(config, settings_path)
    logger.info(
        "Settings loaded (server=%s:%s, store=%s, log_level=%s)",
        config.server.host,
        config.server.port,
        config.store.backend,
        config.logging.level,
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide config, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: Optional[AppConfig]) -> None:
    """Replace (or clear with ``None``) the process-wide config."""
    global _config
    _config = config
