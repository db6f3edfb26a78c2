"""Tests for settings/secrets loading and path resolution."""
from pathlib import Path

import pytest
from pydantic import ValidationError

from app.config import AppConfig, LoggingSettings, load_config


def test_defaults_when_files_missing(tmp_path):
    cfg = load_config(
        settings_path=tmp_path / "missing.settings.yaml",
        secrets_path=tmp_path / "missing.secrets.yaml",
    )
    assert cfg.server.port == 5000
    assert cfg.chat.history_limit == 50
    assert cfg.chat.max_content_length == 500
    assert cfg.chat.conversation_history_limit == 100
    assert cfg.notifications.max_message_length == 250
    assert cfg.store.backend == "memory"
    assert cfg.secrets.jwt.algorithm == "HS256"


def test_settings_and_secrets_are_merged(tmp_path):
    settings_file = tmp_path / "moviesquad.settings.yaml"
    settings_file.write_text(
        "server:\n"
        "  port: 8080\n"
        "logging:\n"
        "  level: DEBUG\n"
        "chat:\n"
        "  history_limit: 20\n",
        encoding="utf-8",
    )
    secrets_file = tmp_path / "moviesquad.secrets.yaml"
    secrets_file.write_text(
        "jwt:\n"
        "  secret_key: s3cret\n",
        encoding="utf-8",
    )

    cfg = load_config(settings_path=settings_file, secrets_path=secrets_file)

    assert cfg.server.port == 8080
    assert cfg.logging.level == "debug"
    assert cfg.chat.history_limit == 20
    assert cfg.secrets.jwt.secret_key == "s3cret"


def test_env_vars_override_paths(tmp_path, monkeypatch):
    settings_file = tmp_path / "custom.yaml"
    settings_file.write_text("notifications:\n  max_message_length: 100\n", encoding="utf-8")
    monkeypatch.setenv("MOVIESQUAD_SETTINGS", str(settings_file))
    monkeypatch.setenv("MOVIESQUAD_SECRETS", str(tmp_path / "none.yaml"))

    cfg = load_config()

    assert cfg.notifications.max_message_length == 100


def test_duckdb_path_relative_to_settings_dir(tmp_path):
    settings_file = tmp_path / "config" / "moviesquad.settings.yaml"
    settings_file.parent.mkdir()
    settings_file.write_text(
        "store:\n"
        "  backend: duckdb\n"
        "  duckdb_path: data/chat.duckdb\n",
        encoding="utf-8",
    )

    cfg = load_config(settings_path=settings_file, secrets_path=tmp_path / "none.yaml")

    assert Path(cfg.store.duckdb_path) == tmp_path / "config" / "data" / "chat.duckdb"


def test_duckdb_absolute_path_unchanged(tmp_path):
    absolute_path = tmp_path / "abs" / "chat.duckdb"
    settings_file = tmp_path / "moviesquad.settings.yaml"
    settings_file.write_text(
        "store:\n"
        f"  duckdb_path: {absolute_path}\n",
        encoding="utf-8",
    )

    cfg = load_config(settings_path=settings_file, secrets_path=tmp_path / "none.yaml")

    assert Path(cfg.store.duckdb_path) == absolute_path


def test_unknown_log_level_rejected():
    with pytest.raises(ValidationError):
        LoggingSettings(level="chatty")


def test_unknown_store_backend_rejected():
    with pytest.raises(ValidationError):
        AppConfig(store={"backend": "mongo"})
