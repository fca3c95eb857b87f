from __future__ import annotations

import os
from pathlib import Path

import allure
import pytest

from gock3_bridge.config import (
    ProvisioningSettings,
    SessionSettings,
    Settings,
    default_storage_dir,
)
from gock3_bridge.provisioning.platforms import DEFAULT_DOWNLOAD_BASE_URL

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Environment Settings"),
]

_ENV_NAMES = (
    "GOCK3_BRIDGE_STORAGE_DIR",
    "GOCK3_BRIDGE_LSP_EXECUTABLE_PATH",
    "GOCK3_BRIDGE_DOWNLOAD_BASE_URL",
    "GOCK3_BRIDGE_DOWNLOAD_TIMEOUT_SECONDS",
    "GOCK3_BRIDGE_DEBUG",
    "GOCK3_BRIDGE_DOCUMENT_SCHEME",
    "GOCK3_BRIDGE_DOCUMENT_LANGUAGE",
    "GOCK3_BRIDGE_FILE_WATCH_GLOB",
    "GOCK3_BRIDGE_WATCH_INTERVAL_SECONDS",
    "GOCK3_BRIDGE_HANDSHAKE_TIMEOUT_SECONDS",
    "GOCK3_BRIDGE_SHUTDOWN_TIMEOUT_SECONDS",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def test_from_env_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))

    settings = Settings.from_env()

    assert settings.provisioning.download_base_url == DEFAULT_DOWNLOAD_BASE_URL
    assert settings.provisioning.executable_path is None
    assert settings.provisioning.download_timeout_seconds is None
    assert settings.session.debug is False
    assert settings.session.document_scheme == "file"
    assert settings.session.document_language == "plaintext"
    assert settings.session.file_watch_glob == "**/*.txt"
    assert settings.session.handshake_timeout_seconds == 30.0
    assert settings.session.shutdown_timeout_seconds == 5.0
    settings.validate()


@pytest.mark.skipif(os.name == "nt", reason="POSIX data directory")
def test_default_storage_dir_follows_xdg_data_home(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))

    assert default_storage_dir() == tmp_path / "gock3-bridge"


def test_from_env_reads_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("GOCK3_BRIDGE_STORAGE_DIR", str(tmp_path / "store"))
    monkeypatch.setenv("GOCK3_BRIDGE_LSP_EXECUTABLE_PATH", str(tmp_path / "lsp"))
    monkeypatch.setenv("GOCK3_BRIDGE_DOWNLOAD_BASE_URL", "https://mirror.example.com/lsp")
    monkeypatch.setenv("GOCK3_BRIDGE_DOWNLOAD_TIMEOUT_SECONDS", "120")
    monkeypatch.setenv("GOCK3_BRIDGE_DEBUG", "yes")
    monkeypatch.setenv("GOCK3_BRIDGE_FILE_WATCH_GLOB", "**/*.gui")
    monkeypatch.setenv("GOCK3_BRIDGE_WATCH_INTERVAL_SECONDS", "0")

    settings = Settings.from_env()

    assert settings.provisioning.storage_dir == tmp_path / "store"
    assert settings.provisioning.executable_path == tmp_path / "lsp"
    assert settings.provisioning.download_base_url == "https://mirror.example.com/lsp"
    assert settings.provisioning.download_timeout_seconds == 120.0
    assert settings.session.debug is True
    assert settings.session.file_watch_glob == "**/*.gui"
    assert settings.session.watch_interval_seconds == 0.0
    settings.validate()


def test_explicit_storage_dir_wins_over_env(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    monkeypatch.setenv("GOCK3_BRIDGE_STORAGE_DIR", str(tmp_path / "env"))

    settings = Settings.from_env(storage_dir=tmp_path / "cli")

    assert settings.provisioning.storage_dir == tmp_path / "cli"


def test_from_env_rejects_invalid_boolean(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GOCK3_BRIDGE_DEBUG", "maybe")

    with pytest.raises(ValueError, match="Invalid boolean value for GOCK3_BRIDGE_DEBUG"):
        Settings.from_env()


def test_from_env_rejects_invalid_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GOCK3_BRIDGE_DOWNLOAD_TIMEOUT_SECONDS", "soon")

    with pytest.raises(ValueError, match="Invalid number for GOCK3_BRIDGE_DOWNLOAD_TIMEOUT"):
        Settings.from_env()


@pytest.mark.parametrize(
    "base_url",
    ["ftp://example.com/lsp", "example.com/lsp", ""],
)
def test_validate_rejects_non_http_base_url(base_url: str) -> None:
    settings = Settings(provisioning=ProvisioningSettings(download_base_url=base_url))

    with pytest.raises(ValueError, match="Invalid download base URL"):
        settings.validate()


def test_validate_rejects_non_positive_download_timeout() -> None:
    settings = Settings(provisioning=ProvisioningSettings(download_timeout_seconds=0))

    with pytest.raises(ValueError, match="DOWNLOAD_TIMEOUT_SECONDS"):
        settings.validate()


@pytest.mark.parametrize(
    ("session", "match"),
    [
        (SessionSettings(document_scheme=""), "DOCUMENT_SCHEME"),
        (SessionSettings(document_language=""), "DOCUMENT_LANGUAGE"),
        (SessionSettings(file_watch_glob=""), "FILE_WATCH_GLOB"),
        (SessionSettings(watch_interval_seconds=-1), "WATCH_INTERVAL_SECONDS"),
        (SessionSettings(handshake_timeout_seconds=0), "HANDSHAKE_TIMEOUT_SECONDS"),
        (SessionSettings(shutdown_timeout_seconds=0), "SHUTDOWN_TIMEOUT_SECONDS"),
    ],
)
def test_validate_rejects_unusable_session_settings(session: SessionSettings, match: str) -> None:
    with pytest.raises(ValueError, match=match):
        Settings(session=session).validate()


@pytest.mark.parametrize(
    "name",
    [
        "GOCK3_BRIDGE_WATCH_INTERVAL_SECONDS",
        "GOCK3_BRIDGE_HANDSHAKE_TIMEOUT_SECONDS",
        "GOCK3_BRIDGE_SHUTDOWN_TIMEOUT_SECONDS",
    ],
)
def test_from_env_names_variable_with_invalid_number(
    monkeypatch: pytest.MonkeyPatch,
    name: str,
) -> None:
    monkeypatch.setenv(name, "fast")

    with pytest.raises(ValueError, match=f"Invalid number for {name}"):
        Settings.from_env()
