"""Runtime configuration for provisioning and the worker session."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from gock3_bridge.provisioning.platforms import DEFAULT_DOWNLOAD_BASE_URL
from gock3_bridge.session.options import (
    DEFAULT_DOCUMENT_LANGUAGE,
    DEFAULT_DOCUMENT_SCHEME,
    DEFAULT_FILE_WATCH_GLOB,
)

APP_DIR_NAME = "gock3-bridge"


def default_storage_dir() -> Path:
    """Per-user persistent directory for the downloaded executable."""

    if os.name == "nt":
        base = os.getenv("APPDATA") or str(Path.home() / "AppData" / "Roaming")
        return Path(base) / APP_DIR_NAME
    base = os.getenv("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(base) / APP_DIR_NAME


@dataclass(slots=True)
class ProvisioningSettings:
    """Where the executable lives and where it is downloaded from."""

    storage_dir: Path = field(default_factory=default_storage_dir)
    executable_path: Path | None = None
    download_base_url: str = DEFAULT_DOWNLOAD_BASE_URL
    download_timeout_seconds: float | None = None


@dataclass(slots=True)
class SessionSettings:
    """How the worker is launched and which documents it receives."""

    debug: bool = False
    document_scheme: str = DEFAULT_DOCUMENT_SCHEME
    document_language: str = DEFAULT_DOCUMENT_LANGUAGE
    file_watch_glob: str = DEFAULT_FILE_WATCH_GLOB
    watch_interval_seconds: float = 1.0
    handshake_timeout_seconds: float = 30.0
    shutdown_timeout_seconds: float = 5.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    provisioning: ProvisioningSettings = field(default_factory=ProvisioningSettings)
    session: SessionSettings = field(default_factory=SessionSettings)

    @classmethod
    def from_env(cls, storage_dir: Path | None = None) -> Settings:
        """Load settings from ``GOCK3_BRIDGE_*`` environment variables."""

        env_storage_dir = os.getenv("GOCK3_BRIDGE_STORAGE_DIR", "").strip()
        env_executable = os.getenv("GOCK3_BRIDGE_LSP_EXECUTABLE_PATH", "").strip()
        return cls(
            provisioning=ProvisioningSettings(
                storage_dir=storage_dir
                or (Path(env_storage_dir) if env_storage_dir else default_storage_dir()),
                executable_path=Path(env_executable) if env_executable else None,
                download_base_url=os.getenv(
                    "GOCK3_BRIDGE_DOWNLOAD_BASE_URL",
                    DEFAULT_DOWNLOAD_BASE_URL,
                ).strip(),
                download_timeout_seconds=_env_optional_float(
                    "GOCK3_BRIDGE_DOWNLOAD_TIMEOUT_SECONDS",
                ),
            ),
            session=SessionSettings(
                debug=_env_bool("GOCK3_BRIDGE_DEBUG", default=False),
                document_scheme=os.getenv(
                    "GOCK3_BRIDGE_DOCUMENT_SCHEME",
                    DEFAULT_DOCUMENT_SCHEME,
                ).strip(),
                document_language=os.getenv(
                    "GOCK3_BRIDGE_DOCUMENT_LANGUAGE",
                    DEFAULT_DOCUMENT_LANGUAGE,
                ).strip(),
                file_watch_glob=os.getenv(
                    "GOCK3_BRIDGE_FILE_WATCH_GLOB",
                    DEFAULT_FILE_WATCH_GLOB,
                ).strip(),
                watch_interval_seconds=_env_float(
                    "GOCK3_BRIDGE_WATCH_INTERVAL_SECONDS",
                    default=1.0,
                ),
                handshake_timeout_seconds=_env_float(
                    "GOCK3_BRIDGE_HANDSHAKE_TIMEOUT_SECONDS",
                    default=30.0,
                ),
                shutdown_timeout_seconds=_env_float(
                    "GOCK3_BRIDGE_SHUTDOWN_TIMEOUT_SECONDS",
                    default=5.0,
                ),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values the bridge cannot work with."""

        _validate_base_url(self.provisioning.download_base_url)
        timeout = self.provisioning.download_timeout_seconds
        if timeout is not None and timeout <= 0:
            raise ValueError("GOCK3_BRIDGE_DOWNLOAD_TIMEOUT_SECONDS must be > 0.")
        if not self.session.document_scheme:
            raise ValueError("GOCK3_BRIDGE_DOCUMENT_SCHEME must not be empty.")
        if not self.session.document_language:
            raise ValueError("GOCK3_BRIDGE_DOCUMENT_LANGUAGE must not be empty.")
        if not self.session.file_watch_glob:
            raise ValueError("GOCK3_BRIDGE_FILE_WATCH_GLOB must not be empty.")
        if self.session.watch_interval_seconds < 0:
            raise ValueError("GOCK3_BRIDGE_WATCH_INTERVAL_SECONDS must be >= 0.")
        if self.session.handshake_timeout_seconds <= 0:
            raise ValueError("GOCK3_BRIDGE_HANDSHAKE_TIMEOUT_SECONDS must be > 0.")
        if self.session.shutdown_timeout_seconds <= 0:
            raise ValueError("GOCK3_BRIDGE_SHUTDOWN_TIMEOUT_SECONDS must be > 0.")


def _validate_base_url(value: str) -> None:
    try:
        parsed = urlparse(value)
        parsed.port  # noqa: B018
    except ValueError:
        parsed = None
    if parsed is None or parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            "Invalid download base URL: "
            f"{value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_optional_float(name: str) -> float | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError as error:
        raise ValueError(f"Invalid number for {name}: {raw!r}") from error


def _env_float(name: str, default: float) -> float:
    value = _env_optional_float(name)
    return default if value is None else value


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
