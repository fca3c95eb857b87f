"""Error taxonomy shared by provisioning and the session bridge."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class BridgeError(Exception):
    """Base error for activation failures."""

    message: str
    code: str = "bridge_error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class UnsupportedPlatformError(BridgeError):
    """No worker variant is published for the running operating system."""

    os_id: str = ""
    code: str = "unsupported_platform"


@dataclass(slots=True)
class StorageError(BridgeError):
    """Storage directory or permission change failed."""

    path: str | None = None
    code: str = "storage_error"


@dataclass(slots=True)
class TransportError(BridgeError):
    """Download failed on status code or connection level."""

    url: str = ""
    status_code: int | None = None
    cause: str | None = None
    code: str = "transport_error"


@dataclass(slots=True)
class WriteError(BridgeError):
    """Downloaded bytes could not be persisted."""

    path: str | None = None
    code: str = "write_error"


@dataclass(slots=True)
class SessionStartError(BridgeError):
    """Worker process failed to spawn or rejected the handshake."""

    code: str = "session_start_error"
