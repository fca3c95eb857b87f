"""Map the running operating system to the published worker variant."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import Enum

from gock3_bridge.errors import UnsupportedPlatformError

DEFAULT_DOWNLOAD_BASE_URL = "https://github.com/unLomTrois/gock3-lsp/releases/latest/download"


class PlatformId(str, Enum):
    """Platforms with a published worker build."""

    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True, slots=True)
class PlatformVariant:
    """Platform-specific identity of the worker executable."""

    platform_id: PlatformId
    executable_file_name: str
    remote_artifact_url: str

    @property
    def is_windows(self) -> bool:
        return self.platform_id is PlatformId.WINDOWS


_EXECUTABLE_FILE_NAMES: dict[PlatformId, str] = {
    PlatformId.WINDOWS: "gock3-lsp-windows.exe",
    PlatformId.MACOS: "gock3-lsp-macos",
    PlatformId.LINUX: "gock3-lsp-linux",
}

_OS_ID_ALIASES: dict[str, PlatformId] = {
    "win32": PlatformId.WINDOWS,
    "windows": PlatformId.WINDOWS,
    "darwin": PlatformId.MACOS,
    "macos": PlatformId.MACOS,
    "linux": PlatformId.LINUX,
}


def current_os_id() -> str:
    return sys.platform


def platform_id_for(os_id: str) -> PlatformId:
    """Normalize an OS identifier such as ``sys.platform`` to a PlatformId."""

    normalized = os_id.strip().lower()
    if normalized.startswith("linux"):
        return PlatformId.LINUX
    return _OS_ID_ALIASES.get(normalized, PlatformId.UNSUPPORTED)


def is_windows(os_id: str) -> bool:
    return platform_id_for(os_id) is PlatformId.WINDOWS


def resolve(
    os_id: str,
    *,
    base_url: str = DEFAULT_DOWNLOAD_BASE_URL,
) -> PlatformVariant | None:
    """Return the worker variant for ``os_id`` or None when unsupported."""

    platform_id = platform_id_for(os_id)
    file_name = _EXECUTABLE_FILE_NAMES.get(platform_id)
    if file_name is None:
        return None
    return PlatformVariant(
        platform_id=platform_id,
        executable_file_name=file_name,
        remote_artifact_url=f"{base_url.rstrip('/')}/{file_name}",
    )


def require(os_id: str, *, base_url: str = DEFAULT_DOWNLOAD_BASE_URL) -> PlatformVariant:
    variant = resolve(os_id, base_url=base_url)
    if variant is None:
        raise UnsupportedPlatformError(f"Unsupported platform: {os_id}", os_id=os_id)
    return variant
