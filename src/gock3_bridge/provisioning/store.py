"""On-disk home of the provisioned worker executable."""

from __future__ import annotations

import logging
import os
import stat
import tempfile
from pathlib import Path

from gock3_bridge.errors import StorageError, WriteError
from gock3_bridge.provisioning.platforms import PlatformVariant, current_os_id, is_windows

logger = logging.getLogger(__name__)

EXECUTABLE_MODE = (
    stat.S_IRWXU | stat.S_IRGRP | stat.S_IXGRP | stat.S_IROTH | stat.S_IXOTH
)  # 0o755
_EXECUTE_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


class ExecutableStore:
    """Owns ``<storage_dir>/<executable_file_name>`` and its permissions.

    The storage directory belongs to the host: it is created on demand and never
    removed. Only the provisioner mutates files inside it.
    """

    def __init__(self, storage_dir: Path, *, os_id: str | None = None) -> None:
        self.storage_dir = storage_dir
        self._windows = is_windows(os_id or current_os_id())

    def path_for(self, variant: PlatformVariant) -> Path:
        return self.storage_dir / variant.executable_file_name

    def ensure_storage_directory(self) -> None:
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise StorageError(
                f"Cannot create storage directory {self.storage_dir}: {error}",
                path=str(self.storage_dir),
            ) from error

    def exists(self, path: Path) -> bool:
        try:
            return path.is_file()
        except OSError as error:
            raise StorageError(f"Cannot access {path}: {error}", path=str(path)) from error

    def is_executable(self, path: Path) -> bool:
        if self._windows:
            return path.is_file()
        try:
            mode = path.stat().st_mode
        except OSError:
            return False
        return mode & _EXECUTE_BITS == _EXECUTE_BITS

    def set_executable(self, path: Path) -> None:
        """Grant owner, group and others execute permission (rwxr-xr-x)."""

        if self._windows:
            return
        try:
            os.chmod(path, EXECUTABLE_MODE)
        except OSError as error:
            raise StorageError(
                f"Cannot set executable permission on {path}: {error}",
                path=str(path),
            ) from error

    def write_atomically(self, path: Path, data: bytes) -> None:
        """Write ``data`` to a sibling temp file, then rename it onto ``path``.

        Readers either see no file or the complete file, never a truncated one.
        """

        temp_name: str | None = None
        try:
            fd, temp_name = tempfile.mkstemp(
                prefix=f".{path.name}.",
                suffix=".part",
                dir=path.parent,
            )
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_name, path)
            temp_name = None
        except OSError as error:
            raise WriteError(f"Cannot write {path}: {error}", path=str(path)) from error
        finally:
            if temp_name is not None:
                _discard(Path(temp_name))
        logger.debug("Wrote %d bytes to %s", len(data), path)


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as error:
        logger.warning("Cannot remove partial download %s: %s", path, error)
