"""Guarantee a runnable worker executable exists in host storage."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from gock3_bridge.errors import StorageError, TransportError, WriteError
from gock3_bridge.host import HostSurface
from gock3_bridge.provisioning.platforms import PlatformVariant
from gock3_bridge.provisioning.store import ExecutableStore

logger = logging.getLogger(__name__)

DOWNLOAD_PROGRESS_TITLE = "GOCK3-LSP server not found. Downloading..."
DOWNLOAD_SUCCEEDED_MESSAGE = "GOCK3-LSP server downloaded successfully."


class ArtifactFetcher(Protocol):
    """Download contract used by the provisioner."""

    async def download(self, url: str) -> bytes:
        raise NotImplementedError


@dataclass(slots=True)
class ProvisionedExecutable:
    """Provisioning outcome for one activation."""

    path: Path
    exists: bool
    executable_bit_set: bool
    downloaded: bool = False


class Provisioner:
    """Resolve, download on cache miss, and permission the worker executable."""

    def __init__(
        self,
        host: HostSurface,
        fetcher: ArtifactFetcher,
        *,
        os_id: str | None = None,
    ) -> None:
        self._host = host
        self._fetcher = fetcher
        self._os_id = os_id

    async def ensure_executable(
        self,
        variant: PlatformVariant,
        storage_dir: Path,
    ) -> ProvisionedExecutable:
        store = ExecutableStore(storage_dir, os_id=self._os_id)
        await self._guarded(asyncio.to_thread(store.ensure_storage_directory))

        target = store.path_for(variant)
        downloaded = False
        if await self._guarded(asyncio.to_thread(store.exists, target)):
            logger.debug("Using cached worker executable %s", target)
        else:
            await self._download(variant, store, target)
            downloaded = True

        await self._guarded(asyncio.to_thread(store.set_executable, target))
        return ProvisionedExecutable(
            path=target,
            exists=True,
            executable_bit_set=await asyncio.to_thread(store.is_executable, target),
            downloaded=downloaded,
        )

    async def use_existing(self, path: Path) -> ProvisionedExecutable:
        """Accept a user-configured executable without any network access."""

        store = ExecutableStore(path.parent, os_id=self._os_id)
        if not await self._guarded(asyncio.to_thread(store.exists, path)):
            error = StorageError(
                f"Configured GOCK3-LSP executable not found: {path}",
                path=str(path),
            )
            self._host.show_error(error.message)
            raise error
        await self._guarded(asyncio.to_thread(store.set_executable, path))
        return ProvisionedExecutable(
            path=path,
            exists=True,
            executable_bit_set=await asyncio.to_thread(store.is_executable, path),
        )

    async def _download(
        self,
        variant: PlatformVariant,
        store: ExecutableStore,
        target: Path,
    ) -> None:
        logger.info("Downloading %s to %s", variant.remote_artifact_url, target)
        with self._host.progress(DOWNLOAD_PROGRESS_TITLE):
            try:
                data = await self._fetcher.download(variant.remote_artifact_url)
                await asyncio.to_thread(store.write_atomically, target, data)
                await asyncio.to_thread(store.set_executable, target)
            except (TransportError, WriteError, StorageError) as error:
                self._host.show_error(f"Failed to download GOCK3-LSP server: {error}")
                raise
        self._host.show_info(DOWNLOAD_SUCCEEDED_MESSAGE)

    async def _guarded(self, operation):
        try:
            return await operation
        except StorageError as error:
            self._host.show_error(error.message)
            raise
