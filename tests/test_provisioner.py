from __future__ import annotations

import os
import stat
from pathlib import Path

import allure
import httpx
import pytest
from conftest import CountingTransport, RecordingHost

from gock3_bridge.errors import StorageError, TransportError, WriteError
from gock3_bridge.http.fetcher import AsyncHttpFetcher
from gock3_bridge.provisioning.platforms import require
from gock3_bridge.provisioning.provisioner import (
    DOWNLOAD_PROGRESS_TITLE,
    DOWNLOAD_SUCCEEDED_MESSAGE,
    Provisioner,
)
from gock3_bridge.provisioning.store import ExecutableStore

pytestmark = [
    allure.epic("Provisioning"),
    allure.feature("Ensure Executable"),
]

posix_only = pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
LINUX = require("linux")


def _provisioner(host: RecordingHost, transport: httpx.AsyncBaseTransport) -> Provisioner:
    return Provisioner(host, AsyncHttpFetcher(transport=transport), os_id="linux")


@pytest.mark.asyncio
async def test_cache_miss_downloads_writes_exact_bytes_and_notifies_once(
    host: RecordingHost,
) -> None:
    payload = bytes(range(256)) * 40
    transport = CountingTransport(content=payload)

    result = await _provisioner(host, transport).ensure_executable(LINUX, host.storage_dir)

    target = host.storage_dir / "gock3-lsp-linux"
    assert result.path == target
    assert result.downloaded
    assert result.exists
    assert target.read_bytes() == payload
    assert len(transport.requests) == 1
    assert str(transport.requests[0].url) == LINUX.remote_artifact_url
    assert host.progress_titles == [DOWNLOAD_PROGRESS_TITLE]
    assert host.infos == [DOWNLOAD_SUCCEEDED_MESSAGE]
    assert host.errors == []


@posix_only
@pytest.mark.asyncio
async def test_cache_miss_sets_execute_bits(host: RecordingHost) -> None:
    result = await _provisioner(host, CountingTransport(content=b"bin")).ensure_executable(
        LINUX,
        host.storage_dir,
    )

    mode = stat.S_IMODE(result.path.stat().st_mode)
    assert mode & 0o111 == 0o111
    assert mode == 0o755
    assert result.executable_bit_set


@posix_only
@pytest.mark.asyncio
async def test_cache_hit_skips_network_and_reasserts_permission(host: RecordingHost) -> None:
    host.storage_dir.mkdir(parents=True)
    target = host.storage_dir / "gock3-lsp-linux"
    target.write_bytes(b"cached")
    target.chmod(0o644)
    transport = CountingTransport(content=b"fresh")

    result = await _provisioner(host, transport).ensure_executable(LINUX, host.storage_dir)

    assert transport.requests == []
    assert not result.downloaded
    assert target.read_bytes() == b"cached"
    assert stat.S_IMODE(target.stat().st_mode) == 0o755
    assert host.progress_titles == []
    assert host.infos == []
    assert host.errors == []


@pytest.mark.asyncio
async def test_repeated_calls_only_download_once(host: RecordingHost) -> None:
    transport = CountingTransport(content=b"bin")
    provisioner = _provisioner(host, transport)

    await provisioner.ensure_executable(LINUX, host.storage_dir)
    await provisioner.ensure_executable(LINUX, host.storage_dir)

    assert len(transport.requests) == 1
    assert host.infos == [DOWNLOAD_SUCCEEDED_MESSAGE]


@pytest.mark.asyncio
async def test_non_200_fails_without_creating_file_and_reports_one_error(
    host: RecordingHost,
) -> None:
    provisioner = _provisioner(host, CountingTransport(status_code=404))

    with pytest.raises(TransportError) as info:
        await provisioner.ensure_executable(LINUX, host.storage_dir)

    assert info.value.status_code == 404
    assert host.storage_dir.is_dir()
    assert list(host.storage_dir.iterdir()) == []
    assert host.errors == ["Failed to download GOCK3-LSP server: HTTP 404"]
    assert host.infos == []
    assert host.progress_titles == [DOWNLOAD_PROGRESS_TITLE]


@pytest.mark.asyncio
async def test_connection_error_reports_underlying_message(host: RecordingHost) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("name resolution failed", request=request)

    provisioner = _provisioner(host, httpx.MockTransport(handler))

    with pytest.raises(TransportError):
        await provisioner.ensure_executable(LINUX, host.storage_dir)

    assert len(host.errors) == 1
    assert "name resolution failed" in host.errors[0]
    assert not (host.storage_dir / "gock3-lsp-linux").exists()


@pytest.mark.asyncio
async def test_write_failure_reports_error_and_leaves_no_file(
    host: RecordingHost,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def failing_write(self: ExecutableStore, path: Path, data: bytes) -> None:
        raise WriteError(f"Cannot write {path}: disk full", path=str(path))

    monkeypatch.setattr(ExecutableStore, "write_atomically", failing_write)
    provisioner = _provisioner(host, CountingTransport(content=b"bin"))

    with pytest.raises(WriteError):
        await provisioner.ensure_executable(LINUX, host.storage_dir)

    assert not (host.storage_dir / "gock3-lsp-linux").exists()
    assert len(host.errors) == 1
    assert host.errors[0].startswith("Failed to download GOCK3-LSP server: Cannot write")
    assert host.infos == []


@pytest.mark.asyncio
async def test_storage_directory_failure_reports_error_before_network(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file", encoding="utf-8")
    host = RecordingHost(blocker / "storage")
    transport = CountingTransport(content=b"bin")

    with pytest.raises(StorageError):
        await _provisioner(host, transport).ensure_executable(LINUX, host.storage_dir)

    assert transport.requests == []
    assert len(host.errors) == 1
    assert "Cannot create storage directory" in host.errors[0]


@pytest.mark.asyncio
async def test_windows_variant_skips_permission_changes(tmp_path: Path) -> None:
    host = RecordingHost(tmp_path / "storage")
    provisioner = Provisioner(
        host,
        AsyncHttpFetcher(transport=CountingTransport(content=b"MZ")),
        os_id="win32",
    )

    result = await provisioner.ensure_executable(require("win32"), host.storage_dir)

    assert result.path.name == "gock3-lsp-windows.exe"
    assert result.executable_bit_set
    assert result.path.read_bytes() == b"MZ"


@pytest.mark.asyncio
async def test_use_existing_checks_configured_path(host: RecordingHost, tmp_path: Path) -> None:
    provisioner = _provisioner(host, CountingTransport())
    configured = tmp_path / "custom-lsp"

    with pytest.raises(StorageError):
        await provisioner.use_existing(configured)
    assert host.errors == [f"Configured GOCK3-LSP executable not found: {configured}"]

    configured.write_bytes(b"bin")
    result = await provisioner.use_existing(configured)

    assert result.path == configured
    assert not result.downloaded
