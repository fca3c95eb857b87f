"""Shared test fixtures."""

from __future__ import annotations

import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

import httpx
import pytest

from gock3_bridge.http.fetcher import AsyncHttpFetcher
from gock3_bridge.lifecycle import reset_controller
from gock3_bridge.session.options import Executable, ServerOptions

ECHO_SERVER_ARGS = ("-m", "gock3_bridge.session.echo_server")


class RecordingHost:
    """HostSurface double that records every notification."""

    def __init__(self, storage_dir: Path, workspace_root: Path | None = None) -> None:
        self.storage_dir = storage_dir
        self.workspace_root = workspace_root
        self.progress_titles: list[str] = []
        self.infos: list[str] = []
        self.errors: list[str] = []

    @contextmanager
    def progress(self, title: str) -> Iterator[None]:
        self.progress_titles.append(title)
        yield

    def show_info(self, message: str) -> None:
        self.infos.append(message)

    def show_error(self, message: str) -> None:
        self.errors.append(message)


class CountingTransport(httpx.AsyncBaseTransport):
    """Async transport answering every request with one canned response."""

    def __init__(self, status_code: int = 200, content: bytes = b"") -> None:
        self.status_code = status_code
        self.content = content
        self.requests: list[httpx.Request] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, content=self.content, request=request)


@pytest.fixture()
def host(tmp_path: Path) -> RecordingHost:
    return RecordingHost(tmp_path / "storage")


@pytest.fixture()
def fetcher_factory() -> Callable[[httpx.AsyncBaseTransport], Callable[[], AsyncHttpFetcher]]:
    def _factory(transport: httpx.AsyncBaseTransport) -> Callable[[], AsyncHttpFetcher]:
        return lambda: AsyncHttpFetcher(transport=transport)

    return _factory


@pytest.fixture()
def echo_server_options() -> Callable[..., ServerOptions]:
    """Server options launching the echo worker through the current interpreter."""

    def _options(*extra: str) -> ServerOptions:
        args = (*ECHO_SERVER_ARGS, *extra)
        return ServerOptions(
            run=Executable(command=sys.executable, args=args),
            debug=Executable(command=sys.executable, args=(*args, "--debug")),
        )

    return _options


def echo_worker_script() -> bytes:
    """Executable script body that serves the echo worker when run directly."""

    return (
        f"#!{sys.executable}\n"
        "import sys\n"
        "from gock3_bridge.session.echo_server import main\n"
        "sys.exit(main())\n"
    ).encode("utf-8")


@pytest.fixture(autouse=True)
def _isolated_controller() -> Iterator[None]:
    reset_controller()
    yield
    reset_controller()
