"""Process-wide start/stop contract: provision the worker, then bridge it."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from pathlib import Path

from gock3_bridge.config import Settings
from gock3_bridge.errors import BridgeError, UnsupportedPlatformError
from gock3_bridge.host import HostSurface
from gock3_bridge.http.fetcher import AsyncHttpFetcher
from gock3_bridge.provisioning.platforms import current_os_id, resolve
from gock3_bridge.provisioning.provisioner import ProvisionedExecutable, Provisioner
from gock3_bridge.session.client import LanguageClientSession
from gock3_bridge.session.options import (
    ClientOptions,
    DocumentSelector,
    ServerOptions,
    build_server_options,
)

logger = logging.getLogger(__name__)

FetcherFactory = Callable[[], AsyncHttpFetcher]
SessionFactory = Callable[[ServerOptions, ClientOptions], LanguageClientSession]


class LifecycleState(str, Enum):
    """Activation lifecycle; FAILED and STOPPED are terminal."""

    UNSTARTED = "unstarted"
    PROVISIONING = "provisioning"
    BRIDGING = "bridging"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"


_TERMINAL_STATES = frozenset({LifecycleState.STOPPED, LifecycleState.FAILED})


class LifecycleController:
    """Owns the one worker session of the host process.

    Activations are serialized: a second ``activate()`` issued while the first
    is provisioning waits for it and then returns without touching the
    executable or spawning a second process.
    """

    def __init__(
        self,
        host: HostSurface,
        settings: Settings,
        *,
        os_id: str | None = None,
        fetcher_factory: FetcherFactory | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self._host = host
        self._settings = settings
        self._os_id = os_id or current_os_id()
        self._fetcher_factory = fetcher_factory or AsyncHttpFetcher
        self._session_factory = session_factory or self._default_session
        self._state = LifecycleState.UNSTARTED
        self._session: LanguageClientSession | None = None
        self._executable: ProvisionedExecutable | None = None
        self._activation_lock = asyncio.Lock()

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def session(self) -> LanguageClientSession | None:
        return self._session

    @property
    def executable(self) -> ProvisionedExecutable | None:
        return self._executable

    async def activate(self) -> None:
        async with self._activation_lock:
            if self._state is LifecycleState.RUNNING:
                logger.debug("Activation skipped: session already running")
                return
            if self._state in _TERMINAL_STATES:
                logger.warning("Activation skipped: controller is %s", self._state.value)
                return

            self._state = LifecycleState.PROVISIONING
            try:
                executable = await self._provision()
            except BridgeError as error:
                self._state = LifecycleState.FAILED
                logger.warning("Provisioning failed (%s): %s", error.code, error)
                return
            except asyncio.CancelledError:
                self._state = LifecycleState.FAILED
                self._host.show_error("GOCK3-LSP activation was cancelled during provisioning.")
                raise
            except Exception as error:
                self._fail("Failed to provision GOCK3-LSP server", error)
                return
            self._executable = executable

            self._state = LifecycleState.BRIDGING
            session = self._session_factory(
                build_server_options(executable.path),
                self._client_options(),
            )
            try:
                await session.start()
            except BridgeError as error:
                self._state = LifecycleState.FAILED
                logger.warning("Session start failed (%s): %s", error.code, error)
                return
            except asyncio.CancelledError:
                self._state = LifecycleState.FAILED
                await session.stop()
                raise
            except Exception as error:
                self._fail("Failed to start GOCK3 Language Server", error)
                await session.stop()
                return
            self._session = session
            self._state = LifecycleState.RUNNING

    async def deactivate(self) -> None:
        """Stop the running session; returns immediately in any other state."""

        if self._state is not LifecycleState.RUNNING or self._session is None:
            return
        session, self._session = self._session, None
        try:
            await session.stop()
        finally:
            self._state = LifecycleState.STOPPED

    def _fail(self, summary: str, error: Exception) -> None:
        self._state = LifecycleState.FAILED
        logger.exception("%s", summary)
        self._host.show_error(f"{summary}: {error}")

    async def _provision(self) -> ProvisionedExecutable:
        provisioning = self._settings.provisioning
        try:
            self._settings.validate()
        except ValueError as error:
            message = f"Invalid GOCK3-LSP settings: {error}"
            self._host.show_error(message)
            raise BridgeError(message, code="invalid_settings") from error
        async with self._fetcher_factory() as fetcher:
            provisioner = Provisioner(self._host, fetcher, os_id=self._os_id)
            if provisioning.executable_path is not None:
                return await provisioner.use_existing(provisioning.executable_path)

            variant = resolve(self._os_id, base_url=provisioning.download_base_url)
            if variant is None:
                message = f"Unsupported platform: {self._os_id}"
                self._host.show_error(message)
                raise UnsupportedPlatformError(message, os_id=self._os_id)

            operation = provisioner.ensure_executable(variant, self._host.storage_dir)
            if provisioning.download_timeout_seconds is None:
                return await operation
            try:
                return await asyncio.wait_for(
                    operation,
                    timeout=provisioning.download_timeout_seconds,
                )
            except (TimeoutError, asyncio.TimeoutError) as error:
                message = (
                    "Failed to download GOCK3-LSP server: timed out after "
                    f"{provisioning.download_timeout_seconds}s"
                )
                self._host.show_error(message)
                raise BridgeError(message, code="provisioning_timeout") from error

    def _client_options(self) -> ClientOptions:
        session = self._settings.session
        return ClientOptions(
            document_selector=(
                DocumentSelector(
                    scheme=session.document_scheme,
                    language=session.document_language,
                ),
            ),
            file_watch_glob=session.file_watch_glob,
            workspace_root=self._host.workspace_root,
        )

    def _default_session(
        self,
        server_options: ServerOptions,
        client_options: ClientOptions,
    ) -> LanguageClientSession:
        session = self._settings.session
        return LanguageClientSession(
            server_options,
            client_options,
            self._host,
            debug=session.debug,
            handshake_timeout_seconds=session.handshake_timeout_seconds,
            shutdown_timeout_seconds=session.shutdown_timeout_seconds,
            watch_interval_seconds=session.watch_interval_seconds,
        )


_controller: LifecycleController | None = None


def get_controller(
    host: HostSurface | None = None,
    settings: Settings | None = None,
    *,
    os_id: str | None = None,
    fetcher_factory: FetcherFactory | None = None,
    session_factory: SessionFactory | None = None,
) -> LifecycleController:
    """Return the controller of this process, creating it on first use."""

    global _controller  # noqa: PLW0603
    if _controller is None:
        if host is None:
            raise RuntimeError("The first get_controller() call must supply a host.")
        _controller = LifecycleController(
            host,
            settings or Settings.from_env(),
            os_id=os_id,
            fetcher_factory=fetcher_factory,
            session_factory=session_factory,
        )
    return _controller


def reset_controller() -> None:
    global _controller  # noqa: PLW0603
    _controller = None


async def activate(host: HostSurface, settings: Settings | None = None) -> None:
    await get_controller(host, settings).activate()


async def deactivate() -> None:
    if _controller is None:
        return
    await _controller.deactivate()


def storage_path_for(settings: Settings, os_id: str | None = None) -> Path | None:
    """Where the executable is (or would be) provisioned for ``os_id``."""

    if settings.provisioning.executable_path is not None:
        return settings.provisioning.executable_path
    variant = resolve(os_id or current_os_id(), base_url=settings.provisioning.download_base_url)
    if variant is None:
        return None
    return settings.provisioning.storage_dir / variant.executable_file_name
