"""Stdio LSP session with the provisioned worker process."""

from __future__ import annotations

import asyncio
import itertools
import logging
import os
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from gock3_bridge import __version__
from gock3_bridge.errors import SessionStartError
from gock3_bridge.host import HostSurface
from gock3_bridge.session.documents import DocumentSynchronizer, FileEvent, FileSystemWatcher
from gock3_bridge.session.options import ClientOptions, ServerOptions
from gock3_bridge.session.protocol import (
    INTERNAL_ERROR,
    METHOD_NOT_FOUND,
    JsonDict,
    MessageReader,
    MessageWriter,
    ProtocolError,
    ResponseError,
    error_payload,
    notification_payload,
    request_payload,
    result_payload,
)

logger = logging.getLogger(__name__)

CLIENT_ID = "gock3LanguageServer"
CLIENT_NAME = "GOCK3 Language Server"
DEFAULT_HANDSHAKE_TIMEOUT_SECONDS = 30.0
DEFAULT_SHUTDOWN_TIMEOUT_SECONDS = 5.0

# LSP MessageType
_MESSAGE_TYPE_ERROR = 1
_MESSAGE_TYPE_WARNING = 2
_MESSAGE_TYPE_INFO = 3

NotificationHandler = Callable[[Any], Awaitable[None] | None]


class SessionState(str, Enum):
    """Worker session lifecycle."""

    UNSTARTED = "unstarted"
    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"


class SessionClosedError(RuntimeError):
    """The worker stream closed while a request was pending."""


class LanguageClientSession:
    """One worker process plus its JSON-RPC message stream.

    ``start()`` spawns the selected executable and performs the
    ``initialize``/``initialized`` handshake; ``stop()`` performs the
    ``shutdown``/``exit`` sequence and reaps the process.
    """

    def __init__(  # noqa: PLR0913
        self,
        server_options: ServerOptions,
        client_options: ClientOptions,
        host: HostSurface,
        *,
        debug: bool = False,
        handshake_timeout_seconds: float | None = DEFAULT_HANDSHAKE_TIMEOUT_SECONDS,
        shutdown_timeout_seconds: float = DEFAULT_SHUTDOWN_TIMEOUT_SECONDS,
        watch_interval_seconds: float = 1.0,
    ) -> None:
        self.server_options = server_options
        self.client_options = client_options
        self._host = host
        self._debug = debug
        self._handshake_timeout = handshake_timeout_seconds
        self._shutdown_timeout = shutdown_timeout_seconds
        self._watch_interval = watch_interval_seconds

        self.state = SessionState.UNSTARTED
        self.server_capabilities: JsonDict = {}
        self.server_info: JsonDict = {}
        self.documents = DocumentSynchronizer(self, client_options)
        self._process: asyncio.subprocess.Process | None = None
        self._writer: MessageWriter | None = None
        self._tasks: list[asyncio.Task[None]] = []
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self._ids = itertools.count(1)
        self._stream_closed = False
        self._handlers: dict[str, NotificationHandler] = {}
        self._watcher: FileSystemWatcher | None = None

    @property
    def is_running(self) -> bool:
        return (
            self.state is SessionState.RUNNING
            and self._process is not None
            and self._process.returncode is None
        )

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    def on_notification(self, method: str, handler: NotificationHandler) -> None:
        self._handlers[method] = handler

    async def wait_closed(self) -> int | None:
        """Wait for the worker process to exit and return its exit code."""

        if self._process is None:
            return None
        return await self._process.wait()

    async def start(self) -> None:
        if self.state is not SessionState.UNSTARTED:
            raise SessionStartError(f"Session cannot start from state {self.state.value}.")
        self.state = SessionState.STARTING
        executable = self.server_options.select(debug=self._debug)
        logger.info("Starting %s: %s", CLIENT_NAME, " ".join(executable.argv))
        try:
            self._process = await asyncio.create_subprocess_exec(
                *executable.argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.client_options.workspace_root,
            )
        except OSError as error:
            await self._abort()
            raise self._start_failed(f"cannot spawn {executable.command}: {error}") from error

        assert self._process.stdin is not None
        assert self._process.stdout is not None
        assert self._process.stderr is not None
        self._writer = MessageWriter(self._process.stdin)
        self._tasks = [
            asyncio.create_task(self._read_loop(MessageReader(self._process.stdout))),
            asyncio.create_task(self._drain_stderr(self._process.stderr)),
        ]

        try:
            result = await asyncio.wait_for(
                self.request("initialize", self._initialize_params()),
                timeout=self._handshake_timeout,
            )
            self.server_capabilities = (result or {}).get("capabilities", {})
            self.server_info = (result or {}).get("serverInfo", {})
            await self.notify("initialized", {})
        except (TimeoutError, asyncio.TimeoutError) as error:
            await self._abort()
            raise self._start_failed("initialize handshake timed out") from error
        except ResponseError as error:
            await self._abort()
            raise self._start_failed(f"initialize rejected: {error}") from error
        except (SessionClosedError, ProtocolError, ConnectionError) as error:
            await self._abort()
            raise self._start_failed(str(error)) from error

        self.state = SessionState.RUNNING
        await self._start_watcher()
        logger.info("%s running (pid=%s)", CLIENT_NAME, self.pid)

    async def stop(self) -> None:
        """Shut the worker down gracefully; no-op if it was never started."""

        if self.state is SessionState.STARTING:
            await self._abort()
            return
        if self.state is not SessionState.RUNNING:
            return
        self.state = SessionState.STOPPED
        if self._watcher is not None:
            await self._watcher.stop()
            self._watcher = None

        if self._process is not None and self._process.returncode is None:
            try:
                await asyncio.wait_for(self.request("shutdown"), timeout=self._shutdown_timeout)
                await self.notify("exit")
            except (
                TimeoutError,
                asyncio.TimeoutError,
                ResponseError,
                SessionClosedError,
                ConnectionError,
            ) as error:
                logger.warning("Graceful shutdown of %s failed: %s", CLIENT_NAME, error)
        await self._reap()
        logger.info("%s stopped", CLIENT_NAME)

    async def request(self, method: str, params: object = None) -> Any:
        if self._writer is None or self._stream_closed:
            raise SessionClosedError("Session has no open stream.")
        request_id = next(self._ids)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._writer.write_message(request_payload(request_id, method, params))
            return await future
        finally:
            self._pending.pop(request_id, None)

    async def notify(self, method: str, params: object = None) -> None:
        if self._writer is None:
            raise SessionClosedError("Session has no open stream.")
        await self._writer.write_message(notification_payload(method, params))

    async def notify_file_changes(self, events: list[FileEvent]) -> None:
        if not self.is_running or not events:
            return
        await self.notify(
            "workspace/didChangeWatchedFiles",
            {"changes": [event.to_lsp() for event in events]},
        )

    def _initialize_params(self) -> JsonDict:
        root = self.client_options.workspace_root
        root_uri = root.resolve().as_uri() if root is not None else None
        params: JsonDict = {
            "processId": os.getpid(),
            "clientInfo": {"name": CLIENT_ID, "version": __version__},
            "rootUri": root_uri,
            "capabilities": {
                "textDocument": {
                    "synchronization": {"didSave": True, "dynamicRegistration": False},
                },
                "workspace": {
                    "didChangeWatchedFiles": {"dynamicRegistration": False},
                    "configuration": True,
                },
                "window": {"workDoneProgress": False},
            },
        }
        if root_uri is not None:
            params["workspaceFolders"] = [{"uri": root_uri, "name": root.name}]
        if self.client_options.initialization_options:
            params["initializationOptions"] = self.client_options.initialization_options
        return params

    async def _start_watcher(self) -> None:
        if self.client_options.workspace_root is None or self._watch_interval <= 0:
            return
        watcher = FileSystemWatcher(
            self.client_options,
            self.notify_file_changes,
            interval_seconds=self._watch_interval,
        )
        try:
            await watcher.start()
        except OSError as error:
            logger.warning(
                "File watching disabled for %s: %s",
                self.client_options.workspace_root,
                error,
            )
            return
        self._watcher = watcher

    async def _read_loop(self, reader: MessageReader) -> None:
        failure: BaseException | None = None
        try:
            while True:
                message = await reader.read_message()
                if message is None:
                    break
                try:
                    await self._dispatch(message)
                except Exception:
                    logger.exception("Failed to handle message from %s", CLIENT_NAME)
        except ProtocolError as error:
            logger.error("Protocol error from %s: %s", CLIENT_NAME, error)
            failure = error
        finally:
            self._stream_closed = True
            closed = failure or SessionClosedError(f"{CLIENT_NAME} closed its output stream.")
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(closed)
            if self.state is SessionState.RUNNING:
                logger.warning("%s exited unexpectedly", CLIENT_NAME)

    async def _dispatch(self, message: JsonDict) -> None:
        message_id = message.get("id")
        method = message.get("method")
        if isinstance(method, str) and message_id is not None:
            await self._answer_server_request(message_id, method, message.get("params"))
            return
        if isinstance(method, str):
            await self._handle_notification(method, message.get("params"))
            return
        future = self._pending.get(message_id) if isinstance(message_id, int) else None
        if future is None or future.done():
            logger.debug("Dropping response for unknown request id=%r", message_id)
            return
        error = message.get("error")
        if isinstance(error, dict):
            code = error.get("code")
            future.set_exception(
                ResponseError(
                    code if isinstance(code, int) else INTERNAL_ERROR,
                    str(error.get("message", "")),
                    error.get("data"),
                ),
            )
        else:
            future.set_result(message.get("result"))

    async def _answer_server_request(self, request_id: object, method: str, params: Any) -> None:
        if self._writer is None:
            return
        if method == "workspace/configuration":
            items = params.get("items", []) if isinstance(params, dict) else []
            payload = result_payload(request_id, [None for _ in items])
        elif method in {
            "client/registerCapability",
            "client/unregisterCapability",
            "window/workDoneProgress/create",
        }:
            payload = result_payload(request_id, None)
        else:
            logger.debug("Unhandled server request %s", method)
            payload = error_payload(request_id, METHOD_NOT_FOUND, f"Unhandled method {method}")
        await self._writer.write_message(payload)

    async def _handle_notification(self, method: str, params: Any) -> None:
        handler = self._handlers.get(method)
        if handler is not None:
            outcome = handler(params)
            if outcome is not None:
                await outcome
            return
        if method == "window/logMessage":
            _log_worker_message(params)
        elif method == "window/showMessage":
            self._show_worker_message(params)
        else:
            logger.debug("Notification %s: %s", method, params)

    def _show_worker_message(self, params: Any) -> None:
        if not isinstance(params, dict):
            return
        text = str(params.get("message", ""))
        if params.get("type") == _MESSAGE_TYPE_ERROR:
            self._host.show_error(text)
        else:
            self._host.show_info(text)

    async def _drain_stderr(self, stream: asyncio.StreamReader) -> None:
        while True:
            line = await stream.readline()
            if not line:
                return
            logger.debug("[worker stderr] %s", line.decode("utf-8", errors="replace").rstrip())

    def _start_failed(self, reason: str) -> SessionStartError:
        error = SessionStartError(f"Failed to start {CLIENT_NAME}: {reason}")
        self._host.show_error(error.message)
        return error

    async def _abort(self) -> None:
        self.state = SessionState.STOPPED
        await self._reap(grace_seconds=0)

    async def _reap(self, *, grace_seconds: float | None = None) -> None:
        if self._writer is not None:
            self._writer.close()
            self._writer = None
        process = self._process
        if process is not None:
            await _terminate_process(
                process,
                grace_seconds=self._shutdown_timeout if grace_seconds is None else grace_seconds,
            )
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Session task %s failed", task.get_name())
        self._tasks = []


def _log_worker_message(params: Any) -> None:
    if not isinstance(params, dict):
        return
    level = {
        _MESSAGE_TYPE_ERROR: logging.ERROR,
        _MESSAGE_TYPE_WARNING: logging.WARNING,
        _MESSAGE_TYPE_INFO: logging.INFO,
    }.get(params.get("type"), logging.DEBUG)
    logger.log(level, "[worker] %s", params.get("message", ""))


async def _terminate_process(
    process: asyncio.subprocess.Process,
    *,
    grace_seconds: float,
) -> None:
    if process.returncode is not None:
        return
    if grace_seconds > 0:
        try:
            await asyncio.wait_for(process.wait(), timeout=grace_seconds)
            return
        except (TimeoutError, asyncio.TimeoutError):
            logger.warning("%s did not exit within %ss, terminating", CLIENT_NAME, grace_seconds)
    try:
        process.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(process.wait(), timeout=2)
    except (TimeoutError, asyncio.TimeoutError):
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()
