"""Route host document events and workspace file changes to the worker."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Protocol

from gock3_bridge.session.options import ClientOptions

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def notify(self, method: str, params: object = None) -> None:
        raise NotImplementedError


class FileChangeType(IntEnum):
    """LSP ``FileChangeType`` values."""

    CREATED = 1
    CHANGED = 2
    DELETED = 3


@dataclass(slots=True)
class TextDocument:
    """Host-side snapshot of one open document."""

    uri: str
    language_id: str
    version: int
    text: str

    @classmethod
    def from_path(cls, path: Path, *, language_id: str, version: int = 1) -> TextDocument:
        return cls(
            uri=path.resolve().as_uri(),
            language_id=language_id,
            version=version,
            text=path.read_text(encoding="utf-8"),
        )


@dataclass(frozen=True, slots=True)
class FileEvent:
    uri: str
    type: FileChangeType

    def to_lsp(self) -> dict[str, object]:
        return {"uri": self.uri, "type": int(self.type)}


class DocumentSynchronizer:
    """Forward open/change/save/close events for documents the selector accepts.

    Full-text synchronization only: every change carries the complete document.
    """

    def __init__(self, notifier: Notifier, options: ClientOptions) -> None:
        self._notifier = notifier
        self._options = options
        self._open: dict[str, TextDocument] = {}

    @property
    def open_documents(self) -> tuple[str, ...]:
        return tuple(self._open)

    async def did_open(self, document: TextDocument) -> bool:
        if not self._options.accepts_document(document.uri, document.language_id):
            return False
        self._open[document.uri] = document
        await self._notifier.notify(
            "textDocument/didOpen",
            {
                "textDocument": {
                    "uri": document.uri,
                    "languageId": document.language_id,
                    "version": document.version,
                    "text": document.text,
                },
            },
        )
        return True

    async def did_change(self, document: TextDocument) -> bool:
        if document.uri not in self._open:
            return await self.did_open(document)
        self._open[document.uri] = document
        await self._notifier.notify(
            "textDocument/didChange",
            {
                "textDocument": {"uri": document.uri, "version": document.version},
                "contentChanges": [{"text": document.text}],
            },
        )
        return True

    async def did_save(self, uri: str) -> bool:
        if uri not in self._open:
            return False
        await self._notifier.notify("textDocument/didSave", {"textDocument": {"uri": uri}})
        return True

    async def did_close(self, uri: str) -> bool:
        if self._open.pop(uri, None) is None:
            return False
        await self._notifier.notify("textDocument/didClose", {"textDocument": {"uri": uri}})
        return True


Snapshot = dict[Path, int]


class FileSystemWatcher:
    """Polling watcher for workspace files matching the client glob."""

    def __init__(
        self,
        options: ClientOptions,
        on_events: Callable[[list[FileEvent]], Awaitable[None]],
        *,
        interval_seconds: float = 1.0,
    ) -> None:
        if options.workspace_root is None:
            raise ValueError("File watching requires a workspace root.")
        self._root = options.workspace_root
        self._options = options
        self._on_events = on_events
        self._interval = interval_seconds
        self._snapshot: Snapshot = {}
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        if self._task is not None:
            return
        self._snapshot = await asyncio.to_thread(self.scan)
        self._task = asyncio.create_task(self._run(), name="gock3-file-watcher")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def scan(self) -> Snapshot:
        snapshot: Snapshot = {}
        for path in self._root.rglob("*"):
            relative = path.relative_to(self._root).as_posix()
            if not self._options.watches(relative):
                continue
            try:
                if path.is_file():
                    snapshot[path] = path.stat().st_mtime_ns
            except OSError:
                continue
        return snapshot

    async def poll_once(self) -> list[FileEvent]:
        current = await asyncio.to_thread(self.scan)
        events = diff_snapshots(self._snapshot, current)
        self._snapshot = current
        if events:
            await self._on_events(events)
        return events

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.poll_once()
            except OSError as error:
                logger.warning("Workspace scan failed under %s: %s", self._root, error)


def diff_snapshots(previous: Snapshot, current: Snapshot) -> list[FileEvent]:
    events: list[FileEvent] = []
    for path, mtime in current.items():
        before = previous.get(path)
        if before is None:
            events.append(FileEvent(path.resolve().as_uri(), FileChangeType.CREATED))
        elif before != mtime:
            events.append(FileEvent(path.resolve().as_uri(), FileChangeType.CHANGED))
    for path in sorted(previous.keys() - current.keys()):
        events.append(FileEvent(path.resolve().as_uri(), FileChangeType.DELETED))
    return events
