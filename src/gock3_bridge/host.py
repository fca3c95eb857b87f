"""Host application surface: notifications, progress and workspace facts."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from pathlib import Path
from typing import Protocol, runtime_checkable

import click

logger = logging.getLogger(__name__)


@runtime_checkable
class HostSurface(Protocol):
    """What the embedding application provides to the bridge.

    Document events are pushed, not pulled: once the session is running the
    host forwards its open/change/save/close events through
    ``LifecycleController.session.documents`` (a ``DocumentSynchronizer``).
    Workspace file changes need no host code; the session polls
    ``workspace_root`` itself.
    """

    storage_dir: Path
    workspace_root: Path | None

    def progress(self, title: str) -> AbstractContextManager[None]:
        """Show an indeterminate progress indicator while the block runs."""
        raise NotImplementedError

    def show_info(self, message: str) -> None:
        raise NotImplementedError

    def show_error(self, message: str) -> None:
        raise NotImplementedError


class ConsoleHost:
    """Terminal host used by the CLI."""

    def __init__(self, storage_dir: Path, workspace_root: Path | None = None) -> None:
        self.storage_dir = storage_dir
        self.workspace_root = workspace_root

    @contextmanager
    def progress(self, title: str) -> Iterator[None]:
        click.secho(title, fg="cyan")
        yield

    def show_info(self, message: str) -> None:
        logger.info(message)
        click.echo(message)

    def show_error(self, message: str) -> None:
        logger.error(message)
        click.secho(message, fg="red", err=True)
