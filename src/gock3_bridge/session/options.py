"""Launch and document-routing options for a worker session."""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

DEBUG_FLAG = "--debug"
DEFAULT_DOCUMENT_SCHEME = "file"
DEFAULT_DOCUMENT_LANGUAGE = "plaintext"
DEFAULT_FILE_WATCH_GLOB = "**/*.txt"


@dataclass(frozen=True, slots=True)
class Executable:
    """One way to launch the worker process."""

    command: str
    args: tuple[str, ...] = ()

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.args]


@dataclass(frozen=True, slots=True)
class ServerOptions:
    """Run and debug invocations of the same executable."""

    run: Executable
    debug: Executable

    def select(self, *, debug: bool) -> Executable:
        return self.debug if debug else self.run


def build_server_options(executable_path: Path) -> ServerOptions:
    command = str(executable_path)
    return ServerOptions(
        run=Executable(command=command),
        debug=Executable(command=command, args=(DEBUG_FLAG,)),
    )


@dataclass(frozen=True, slots=True)
class DocumentSelector:
    """Scheme + language filter for documents routed to the worker."""

    scheme: str = DEFAULT_DOCUMENT_SCHEME
    language: str = DEFAULT_DOCUMENT_LANGUAGE

    def matches(self, uri: str, language_id: str) -> bool:
        scheme = urlparse(uri).scheme or DEFAULT_DOCUMENT_SCHEME
        return scheme == self.scheme and language_id == self.language


@dataclass(frozen=True, slots=True)
class ClientOptions:
    """Which documents and file events the session receives."""

    document_selector: tuple[DocumentSelector, ...] = (DocumentSelector(),)
    file_watch_glob: str = DEFAULT_FILE_WATCH_GLOB
    workspace_root: Path | None = None
    initialization_options: dict[str, object] = field(default_factory=dict)

    def accepts_document(self, uri: str, language_id: str) -> bool:
        return any(selector.matches(uri, language_id) for selector in self.document_selector)

    def watches(self, relative_path: str) -> bool:
        return matches_glob(relative_path, self.file_watch_glob)


def matches_glob(relative_path: str, pattern: str) -> bool:
    """Workspace-relative glob match where a leading ``**/`` also matches the root."""

    candidate = PurePosixPath(relative_path.replace("\\", "/")).as_posix()
    if fnmatch.fnmatchcase(candidate, pattern):
        return True
    return pattern.startswith("**/") and fnmatch.fnmatchcase(candidate, pattern[3:])
