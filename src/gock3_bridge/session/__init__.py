"""Worker session bridge."""

from gock3_bridge.session.client import LanguageClientSession, SessionClosedError, SessionState
from gock3_bridge.session.documents import (
    DocumentSynchronizer,
    FileChangeType,
    FileEvent,
    FileSystemWatcher,
    TextDocument,
)
from gock3_bridge.session.options import (
    ClientOptions,
    DocumentSelector,
    Executable,
    ServerOptions,
    build_server_options,
)
from gock3_bridge.session.protocol import ProtocolError, ResponseError

__all__ = [
    "ClientOptions",
    "DocumentSelector",
    "DocumentSynchronizer",
    "Executable",
    "FileChangeType",
    "FileEvent",
    "FileSystemWatcher",
    "LanguageClientSession",
    "ProtocolError",
    "ResponseError",
    "ServerOptions",
    "SessionClosedError",
    "SessionState",
    "TextDocument",
    "build_server_options",
]
