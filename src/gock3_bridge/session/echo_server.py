"""Local stdio language server for session integration tests and smoke runs."""

from __future__ import annotations

import argparse
import json
import sys
from typing import BinaryIO

from gock3_bridge.session.protocol import (
    METHOD_NOT_FOUND,
    JsonDict,
    encode_message,
    error_payload,
    notification_payload,
    request_payload,
    result_payload,
)

_RECORDED_PREFIXES = ("textDocument/", "workspace/")


def read_message(stream: BinaryIO) -> JsonDict | None:
    content_length: int | None = None
    while True:
        line = stream.readline()
        if not line:
            return None
        decoded = line.decode("ascii", errors="replace").strip()
        if not decoded:
            break
        key, _, value = decoded.partition(":")
        if key.strip().lower() == "content-length":
            content_length = int(value.strip())
    if content_length is None:
        return None
    body = stream.read(content_length)
    if len(body) < content_length:
        return None
    return json.loads(body.decode("utf-8"))


class EchoServer:
    """Answers the LSP lifecycle and records forwarded notifications."""

    def __init__(self, reader: BinaryIO, writer: BinaryIO, *, debug: bool, reject: bool) -> None:
        self._reader = reader
        self._writer = writer
        self._debug = debug
        self._reject = reject
        self._shutdown = False
        self._notifications: list[JsonDict] = []
        self._next_id = 0

    def send(self, payload: JsonDict) -> None:
        self._writer.write(encode_message(payload))
        self._writer.flush()

    def serve(self) -> int:
        while True:
            message = read_message(self._reader)
            if message is None:
                return 0 if self._shutdown else 1
            method = message.get("method")
            if method == "exit":
                return 0 if self._shutdown else 1
            if "id" in message and isinstance(method, str):
                self._handle_request(message["id"], method, message.get("params"))
            elif isinstance(method, str):
                self._handle_notification(method, message)

    def _handle_request(self, request_id: object, method: str, params: object) -> None:
        if method == "initialize":
            if self._reject:
                self.send(error_payload(request_id, -32002, "initialize rejected by echo server"))
                return
            self.send(
                result_payload(
                    request_id,
                    {
                        "capabilities": {"textDocumentSync": 1},
                        "serverInfo": {"name": "gock3-echo", "debug": self._debug},
                    },
                ),
            )
        elif method == "shutdown":
            self._shutdown = True
            self.send(result_payload(request_id, None))
        elif method == "echo/notifications":
            self.send(result_payload(request_id, list(self._notifications)))
        elif method == "echo/askClient":
            self.send(result_payload(request_id, self._ask_client(params)))
        else:
            self.send(error_payload(request_id, METHOD_NOT_FOUND, f"Unhandled method {method}"))

    def _handle_notification(self, method: str, message: JsonDict) -> None:
        if method.startswith(_RECORDED_PREFIXES):
            self._notifications.append(message)
            self.send(
                notification_payload("window/logMessage", {"type": 4, "message": f"echo {method}"}),
            )

    def _ask_client(self, params: object) -> object:
        """Send one server request to the client and return its response."""

        request = params if isinstance(params, dict) else {}
        self._next_id += 1
        server_request_id = f"echo-{self._next_id}"
        self.send(
            request_payload(
                server_request_id,
                str(request.get("method", "workspace/configuration")),
                request.get("params"),
            ),
        )
        while True:
            reply = read_message(self._reader)
            if reply is None:
                return None
            if reply.get("id") == server_request_id and "method" not in reply:
                return reply


def main(argv: list[str] | None = None) -> int:
    """Serve one session on stdin/stdout."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("--reject-initialize", action="store_true")
    parser.add_argument("--exit-immediately", action="store_true")
    args = parser.parse_args(argv)

    if args.exit_immediately:
        return 3
    server = EchoServer(
        sys.stdin.buffer,
        sys.stdout.buffer,
        debug=args.debug,
        reject=args.reject_initialize,
    )
    return server.serve()


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
