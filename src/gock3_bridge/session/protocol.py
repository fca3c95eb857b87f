"""JSON-RPC 2.0 framing over ``Content-Length`` delimited byte streams."""

from __future__ import annotations

import asyncio
import json
from typing import Any, cast

JsonDict = dict[str, Any]

HEADER_SEPARATOR = b"\r\n\r\n"
JSONRPC_VERSION = "2.0"

# JSON-RPC / LSP error codes
METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603


class ProtocolError(RuntimeError):
    """Malformed frame or payload on the worker stream."""


class ResponseError(RuntimeError):
    """Error response returned by the worker for one request."""

    def __init__(self, code: int, message: str, data: object = None) -> None:
        super().__init__(f"{message} (code {code})")
        self.code = code
        self.message = message
        self.data = data


def encode_message(payload: JsonDict) -> bytes:
    body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    header = f"Content-Length: {len(body)}\r\n\r\n".encode("ascii")
    return header + body


def request_payload(request_id: int | str, method: str, params: object) -> JsonDict:
    payload: JsonDict = {"jsonrpc": JSONRPC_VERSION, "id": request_id, "method": method}
    if params is not None:
        payload["params"] = params
    return payload


def notification_payload(method: str, params: object) -> JsonDict:
    payload: JsonDict = {"jsonrpc": JSONRPC_VERSION, "method": method}
    if params is not None:
        payload["params"] = params
    return payload


def result_payload(request_id: object, result: object) -> JsonDict:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def error_payload(request_id: object, code: int, message: str) -> JsonDict:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "error": {"code": code, "message": message},
    }


def try_parse_message(buffer: bytearray) -> JsonDict | None:
    """Pop one complete message from ``buffer``; None when more bytes are needed."""

    header_end = buffer.find(HEADER_SEPARATOR)
    if header_end < 0:
        return None

    content_length = _content_length(bytes(buffer[:header_end]))
    body_start = header_end + len(HEADER_SEPARATOR)
    body_end = body_start + content_length
    if len(buffer) < body_end:
        return None

    body = bytes(buffer[body_start:body_end])
    del buffer[:body_end]
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as error:
        raise ProtocolError(f"Invalid JSON-RPC body: {error}") from error
    if not isinstance(payload, dict):
        raise ProtocolError("Invalid JSON-RPC payload type")
    return cast("JsonDict", payload)


def _content_length(header_blob: bytes) -> int:
    for line in header_blob.decode("ascii", errors="replace").split("\r\n"):
        key, sep, value = line.partition(":")
        if not sep or key.strip().lower() != "content-length":
            continue
        try:
            length = int(value.strip())
        except ValueError as error:
            raise ProtocolError(f"Invalid Content-Length header: {value.strip()!r}") from error
        if length < 0:
            raise ProtocolError(f"Invalid Content-Length header: {length}")
        return length
    raise ProtocolError("Missing Content-Length in message headers")


class MessageReader:
    """Incremental frame reader on top of an asyncio stream."""

    def __init__(self, stream: asyncio.StreamReader, *, chunk_size: int = 65536) -> None:
        self._stream = stream
        self._chunk_size = chunk_size
        self._buffer = bytearray()

    async def read_message(self) -> JsonDict | None:
        """Return the next message, or None once the stream is closed."""

        while True:
            message = try_parse_message(self._buffer)
            if message is not None:
                return message
            chunk = await self._stream.read(self._chunk_size)
            if not chunk:
                if self._buffer.strip():
                    raise ProtocolError("Stream closed in the middle of a message")
                return None
            self._buffer.extend(chunk)


class MessageWriter:
    """Serialized frame writer on top of an asyncio stream."""

    def __init__(self, stream: asyncio.StreamWriter) -> None:
        self._stream = stream
        self._lock = asyncio.Lock()

    async def write_message(self, payload: JsonDict) -> None:
        async with self._lock:
            self._stream.write(encode_message(payload))
            await self._stream.drain()

    def close(self) -> None:
        if not self._stream.is_closing():
            self._stream.close()
