"""LSP message framing with Content-Length headers.

    Content-Length: <length>\r\n
    [Content-Type: <type>]\r\n
    \r\n
    <json-rpc-message>

Content-Length counts the bytes of the UTF-8 encoded body.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

HEADER_ENCODING = "ascii"
CONTENT_ENCODING = "utf-8"
CRLF = b"\r\n"
DEFAULT_MAX_MESSAGE_SIZE = 64 * 1024 * 1024


class FramingError(Exception):
    """The byte stream does not follow the base protocol.

    ``recoverable`` is True when the frame was consumed completely and the
    stream is still positioned at a message boundary (bad JSON inside a
    well-framed body). Otherwise the stream is desynchronised.
    """

    def __init__(self, message: str, *, recoverable: bool = False) -> None:
        super().__init__(message)
        self.recoverable = recoverable


def parse_header(header_bytes: bytes) -> dict[str, str]:
    """Parse a header block (without the blank-line separator).

    Raises:
        FramingError: If headers are malformed or Content-Length is missing/invalid.
    """
    if not header_bytes:
        raise FramingError("Empty header block")

    try:
        header_text = header_bytes.decode(HEADER_ENCODING)
    except UnicodeDecodeError as e:
        raise FramingError(f"Header contains non-ASCII characters: {e}") from e

    headers: dict[str, str] = {}
    for line in header_text.split("\r\n"):
        if not line:
            continue
        name, sep, value = line.partition(":")
        if not sep:
            raise FramingError(f"Malformed header line (no colon): {line!r}")
        name = name.strip()
        if not name:
            raise FramingError(f"Empty header name in line: {line!r}")
        headers[name] = value.strip()

    if "Content-Length" not in headers:
        raise FramingError("Missing required Content-Length header")

    try:
        length = int(headers["Content-Length"])
    except ValueError as e:
        raise FramingError(f"Invalid Content-Length value: {headers['Content-Length']!r}") from e
    if length < 0:
        raise FramingError(f"Negative Content-Length: {length}")

    return headers


async def read_message(
    reader: asyncio.StreamReader,
    *,
    max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
) -> dict[str, Any] | None:
    """Read one message from the stream.

    Returns:
        The decoded JSON object, or None on EOF at a message boundary.

    Raises:
        FramingError: If the frame or its JSON body is invalid.
    """
    header_bytes = b""
    while True:
        try:
            line = await reader.readuntil(CRLF)
        except asyncio.IncompleteReadError as e:
            if not header_bytes and not e.partial:
                return None
            raise FramingError("Unexpected EOF while reading headers") from e
        except asyncio.LimitOverrunError as e:
            raise FramingError(f"Header line too long: {e}") from e

        if line == CRLF:
            break
        header_bytes += line

    headers = parse_header(header_bytes.removesuffix(CRLF))
    content_length = int(headers["Content-Length"])
    if content_length > max_message_size:
        raise FramingError(f"Message size {content_length} exceeds maximum {max_message_size}")

    try:
        body = await reader.readexactly(content_length)
    except asyncio.IncompleteReadError as e:
        raise FramingError(
            f"Incomplete message body: expected {content_length} bytes, got {len(e.partial)}"
        ) from e

    try:
        message = json.loads(body.decode(CONTENT_ENCODING))
    except UnicodeDecodeError as e:
        raise FramingError(f"Invalid UTF-8 in message body: {e}", recoverable=True) from e
    except json.JSONDecodeError as e:
        raise FramingError(f"Invalid JSON in message body: {e}", recoverable=True) from e

    if not isinstance(message, dict):
        raise FramingError(
            f"JSON-RPC message must be an object, got {type(message).__name__}",
            recoverable=True,
        )
    return message


def encode_message(msg: dict[str, Any]) -> bytes:
    """Serialize a message into one framed byte string."""
    try:
        body = json.dumps(msg, separators=(",", ":")).encode(CONTENT_ENCODING)
    except (TypeError, ValueError) as e:
        raise FramingError(f"Message cannot be serialized to JSON: {e}") from e
    header = f"Content-Length: {len(body)}\r\n\r\n".encode(HEADER_ENCODING)
    return header + body


async def write_message(
    writer: asyncio.StreamWriter,
    msg: dict[str, Any],
    *,
    drain: bool = True,
) -> None:
    """Write a JSON-RPC message with Content-Length framing."""
    writer.write(encode_message(msg))
    if drain:
        await writer.drain()
