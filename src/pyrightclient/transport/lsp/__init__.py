"""LSP base-protocol framing."""

from pyrightclient.transport.lsp.framing import (
    FramingError,
    parse_header,
    read_message,
    write_message,
)

__all__ = [
    "FramingError",
    "parse_header",
    "read_message",
    "write_message",
]
