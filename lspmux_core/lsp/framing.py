"""Content-Length framing for JSON-RPC messages on a byte stream.

Each message on the wire is ``Content-Length: <N>\\r\\n\\r\\n`` followed by
exactly N bytes of UTF-8 encoded JSON.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterator
from typing import Any

logger = logging.getLogger(__name__)

HEADER_PATTERN = re.compile(rb"Content-Length: (\d+)\r\n\r\n")


def encode_message(message: dict[str, Any]) -> bytes:
    """Serialize a message and prefix it with its Content-Length header.

    Args:
        message: JSON-serializable message object

    Returns:
        Framed bytes ready to be written to the server's stdin
    """
    body = json.dumps(message, ensure_ascii=False).encode("utf-8")
    header = f"Content-Length: {len(body)}\r\n\r\n".encode("ascii")
    return header + body


class MessageFramer:
    """Turns arbitrary-sized byte chunks into complete JSON-RPC messages.

    Usage:
        framer = MessageFramer()
        for message in framer.feed(chunk):
            handle(message)

    Bytes that do not yet form a complete frame stay buffered until the next
    ``feed``. Payloads that are not valid JSON are dropped and framing
    continues with the next frame.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def buffered(self) -> int:
        """Number of bytes waiting for the rest of their frame."""
        return len(self._buffer)

    def feed(self, data: bytes) -> Iterator[Any]:
        """Append a chunk and return a lazy iterator over completed messages."""
        self._buffer.extend(data)
        return self.messages()

    def messages(self) -> Iterator[Any]:
        """Yield every complete message currently in the buffer, in stream order.

        Stopping the iteration early leaves the remaining frames buffered, so
        calling this again resumes where it left off.
        """
        while True:
            match = HEADER_PATTERN.search(self._buffer)
            if match is None:
                return

            content_length = int(match.group(1))
            start = match.end()
            end = start + content_length
            if len(self._buffer) < end:
                return

            payload = bytes(self._buffer[start:end])
            del self._buffer[:end]

            try:
                message = json.loads(payload.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                logger.debug("Dropping malformed LSP frame (%d bytes): %s", content_length, e)
                continue

            yield message

    def reset(self) -> None:
        """Discard any buffered bytes."""
        self._buffer.clear()
