"""
Line codec for the apcupsd Network Information Server (NIS) protocol.

Every unit on the wire -- the request as well as each response line -- is a
frame: a 2-byte big-endian length ``L`` followed by exactly ``L`` bytes of
ASCII text.  A status query is a single frame carrying the literal
``status``.

CHANGELOG:
- 2026-10-12: Add read_frame helper for asyncio streams
- 2026-10-09: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

HEADER_SIZE: int = 2
"""Size of the big-endian length prefix in bytes."""

MAX_PAYLOAD: int = 0xFFFF
"""Largest payload a 16-bit length prefix can describe."""

PREVIEW_LEN: int = 32
"""Number of payload bytes quoted in LengthMismatchError messages."""


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class NisError(Exception):
    """Base exception for apcupsd NIS client errors."""


class FrameError(NisError):
    """A frame could not be decoded into a text line."""


class TooShortError(FrameError):
    """Frame is shorter than the 2-byte length header."""

    def __init__(self, size: int) -> None:
        super().__init__(f"frame too short: {size} byte(s), need at least {HEADER_SIZE}")
        self.size = size


class LengthMismatchError(FrameError):
    """Declared frame length disagrees with the number of trailing bytes.

    Attributes:
        expected: Length declared in the frame header.
        actual: Number of payload bytes actually present.
        preview: Leading slice of the payload, for diagnostics.
    """

    def __init__(self, expected: int, actual: int, preview: bytes) -> None:
        super().__init__(f"expected {expected} got {actual}: {preview!r}")
        self.expected = expected
        self.actual = actual
        self.preview = preview


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def encode_frame(payload: bytes) -> bytes:
    """Prefix *payload* with its 2-byte big-endian length.

    Raises:
        ValueError: If the payload does not fit a 16-bit length.
    """
    if len(payload) > MAX_PAYLOAD:
        raise ValueError(f"payload of {len(payload)} bytes exceeds {MAX_PAYLOAD}")
    return len(payload).to_bytes(HEADER_SIZE, "big") + payload


def decode_frame(frame: bytes) -> str:
    """Decode one length-prefixed frame into its text line.

    Args:
        frame: Header plus payload bytes.

    Returns:
        The payload as text, unmodified (trailing newlines included).

    Raises:
        TooShortError: Fewer than two bytes were supplied.
        LengthMismatchError: The header length is not the payload length.
        FrameError: The payload is not ASCII.
    """
    if len(frame) < HEADER_SIZE:
        raise TooShortError(len(frame))
    expected = int.from_bytes(frame[:HEADER_SIZE], "big")
    payload = frame[HEADER_SIZE:]
    if expected != len(payload):
        raise LengthMismatchError(expected, len(payload), payload[:PREVIEW_LEN])
    try:
        return payload.decode("ascii")
    except UnicodeDecodeError as exc:
        raise FrameError(f"non-ASCII payload: {payload[:PREVIEW_LEN]!r}") from exc


STATUS_REQUEST: bytes = encode_frame(b"status")
"""The fixed status-request frame: ``b"\\x00\\x06status"``."""


async def read_frame(reader: asyncio.StreamReader) -> bytes:
    """Read one complete raw frame (header and payload) from *reader*.

    Raises:
        asyncio.IncompleteReadError: The stream ended mid-frame or before one.
    """
    header = await reader.readexactly(HEADER_SIZE)
    length = int.from_bytes(header, "big")
    payload = await reader.readexactly(length) if length else b""
    return header + payload
