# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""Demultiplexing of the container runtime's attached output stream.

A non-TTY exec stream carries stdout and stderr interleaved in frames::

    [tag:1][0:3][length:4 big-endian][payload:length]

where tag is 0 (stdin), 1 (stdout) or 2 (stderr).
"""

import re
import struct
from collections.abc import Iterator
from dataclasses import dataclass

HEADER_SIZE = 8
STDIN, STDOUT, STDERR = 0, 1, 2

_HEADER = struct.Struct(">BxxxI")
_CONTROL_BYTES = re.compile(r"[\x00-\x08]")


@dataclass(frozen=True)
class Frame:
    stream: int
    payload: bytes


@dataclass(frozen=True)
class DemuxedOutput:
    stdout: str
    stderr: str


def _is_header(raw: bytes | bytearray | memoryview, offset: int) -> bool:
    if len(raw) - offset < HEADER_SIZE:
        return False
    return raw[offset] in (STDIN, STDOUT, STDERR) and raw[offset + 1 : offset + 4] == b"\x00\x00\x00"


def _scan(raw: bytes) -> Iterator[Frame]:
    offset = 0
    while _is_header(raw, offset):
        stream, length = _HEADER.unpack_from(raw, offset)
        end = offset + HEADER_SIZE + length
        if end > len(raw):
            return
        yield Frame(stream, bytes(raw[offset + HEADER_SIZE : end]))
        offset = end


def _is_framed(raw: bytes) -> bool:
    """True when ``raw`` holds at least one complete frame from its first byte."""
    return next(_scan(raw), None) is not None


def iter_frames(raw: bytes) -> Iterator[Frame]:
    """Yield every complete, well-formed frame in ``raw``.

    Iteration stops at a malformed header or at a trailing frame whose payload
    is incomplete. Zero-length frames are skipped.
    """
    return (frame for frame in _scan(raw) if frame.payload)


def demux_bytes(raw: bytes) -> tuple[bytes, bytes]:
    """Split ``raw`` into concatenated stdout and stderr payloads.

    A buffer in which no complete frame can be found is returned whole as
    stdout.
    """
    if not raw:
        return b"", b""
    if not _is_framed(raw):
        return bytes(raw), b""

    stdout = bytearray()
    stderr = bytearray()
    for frame in iter_frames(raw):
        if frame.stream == STDOUT:
            stdout += frame.payload
        elif frame.stream == STDERR:
            stderr += frame.payload
    return bytes(stdout), bytes(stderr)


def demux(raw: bytes) -> DemuxedOutput:
    """Decode a multiplexed stream into stdout and stderr text."""
    if raw and not _is_framed(raw):
        text = raw.decode("utf-8", errors="replace")
        return DemuxedOutput(stdout=_CONTROL_BYTES.sub("", text), stderr="")

    stdout, stderr = demux_bytes(raw)
    return DemuxedOutput(
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


def encode_frame(stream: int, payload: bytes) -> bytes:
    """Build a single frame."""
    return _HEADER.pack(stream, len(payload)) + payload
