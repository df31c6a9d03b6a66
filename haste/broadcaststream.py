"""Command framing used by broadcast fragments."""

from __future__ import annotations

import io
import struct
from typing import BinaryIO

from haste.demostream import (
    CmdHeader,
    DecodeCmdError,
    DemoCommand,
    DemoStream,
    ReadCmdHeaderError,
    UnknownCmdError,
)

__all__ = [
    "decode_cmd_packet",
    "decode_cmd_send_tables",
    "read_cmd_header",
    "scan_for_last_tick",
]

_U32 = struct.Struct("<I")
_SEND_TABLES_PREFIX = 4


def _read_exact(rdr: BinaryIO, size: int) -> bytes:
    chunks = []
    remaining = size
    while remaining:
        chunk = rdr.read(remaining)
        if not chunk:
            raise ReadCmdHeaderError("unexpected end of stream while reading cmd header")
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def _to_i32(value: int) -> int:
    return value - (1 << 32) if value & 0x80000000 else value


def read_cmd_header(rdr: BinaryIO) -> CmdHeader:
    """Read a broadcast command header.

    The layout is a one-byte command, a little-endian 32-bit tick, one
    unknown byte and a little-endian 32-bit body size. Broadcast bodies are
    never compressed.
    """
    cmd_raw = _read_exact(rdr, 1)[0]
    try:
        cmd = DemoCommand(cmd_raw)
    except ValueError:
        raise UnknownCmdError(cmd_raw, cmd_raw) from None

    (tick,) = _U32.unpack(_read_exact(rdr, _U32.size))
    _read_exact(rdr, 1)  # unknown
    (body_size,) = _U32.unpack(_read_exact(rdr, _U32.size))

    return CmdHeader(
        cmd=cmd,
        body_compressed=False,
        tick=_to_i32(tick),
        body_size=body_size,
        size=1 + _U32.size + 1 + _U32.size,
    )


def decode_cmd_send_tables(data: bytes) -> bytes:
    """Send tables payload of a broadcast command: the body past its prefix."""
    if len(data) < _SEND_TABLES_PREFIX:
        raise DecodeCmdError(
            f"send tables body of {len(data)} bytes is shorter than its prefix"
        )
    return bytes(data[_SEND_TABLES_PREFIX:])


def decode_cmd_packet(data: bytes) -> bytes:
    """Packet payload of a broadcast command: the whole body."""
    return bytes(data)


def _at_eof(demo_stream: DemoStream) -> bool:
    try:
        return demo_stream.is_at_eof()
    except (OSError, ValueError):
        return False


def scan_for_last_tick(demo_stream: DemoStream) -> int:
    """Walk all commands and return the tick of the last one (-1 if none).

    The stream position is restored afterwards.
    """
    last_tick = -1
    backup = demo_stream.stream_position()
    while True:
        try:
            cmd_header = demo_stream.read_cmd_header()
        except ReadCmdHeaderError as exc:
            if not _at_eof(demo_stream):
                raise exc
            demo_stream.seek(backup, io.SEEK_SET)
            return last_tick
        last_tick = cmd_header.tick
        demo_stream.skip_cmd(cmd_header)