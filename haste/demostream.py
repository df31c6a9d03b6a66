"""Command framing shared by every kind of demo stream."""

from __future__ import annotations

import abc
import enum
import io
from dataclasses import dataclass
from typing import BinaryIO

__all__ = [
    "CmdHeader",
    "DecodeCmdError",
    "DemoCommand",
    "DemoStream",
    "ReadCmdError",
    "ReadCmdHeaderError",
    "UnknownCmdError",
    "read_uvarint32",
]

_MAX_VARINT32_BYTES = 5


class DemoCommand(enum.IntEnum):
    """Top-level demo commands."""

    ERROR = -1
    STOP = 0
    FILE_HEADER = 1
    FILE_INFO = 2
    SYNC_TICK = 3
    SEND_TABLES = 4
    CLASS_INFO = 5
    STRING_TABLES = 6
    PACKET = 7
    SIGNON_PACKET = 8
    CONSOLE_CMD = 9
    CUSTOM_DATA = 10
    CUSTOM_DATA_CALLBACKS = 11
    USER_CMD = 12
    FULL_PACKET = 13
    SAVE_GAME = 14
    SPAWN_GROUPS = 15
    ANIMATION_DATA = 16
    ANIMATION_HEADER = 17
    MAX = 18
    IS_COMPRESSED = 64


@dataclass(frozen=True)
class CmdHeader:
    """Header that precedes every command body.

    ``size`` is the number of bytes the header itself took, which allows
    un-reading it.
    """

    cmd: DemoCommand
    body_compressed: bool
    tick: int
    body_size: int
    size: int


class ReadCmdHeaderError(Exception):
    """Raised when a command header cannot be read."""


class UnknownCmdError(ReadCmdHeaderError):
    """Raised when a command header names a command that does not exist."""

    def __init__(self, raw: int, uncompressed: int) -> None:
        super().__init__(f"unknown cmd (raw {raw}; uncompressed {uncompressed})")
        self.raw = raw
        self.uncompressed = uncompressed


class ReadCmdError(Exception):
    """Raised when a command body cannot be read or decompressed."""


class DecodeCmdError(Exception):
    """Raised when a command body cannot be decoded."""


def read_uvarint32(rdr: BinaryIO) -> tuple[int, int]:
    """Read an unsigned 32-bit varint; return the value and bytes consumed."""
    result = 0
    for count in range(_MAX_VARINT32_BYTES):
        chunk = rdr.read(1)
        if not chunk:
            raise ReadCmdHeaderError("unexpected end of stream while reading varint")
        byte = chunk[0]
        result |= (byte & 0x7F) << (7 * count)
        if not byte & 0x80:
            return result & 0xFFFFFFFF, count + 1
    raise ReadCmdHeaderError("malformed varint")


class DemoStream(abc.ABC):
    """A seekable source of demo commands."""

    # stream ops

    @abc.abstractmethod
    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        """Move the stream position; return the new absolute position."""

    @abc.abstractmethod
    def stream_position(self) -> int:
        """Current absolute position of the stream."""

    def stream_len(self) -> int:
        """Total length of the stream; the position is left unchanged."""
        old_pos = self.stream_position()
        length = self.seek(0, io.SEEK_END)
        if old_pos != length:
            self.seek(old_pos, io.SEEK_SET)
        return length

    def is_at_eof(self) -> bool:
        return self.stream_position() == self.stream_len()

    # cmd header

    @abc.abstractmethod
    def read_cmd_header(self) -> CmdHeader:
        """Read the next command header."""

    def unread_cmd_header(self, cmd_header: CmdHeader) -> None:
        self.seek(-cmd_header.size, io.SEEK_CUR)

    # cmd

    @abc.abstractmethod
    def read_cmd(self, cmd_header: CmdHeader) -> bytes:
        """Read the body that follows ``cmd_header``."""

    def skip_cmd(self, cmd_header: CmdHeader) -> None:
        self.seek(cmd_header.body_size, io.SEEK_CUR)

    # other

    @abc.abstractmethod
    def start_position(self) -> int:
        """Position of the first command."""

    @abc.abstractmethod
    def total_ticks(self) -> int:
        """Number of ticks the stream holds."""