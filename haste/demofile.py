"""Reader for recorded demo files."""

from __future__ import annotations

import io
import struct
from dataclasses import dataclass
from typing import BinaryIO, Optional

from haste import snappy
from haste.demostream import (
    CmdHeader,
    DecodeCmdError,
    DemoCommand,
    DemoStream,
    ReadCmdError,
    ReadCmdHeaderError,
    UnknownCmdError,
    read_uvarint32,
)

__all__ = [
    "DEMO_RECORD_BUFFER_SIZE",
    "DemoFile",
    "DemoHeader",
    "DemoHeaderError",
    "FileInfo",
    "read_demo_header",
]

# a command body must fit into this buffer together with its decompressed form
DEMO_RECORD_BUFFER_SIZE = 2 * 1024 * 1024

DEMO_HEADER_ID = b"PBDEMS2\0"
_DEMO_HEADER = struct.Struct("<8sii")


def _to_i32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value & 0x80000000 else value


def _read_exact(rdr: BinaryIO, size: int) -> Optional[bytes]:
    chunks = []
    remaining = size
    while remaining:
        chunk = rdr.read(remaining)
        if not chunk:
            return None
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


@dataclass(frozen=True)
class DemoHeader:
    demofilestamp: bytes
    fileinfo_offset: int
    spawngroups_offset: int


class DemoHeaderError(Exception):
    """Raised when the demo header is missing or has the wrong stamp."""

    def __init__(self, message: str, got: Optional[bytes] = None) -> None:
        super().__init__(message)
        self.got = got


def read_demo_header(rdr: BinaryIO) -> DemoHeader:
    """Read and validate the header at the start of a demo file."""
    data = _read_exact(rdr, _DEMO_HEADER.size)
    if data is None:
        raise DemoHeaderError("unexpected end of file while reading demo header")
    stamp, fileinfo_offset, spawngroups_offset = _DEMO_HEADER.unpack(data)
    if stamp != DEMO_HEADER_ID:
        raise DemoHeaderError(
            f"invalid demo file stamp (got {stamp!r}; want id {DEMO_HEADER_ID!r})",
            got=stamp,
        )
    return DemoHeader(stamp, fileinfo_offset, spawngroups_offset)


@dataclass(frozen=True)
class FileInfo:
    """Summary stored at the end of a demo file."""

    playback_time: float = 0.0
    playback_ticks: int = 0
    playback_frames: int = 0
    game_info: Optional[bytes] = None


def _read_proto_varint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(data):
            raise DecodeCmdError("truncated varint")
        if shift >= 64:
            raise DecodeCmdError("varint is too long")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result & 0xFFFFFFFFFFFFFFFF, pos
        shift += 7


def _decode_file_info(data: bytes) -> FileInfo:
    fields: dict = {}
    expected_wire = {1: 5, 2: 0, 3: 0, 4: 2}
    pos = 0
    while pos < len(data):
        key, pos = _read_proto_varint(data, pos)
        number, wire = key >> 3, key & 0b111
        if number == 0:
            raise DecodeCmdError("invalid field number 0")
        if number in expected_wire and expected_wire[number] != wire:
            raise DecodeCmdError(f"invalid wire type {wire} for field {number}")

        if wire == 0:
            value, pos = _read_proto_varint(data, pos)
        elif wire == 1:
            if pos + 8 > len(data):
                raise DecodeCmdError("truncated fixed64")
            value = data[pos : pos + 8]
            pos += 8
        elif wire == 2:
            length, pos = _read_proto_varint(data, pos)
            if pos + length > len(data):
                raise DecodeCmdError("truncated length-delimited field")
            value = data[pos : pos + length]
            pos += length
        elif wire == 5:
            if pos + 4 > len(data):
                raise DecodeCmdError("truncated fixed32")
            value = data[pos : pos + 4]
            pos += 4
        else:
            raise DecodeCmdError(f"unsupported wire type {wire}")

        if number == 1:
            fields["playback_time"] = struct.unpack("<f", value)[0]
        elif number == 2:
            fields["playback_ticks"] = _to_i32(value)
        elif number == 3:
            fields["playback_frames"] = _to_i32(value)
        elif number == 4:
            fields["game_info"] = bytes(value)
    return FileInfo(**fields)


class DemoFile(DemoStream):
    """Reads commands from a demo file.

    Pass a buffered reader for good performance.
    """

    def __init__(self, rdr: BinaryIO) -> None:
        self._rdr = rdr
        self._demo_header = read_demo_header(rdr)
        self._file_info: Optional[FileInfo] = None

    @property
    def demo_header(self) -> DemoHeader:
        return self._demo_header

    def file_info(self) -> FileInfo:
        """Read (once) the file info command; the position is restored."""
        if self._file_info is None:
            backup = self.stream_position()
            try:
                self.seek(self._demo_header.fileinfo_offset, io.SEEK_SET)
                cmd_header = self.read_cmd_header()
                self._file_info = _decode_file_info(self.read_cmd(cmd_header))
            finally:
                self.seek(backup, io.SEEK_SET)
        return self._file_info

    # stream ops

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        return self._rdr.seek(offset, whence)

    def stream_position(self) -> int:
        return self._rdr.tell()

    # cmd header

    def read_cmd_header(self) -> CmdHeader:
        cmd_raw, cmd_n = read_uvarint32(self._rdr)
        flag = int(DemoCommand.IS_COMPRESSED)
        body_compressed = cmd_raw & flag == flag
        cmd_value = cmd_raw & ~flag if body_compressed else cmd_raw
        try:
            cmd = DemoCommand(_to_i32(cmd_value))
        except ValueError:
            raise UnknownCmdError(cmd_raw, cmd_value) from None

        # the tick is all ones before pre-game initialization; as signed it is -1
        tick, tick_n = read_uvarint32(self._rdr)
        body_size, body_size_n = read_uvarint32(self._rdr)

        return CmdHeader(
            cmd=cmd,
            body_compressed=body_compressed,
            tick=_to_i32(tick),
            body_size=body_size,
            size=cmd_n + tick_n + body_size_n,
        )

    # cmd body

    def read_cmd(self, cmd_header: CmdHeader) -> bytes:
        size = cmd_header.body_size
        if size > DEMO_RECORD_BUFFER_SIZE:
            raise ReadCmdError(f"command body of {size} bytes does not fit the buffer")
        data = _read_exact(self._rdr, size)
        if data is None:
            raise ReadCmdError("unexpected end of stream while reading command body")
        if not cmd_header.body_compressed:
            return data

        try:
            length = snappy.decompress_len(data)
            if length > DEMO_RECORD_BUFFER_SIZE - size:
                raise ReadCmdError(
                    f"decompressed body of {length} bytes does not fit the buffer"
                )
            return snappy.decompress(data)
        except snappy.SnappyError as exc:
            raise ReadCmdError(str(exc)) from exc

    # other

    def start_position(self) -> int:
        return _DEMO_HEADER.size

    def total_ticks(self) -> int:
        return self.file_info().playback_ticks


# re-exported for callers that catch header errors from this module
ReadCmdHeaderError = ReadCmdHeaderError