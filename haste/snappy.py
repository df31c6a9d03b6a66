"""Decompression of raw (unframed) snappy blocks."""

from __future__ import annotations

__all__ = ["SnappyError", "decompress", "decompress_len"]

_MAX_HEADER_BYTES = 5


class SnappyError(ValueError):
    """Raised on malformed compressed data."""


def _read_header(data: bytes) -> tuple[int, int]:
    result = 0
    for count, byte in enumerate(data[:_MAX_HEADER_BYTES]):
        result |= (byte & 0x7F) << (7 * count)
        if not byte & 0x80:
            if result > 0xFFFFFFFF:
                raise SnappyError("decompressed length does not fit into 32 bits")
            return result, count + 1
    if not data:
        raise SnappyError("input is empty")
    if len(data) < _MAX_HEADER_BYTES:
        raise SnappyError("header is truncated")
    raise SnappyError("header is too long")


def decompress_len(data: bytes) -> int:
    """Decompressed length announced by the block header."""
    return _read_header(data)[0]


def _take(data: bytes, pos: int, count: int) -> int:
    if pos + count > len(data):
        raise SnappyError("input is truncated")
    return int.from_bytes(data[pos : pos + count], "little")


def _copy(out: bytearray, offset: int, length: int, expected: int) -> None:
    if offset == 0 or offset > len(out):
        raise SnappyError(f"invalid copy offset {offset}")
    if len(out) + length > expected:
        raise SnappyError("output exceeds the announced length")
    start = len(out) - offset
    if offset >= length:
        out += out[start : start + length]
    else:
        pattern = bytes(out[start:])
        repeats, rest = divmod(length, offset)
        out += pattern * repeats + pattern[:rest]


def decompress(data: bytes) -> bytes:
    """Decompress a raw snappy block."""
    expected, pos = _read_header(data)
    out = bytearray()
    end = len(data)

    while pos < end:
        tag = data[pos]
        pos += 1
        kind = tag & 0b11

        if kind == 0:
            length = tag >> 2
            if length >= 60:
                extra = length - 59
                length = _take(data, pos, extra)
                pos += extra
            length += 1
            if pos + length > end:
                raise SnappyError("literal is truncated")
            if len(out) + length > expected:
                raise SnappyError("output exceeds the announced length")
            out += data[pos : pos + length]
            pos += length
            continue

        if kind == 1:
            length = ((tag >> 2) & 0b111) + 4
            offset = ((tag >> 5) << 8) | _take(data, pos, 1)
            pos += 1
        elif kind == 2:
            length = (tag >> 2) + 1
            offset = _take(data, pos, 2)
            pos += 2
        else:
            length = (tag >> 2) + 1
            offset = _take(data, pos, 4)
            pos += 4
        _copy(out, offset, length, expected)

    if len(out) != expected:
        raise SnappyError(
            f"decompressed {len(out)} bytes, header announced {expected}"
        )
    return bytes(out)