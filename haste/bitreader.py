"""Bit-level reader for the entity and field-path bit streams."""

from __future__ import annotations

import math
import struct

__all__ = ["BitReader", "BitReaderOverflowError"]

# coordinate encoding
_COORD_INTEGER_BITS = 14
_COORD_FRACTIONAL_BITS = 5
_COORD_DENOMINATOR = float(1 << _COORD_FRACTIONAL_BITS)
_COORD_RESOLUTION = 1.0 / _COORD_DENOMINATOR

# normal encoding
_NORMAL_FRACTIONAL_BITS = 11
_NORMAL_DENOMINATOR = float((1 << _NORMAL_FRACTIONAL_BITS) - 1)

_F32 = struct.Struct("<f")


def _f32(value: float) -> float:
    """Round a Python float to single precision."""
    return _F32.unpack(_F32.pack(value))[0]


_NORMAL_RESOLUTION = _f32(1.0 / _NORMAL_DENOMINATOR)


class BitReaderOverflowError(Exception):
    """Raised when reads went past the end of the buffer."""

    def __init__(self) -> None:
        super().__init__("attempted to read past the end of the buffer")


class BitReader:
    """Reads values bit by bit, least significant bit first.

    Bounds are not checked on every read: reading past the end yields zero
    bits, and :meth:`is_overflowed` reports whether that happened.
    """

    __slots__ = ("_data", "_num_bits", "_pos")

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._num_bits = len(self._data) * 8
        self._pos = 0

    def num_bits_left(self) -> int:
        """Number of bits that can still be read without overflowing."""
        return max(self._num_bits - self._pos, 0)

    def read_ubit64(self, num_bits: int) -> int:
        """Read an unsigned integer of ``num_bits`` bits (at most 64)."""
        if not 0 <= num_bits <= 64:
            raise ValueError(f"cannot read {num_bits} bits at once")
        if num_bits == 0:
            return 0
        pos = self._pos
        start = pos >> 3
        end = (pos + num_bits + 7) >> 3
        chunk = int.from_bytes(self._data[start:end], "little")
        self._pos = pos + num_bits
        return (chunk >> (pos & 7)) & ((1 << num_bits) - 1)

    def read_bool(self) -> bool:
        return self.read_ubit64(1) == 1

    def read_byte(self) -> int:
        return self.read_ubit64(8)

    def read_bits(self, num_bits: int) -> bytes:
        """Read ``num_bits`` bits into bytes; the last byte holds the remainder."""
        full, rest = divmod(num_bits, 8)
        out = bytearray(self.read_byte() for _ in range(full))
        if rest:
            out.append(self.read_ubit64(rest))
        return bytes(out)

    def read_bytes(self, num_bytes: int) -> bytes:
        return self.read_bits(num_bytes * 8)

    def is_overflowed(self) -> None:
        """Raise :class:`BitReaderOverflowError` if any read went out of bounds."""
        if self._pos > self._num_bits:
            raise BitReaderOverflowError()

    def _read_uvarint(self, max_bytes: int, width: int) -> int:
        result = 0
        for count in range(max_bytes):
            byte = self.read_byte()
            result |= (byte & 0x7F) << (7 * count)
            if not byte & 0x80:
                break
        return result & ((1 << width) - 1)

    def read_uvarint32(self) -> int:
        return self._read_uvarint(5, 32)

    def read_uvarint64(self) -> int:
        return self._read_uvarint(10, 64)

    def read_varint32(self) -> int:
        value = self.read_uvarint32()
        return (value >> 1) ^ -(value & 1)

    def read_varint64(self) -> int:
        value = self.read_uvarint64()
        return (value >> 1) ^ -(value & 1)

    def read_ubitvar(self) -> int:
        """Read the variable-length integer with a 2-bit size selector."""
        ret = self.read_ubit64(6)
        selector = ret & (16 | 32)
        if selector == 16:
            ret = (ret & 15) | (self.read_ubit64(4) << 4)
        elif selector == 32:
            ret = (ret & 15) | (self.read_ubit64(8) << 4)
        elif selector == 48:
            ret = (ret & 15) | (self.read_ubit64(32 - 4) << 4)
        return ret & 0xFFFFFFFF

    def read_bitfloat(self) -> float:
        return _F32.unpack(struct.pack("<I", self.read_ubit64(32)))[0]

    def read_bitcoord(self) -> float:
        has_intval = self.read_bool()
        has_fractval = self.read_bool()
        if not (has_intval or has_fractval):
            return 0.0

        signbit = self.read_bool()
        intval = self.read_ubit64(_COORD_INTEGER_BITS) + 1 if has_intval else 0
        fractval = self.read_ubit64(_COORD_FRACTIONAL_BITS) if has_fractval else 0

        value = _f32(intval + fractval * _COORD_RESOLUTION)
        return -value if signbit else value

    def read_bitnormal(self) -> float:
        signbit = self.read_bool()
        fractval = self.read_ubit64(_NORMAL_FRACTIONAL_BITS)
        value = _f32(fractval * _NORMAL_RESOLUTION)
        return -value if signbit else value

    def read_bitvec3coord(self) -> tuple[float, float, float]:
        xflag = self.read_bool()
        yflag = self.read_bool()
        zflag = self.read_bool()
        x = self.read_bitcoord() if xflag else 0.0
        y = self.read_bitcoord() if yflag else 0.0
        z = self.read_bitcoord() if zflag else 0.0
        return (x, y, z)

    def read_bitvec3normal(self) -> tuple[float, float, float]:
        xflag = self.read_bool()
        yflag = self.read_bool()
        x = self.read_bitnormal() if xflag else 0.0
        y = self.read_bitnormal() if yflag else 0.0

        # the first two imply the third (but not its sign)
        znegative = self.read_bool()

        sum_sq = _f32(_f32(x * x) + _f32(y * y))
        z = _f32(math.sqrt(_f32(1.0 - sum_sq))) if sum_sq < 1.0 else 0.0
        if znegative:
            z = -z
        return (x, y, z)

    def read_bitangle(self, num_bits: int) -> float:
        shift = float(1 << num_bits)
        u = self.read_ubit64(num_bits)
        return _f32(_f32(u) * _f32(360.0 / shift))

    def read_string(self, max_len: int, line: bool = False) -> bytes:
        """Read a null-terminated string (or up to a newline when ``line``).

        Always consumes the string to its terminator. ``max_len`` counts the
        terminator, so at most ``max_len - 1`` characters fit; a longer string
        raises :class:`ValueError`.
        """
        if max_len <= 0:
            raise ValueError("max_len must be positive")

        out = bytearray()
        too_small = False
        while True:
            val = self.read_byte()
            if val == 0 or (line and val == ord("\n")):
                break
            if len(out) < max_len - 1:
                out.append(val)
            else:
                too_small = True

        if too_small:
            raise ValueError(f"string does not fit into {max_len} bytes")
        return bytes(out)

    def read_ubitvarfp(self) -> int:
        """Read the variable-length integer used by field-path operations."""
        if self.read_bool():
            ret = self.read_ubit64(2)
        elif self.read_bool():
            ret = self.read_ubit64(4)
        elif self.read_bool():
            ret = self.read_ubit64(10)
        elif self.read_bool():
            ret = self.read_ubit64(17)
        else:
            ret = self.read_ubit64(31)
        return ret & 0xFFFFFFFF