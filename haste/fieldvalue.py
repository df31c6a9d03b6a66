"""Decoded entity field values and their conversions."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Any

__all__ = ["FieldKind", "FieldValue", "FieldValueConversionError"]


class FieldKind(enum.Enum):
    I64 = "I64"
    U64 = "U64"
    F32 = "F32"
    BOOL = "Bool"
    VECTOR3 = "Vector3"
    VECTOR2 = "Vector2"
    VECTOR4 = "Vector4"
    QANGLE = "QAngle"
    STRING = "String"


class FieldValueConversionError(Exception):
    """Raised on incompatible or out-of-range conversions."""

    def __init__(self) -> None:
        super().__init__(
            "incompatible types or out of range integer type conversion attempted"
        )


_INT_RANGES: dict[str, tuple[FieldKind, int, int]] = {
    "i8": (FieldKind.I64, -(1 << 7), (1 << 7) - 1),
    "i16": (FieldKind.I64, -(1 << 15), (1 << 15) - 1),
    "i32": (FieldKind.I64, -(1 << 31), (1 << 31) - 1),
    "i64": (FieldKind.I64, -(1 << 63), (1 << 63) - 1),
    "u8": (FieldKind.U64, 0, (1 << 8) - 1),
    "u16": (FieldKind.U64, 0, (1 << 16) - 1),
    "u32": (FieldKind.U64, 0, (1 << 32) - 1),
    "u64": (FieldKind.U64, 0, (1 << 64) - 1),
}

_DIRECT: dict[str, tuple[FieldKind, ...]] = {
    "f32": (FieldKind.F32,),
    "bool": (FieldKind.BOOL,),
    "vec2": (FieldKind.VECTOR2,),
    "vec3": (FieldKind.VECTOR3, FieldKind.QANGLE),
    "vec4": (FieldKind.VECTOR4,),
    "str": (FieldKind.STRING,),
}

_VECTOR_LEN = {
    FieldKind.VECTOR2: 2,
    FieldKind.VECTOR3: 3,
    FieldKind.VECTOR4: 4,
    FieldKind.QANGLE: 3,
}


def _format_exponent(text: str) -> str:
    mantissa, _, exponent = text.partition("e")
    sign = "-" if exponent.startswith("-") else ""
    return f"{mantissa}e{sign}{exponent.lstrip('+-').lstrip('0') or '0'}"


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    # shortest decimal that still identifies the single-precision value
    text = repr(value)
    for precision in range(1, 10):
        candidate = float(f"{value:.{precision}g}")
        if FieldValue._to_f32(candidate) == value:
            text = repr(candidate)
            break
    if "e" in text:
        return _format_exponent(text)
    return text


def _format_str(value: str) -> str:
    escapes = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\r": "\\r", "\t": "\\t", "\0": "\\0"}
    return '"' + "".join(escapes.get(ch, ch) for ch in value) + '"'


def _format_inner(kind: FieldKind, value: Any) -> str:
    if kind is FieldKind.BOOL:
        return "true" if value else "false"
    if kind is FieldKind.F32:
        return _format_float(value)
    if kind is FieldKind.STRING:
        return _format_str(value)
    if kind in _VECTOR_LEN:
        return "[" + ", ".join(_format_float(v) for v in value) + "]"
    return str(value)


@dataclass(frozen=True)
class FieldValue:
    """A value decoded from an entity field, tagged with its kind."""

    kind: FieldKind
    value: Any

    def __post_init__(self) -> None:
        expected = _VECTOR_LEN.get(self.kind)
        if expected is not None:
            vec = tuple(float(v) for v in self.value)
            if len(vec) != expected:
                raise ValueError(f"{self.kind.value} needs {expected} components")
            object.__setattr__(self, "value", vec)

    @staticmethod
    def _to_f32(value: float) -> float:
        import struct

        return struct.unpack("<f", struct.pack("<f", value))[0]

    def convert(self, target: str) -> Any:
        """Convert to ``target``.

        Targets are ``i8``..``i64``, ``u8``..``u64``, ``f32``, ``bool``,
        ``vec2``, ``vec3`` (also from a QAngle), ``vec4`` and ``str``.
        """
        int_range = _INT_RANGES.get(target)
        if int_range is not None:
            kind, low, high = int_range
            if self.kind is not kind or not low <= self.value <= high:
                raise FieldValueConversionError()
            return self.value

        kinds = _DIRECT.get(target)
        if kinds is None:
            raise ValueError(f"unknown conversion target {target!r}")
        if self.kind not in kinds:
            raise FieldValueConversionError()
        return self.value

    def __str__(self) -> str:
        return _format_inner(self.kind, self.value)

    def __repr__(self) -> str:
        return f"{self.kind.value}({_format_inner(self.kind, self.value)})"