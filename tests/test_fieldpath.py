from fractions import Fraction

import pytest

from haste.bitreader import BitReader
from haste.fieldpath import (
    FieldPath,
    _FIELDOP_DESCRIPTORS,
    _op_codes,
    read_field_paths,
)


class _BitWriter:
    def __init__(self) -> None:
        self.bits: list[bool] = []

    def op(self, name: str) -> "_BitWriter":
        self.bits.extend(_op_codes()[name])
        return self

    def write(self, value: int, num_bits: int) -> "_BitWriter":
        self.bits.extend(bool((value >> i) & 1) for i in range(num_bits))
        return self

    def reader(self) -> BitReader:
        out = bytearray((len(self.bits) + 7) // 8)
        for pos, bit in enumerate(self.bits):
            if bit:
                out[pos // 8] |= 1 << (pos % 8)
        return BitReader(bytes(out))


def _decode(writer: _BitWriter) -> list[list[int]]:
    return [list(fp) for fp in read_field_paths(writer.reader())]


def test_default_field_path():
    fp = FieldPath()
    assert list(fp) == [255]
    assert fp.get(0) == 255
    assert fp.last == 0
    assert fp.finished is False


def test_get_outside_storage_is_none():
    fp = FieldPath()
    assert fp.get(1) == 0
    assert fp.get(7) is None
    assert fp.get(-1) is None


def test_huffman_codes_are_prefix_free_and_complete():
    codes = list(_op_codes().values())
    assert len(codes) == len(_FIELDOP_DESCRIPTORS)
    for a in codes:
        for b in codes:
            if a is not b:
                assert b[: len(a)] != a
    assert sum(Fraction(1, 2 ** len(code)) for code in codes) == 1


def test_heavier_ops_get_shorter_codes():
    codes = _op_codes()
    lengths = [(w, len(codes[op.__name__.lstrip("_")])) for w, op in _FIELDOP_DESCRIPTORS]
    for wa, la in lengths:
        for wb, lb in lengths:
            if wa > wb:
                assert la <= lb


def test_finish_only_yields_no_paths():
    assert _decode(_BitWriter().op("field_path_encode_finish")) == []


def test_plus_one_from_root_wraps_to_zero():
    w = _BitWriter().op("plus_one").op("field_path_encode_finish")
    assert _decode(w) == [[0]]


def test_successive_plus_one_increment_last():
    w = _BitWriter()
    for _ in range(5):
        w.op("plus_one")
    paths = _decode(w.op("field_path_encode_finish"))
    assert len(paths) == 5
    for prev, cur in zip(paths, paths[1:]):
        assert cur[0] == prev[0] + 1


def test_component_wraps_at_byte():
    w = _BitWriter()
    for _ in range(257):
        w.op("plus_one")
    paths = _decode(w.op("field_path_encode_finish"))
    assert paths[256] == paths[0]


def test_push_and_pop():
    w = (
        _BitWriter()
        .op("plus_one")
        .op("push_one_left_delta_zero_right_zero")
        .op("pop_all_but_one_plus_one")
        .op("field_path_encode_finish")
    )
    assert _decode(w) == [[0], [0, 0], [1]]


def test_pack6_reads_fixed_width_deltas():
    w = (
        _BitWriter()
        .op("plus_one")
        .op("push_one_left_delta_n_right_non_zero_pack6_bits")
        .write(3, 3)
        .write(4, 3)
        .op("field_path_encode_finish")
    )
    paths = _decode(w)
    assert paths[1] == [paths[0][0] + 3 + 2, 4 + 1]


def test_returned_paths_are_independent():
    w = (
        _BitWriter()
        .op("plus_one")
        .op("push_one_left_delta_zero_right_zero")
        .op("field_path_encode_finish")
    )
    first, second = read_field_paths(w.reader())
    assert first.last == 0
    assert second.last == 1
    assert first.get(0) == second.get(0)


def test_pop_past_root_raises():
    w = _BitWriter().op("pop_one_plus_one").op("field_path_encode_finish")
    with pytest.raises(ValueError):
        read_field_paths(w.reader())


def test_push_past_max_depth_raises():
    w = _BitWriter()
    for _ in range(7):
        w.op("push_one_left_delta_zero_right_zero")
    w.op("field_path_encode_finish")
    with pytest.raises(ValueError):
        read_field_paths(w.reader())


def test_penultimate_at_root_raises():
    w = _BitWriter().op("non_topo_penultimate_plus_one").op("field_path_encode_finish")
    with pytest.raises(ValueError):
        read_field_paths(w.reader())


def test_too_many_paths_raises():
    w = _BitWriter()
    for _ in range(4097):
        w.op("plus_one")
    w.op("field_path_encode_finish")
    with pytest.raises(ValueError):
        read_field_paths(w.reader())