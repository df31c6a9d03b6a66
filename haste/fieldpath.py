"""Field paths and the Huffman-coded operations that produce them."""

from __future__ import annotations

import heapq
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional, Union

from haste.bitreader import BitReader

__all__ = ["FieldPath", "read_field_paths"]

_MAX_DEPTH = 7
_MAX_FIELD_PATHS = 4096


def _default_data() -> list[int]:
    return [255, 0, 0, 0, 0, 0, 0]


@dataclass
class FieldPath:
    """A path of component indices into a flattened serializer."""

    data: list[int] = field(default_factory=_default_data)
    last: int = 0
    finished: bool = False

    def _inc_at(self, index: int, value: int) -> None:
        self.data[index] = (self.data[index] + value) & 0xFF

    def _inc_last(self, value: int) -> None:
        self._inc_at(self.last, value)

    def _push(self, value: int) -> None:
        if self.last + 1 >= _MAX_DEPTH:
            raise ValueError(f"field path cannot be deeper than {_MAX_DEPTH}")
        self.last += 1
        self.data[self.last] = value & 0xFF

    def _pop(self, count: int) -> None:
        if count > self.last:
            raise ValueError(f"cannot pop {count} components from depth {self.last}")
        for _ in range(count):
            self.data[self.last] = 0
            self.last -= 1

    def _copy(self) -> FieldPath:
        return FieldPath(list(self.data), self.last, self.finished)

    def get(self, index: int) -> Optional[int]:
        """Component at ``index``, or None when outside the fixed storage."""
        if 0 <= index < _MAX_DEPTH:
            return self.data[index]
        return None

    def __iter__(self) -> Iterator[int]:
        return iter(self.data[: self.last + 1])


_FieldOp = Callable[[FieldPath, BitReader], None]


def _plus_one(fp: FieldPath, br: BitReader) -> None:
    fp._inc_last(1)


def _plus_two(fp: FieldPath, br: BitReader) -> None:
    fp._inc_last(2)


def _plus_three(fp: FieldPath, br: BitReader) -> None:
    fp._inc_last(3)


def _plus_four(fp: FieldPath, br: BitReader) -> None:
    fp._inc_last(4)


def _plus_n(fp: FieldPath, br: BitReader) -> None:
    fp._inc_last(br.read_ubitvarfp() + 5)


def _push_one_left_delta_zero_right_zero(fp: FieldPath, br: BitReader) -> None:
    fp._push(0)


def _push_one_left_delta_zero_right_non_zero(fp: FieldPath, br: BitReader) -> None:
    fp._push(br.read_ubitvarfp())


def _push_one_left_delta_one_right_zero(fp: FieldPath, br: BitReader) -> None:
    fp._inc_last(1)
    fp._push(0)


def _push_one_left_delta_one_right_non_zero(fp: FieldPath, br: BitReader) -> None:
    fp._inc_last(1)
    fp._push(br.read_ubitvarfp())


def _push_one_left_delta_n_right_zero(fp: FieldPath, br: BitReader) -> None:
    fp._inc_last(br.read_ubitvarfp())
    fp._push(0)


def _push_one_left_delta_n_right_non_zero(fp: FieldPath, br: BitReader) -> None:
    fp._inc_last(br.read_ubitvarfp() + 2)
    fp._push(br.read_ubitvarfp() + 1)


def _push_one_left_delta_n_right_non_zero_pack6_bits(fp: FieldPath, br: BitReader) -> None:
    fp._inc_last(br.read_ubit64(3) + 2)
    fp._push(br.read_ubit64(3) + 1)


def _push_one_left_delta_n_right_non_zero_pack8_bits(fp: FieldPath, br: BitReader) -> None:
    fp._inc_last(br.read_ubit64(4) + 2)
    fp._push(br.read_ubit64(4) + 1)


def _push_values(fp: FieldPath, read: Callable[[], int], count: int) -> None:
    for _ in range(count):
        fp._push(read())


def _push_two_left_delta_zero(fp: FieldPath, br: BitReader) -> None:
    _push_values(fp, br.read_ubitvarfp, 2)


def _push_two_left_delta_one(fp: FieldPath, br: BitReader) -> None:
    fp._inc_last(1)
    _push_values(fp, br.read_ubitvarfp, 2)


def _push_two_left_delta_n(fp: FieldPath, br: BitReader) -> None:
    fp._inc_last(br.read_ubitvar() + 2)
    _push_values(fp, br.read_ubitvarfp, 2)


def _push_two_pack5_left_delta_zero(fp: FieldPath, br: BitReader) -> None:
    _push_values(fp, lambda: br.read_ubit64(5), 2)


def _push_two_pack5_left_delta_one(fp: FieldPath, br: BitReader) -> None:
    fp._inc_last(1)
    _push_values(fp, lambda: br.read_ubit64(5), 2)


def _push_two_pack5_left_delta_n(fp: FieldPath, br: BitReader) -> None:
    fp._inc_last(br.read_ubitvar() + 2)
    _push_values(fp, lambda: br.read_ubit64(5), 2)


def _push_three_left_delta_zero(fp: FieldPath, br: BitReader) -> None:
    _push_values(fp, br.read_ubitvarfp, 3)


def _push_three_left_delta_one(fp: FieldPath, br: BitReader) -> None:
    fp._inc_last(1)
    _push_values(fp, br.read_ubitvarfp, 3)


def _push_three_left_delta_n(fp: FieldPath, br: BitReader) -> None:
    fp._inc_last(br.read_ubitvar() + 2)
    _push_values(fp, br.read_ubitvarfp, 3)


def _push_three_pack5_left_delta_zero(fp: FieldPath, br: BitReader) -> None:
    _push_values(fp, lambda: br.read_ubit64(5), 3)


def _push_three_pack5_left_delta_one(fp: FieldPath, br: BitReader) -> None:
    fp._inc_last(1)
    _push_values(fp, lambda: br.read_ubit64(5), 3)


def _push_three_pack5_left_delta_n(fp: FieldPath, br: BitReader) -> None:
    fp._inc_last(br.read_ubitvar() + 2)
    _push_values(fp, lambda: br.read_ubit64(5), 3)


def _push_n(fp: FieldPath, br: BitReader) -> None:
    count = br.read_ubitvar()
    fp._inc_last(br.read_ubitvar())
    _push_values(fp, br.read_ubitvarfp, count)


def _non_topo_update(fp: FieldPath, br: BitReader, read_delta: Callable[[], int]) -> None:
    for index in range(fp.last + 1):
        if br.read_bool():
            fp._inc_at(index, read_delta())


def _push_n_and_non_topographical(fp: FieldPath, br: BitReader) -> None:
    _non_topo_update(fp, br, lambda: br.read_varint32() + 1)
    count = br.read_ubitvar()
    _push_values(fp, br.read_ubitvarfp, count)


def _pop_one_plus_one(fp: FieldPath, br: BitReader) -> None:
    fp._pop(1)
    fp._inc_last(1)


def _pop_one_plus_n(fp: FieldPath, br: BitReader) -> None:
    fp._pop(1)
    fp._inc_last(br.read_ubitvarfp() + 1)


def _pop_all_but_one_plus_one(fp: FieldPath, br: BitReader) -> None:
    fp._pop(fp.last)
    fp._inc_last(1)


def _pop_all_but_one_plus_n(fp: FieldPath, br: BitReader) -> None:
    fp._pop(fp.last)
    fp._inc_last(br.read_ubitvarfp() + 1)


def _pop_all_but_one_plus_n_pack3_bits(fp: FieldPath, br: BitReader) -> None:
    fp._pop(fp.last)
    fp._inc_last(br.read_ubit64(3) + 1)


def _pop_all_but_one_plus_n_pack6_bits(fp: FieldPath, br: BitReader) -> None:
    fp._pop(fp.last)
    fp._inc_last(br.read_ubit64(6) + 1)


def _pop_n_plus_one(fp: FieldPath, br: BitReader) -> None:
    fp._pop(br.read_ubitvarfp())
    fp._inc_last(1)


def _pop_n_plus_n(fp: FieldPath, br: BitReader) -> None:
    fp._pop(br.read_ubitvarfp())
    fp._inc_last(br.read_varint32())


def _pop_n_and_non_topographical(fp: FieldPath, br: BitReader) -> None:
    fp._pop(br.read_ubitvarfp())
    _non_topo_update(fp, br, br.read_varint32)


def _non_topo_complex(fp: FieldPath, br: BitReader) -> None:
    _non_topo_update(fp, br, br.read_varint32)


def _non_topo_penultimate_plus_one(fp: FieldPath, br: BitReader) -> None:
    if fp.last == 0:
        raise ValueError("field path has no penultimate component")
    fp._inc_at(fp.last - 1, 1)


def _non_topo_complex_pack4_bits(fp: FieldPath, br: BitReader) -> None:
    _non_topo_update(fp, br, lambda: br.read_ubit64(4) - 7)


def _field_path_encode_finish(fp: FieldPath, br: BitReader) -> None:
    fp.finished = True


_FIELDOP_DESCRIPTORS: tuple[tuple[int, _FieldOp], ...] = (
    (36271, _plus_one),
    (10334, _plus_two),
    (1375, _plus_three),
    (646, _plus_four),
    (4128, _plus_n),
    (35, _push_one_left_delta_zero_right_zero),
    (3, _push_one_left_delta_zero_right_non_zero),
    (521, _push_one_left_delta_one_right_zero),
    (2942, _push_one_left_delta_one_right_non_zero),
    (560, _push_one_left_delta_n_right_zero),
    (471, _push_one_left_delta_n_right_non_zero),
    (10530, _push_one_left_delta_n_right_non_zero_pack6_bits),
    (251, _push_one_left_delta_n_right_non_zero_pack8_bits),
    (1, _push_two_left_delta_zero),
    (1, _push_two_pack5_left_delta_zero),
    (1, _push_three_left_delta_zero),
    (1, _push_three_pack5_left_delta_zero),
    (1, _push_two_left_delta_one),
    (1, _push_two_pack5_left_delta_one),
    (1, _push_three_left_delta_one),
    (1, _push_three_pack5_left_delta_one),
    (1, _push_two_left_delta_n),
    (1, _push_two_pack5_left_delta_n),
    (1, _push_three_left_delta_n),
    (1, _push_three_pack5_left_delta_n),
    (1, _push_n),
    (310, _push_n_and_non_topographical),
    (2, _pop_one_plus_one),
    (1, _pop_one_plus_n),
    (1837, _pop_all_but_one_plus_one),
    (149, _pop_all_but_one_plus_n),
    (300, _pop_all_but_one_plus_n_pack3_bits),
    (634, _pop_all_but_one_plus_n_pack6_bits),
    (1, _pop_n_plus_one),
    (1, _pop_n_plus_n),
    (1, _pop_n_and_non_topographical),
    (76, _non_topo_complex),
    (271, _non_topo_penultimate_plus_one),
    (99, _non_topo_complex_pack4_bits),
    (25474, _field_path_encode_finish),
)

# A branch is a (left, right) tuple; a leaf is the operation itself.
_Node = Union[_FieldOp, tuple]


def _build_fieldop_hierarchy() -> _Node:
    # lightest first; among equal weights the most recently numbered node first
    heap: list[tuple[int, int, _Node]] = []
    num = 0
    for weight, op in _FIELDOP_DESCRIPTORS:
        heapq.heappush(heap, (weight, -num, op))
        num += 1

    while len(heap) > 1:
        left_weight, _, left = heapq.heappop(heap)
        right_weight, _, right = heapq.heappop(heap)
        heapq.heappush(heap, (left_weight + right_weight, -num, (left, right)))
        num += 1

    return heap[0][2]


_FIELDOP_HIERARCHY = _build_fieldop_hierarchy()


def _op_codes() -> dict[str, tuple[bool, ...]]:
    """Huffman code of every operation, keyed by operation name."""
    codes: dict[str, tuple[bool, ...]] = {}
    stack: list[tuple[_Node, tuple[bool, ...]]] = [(_FIELDOP_HIERARCHY, ())]
    while stack:
        node, prefix = stack.pop()
        if isinstance(node, tuple):
            left, right = node
            stack.append((left, prefix + (False,)))
            stack.append((right, prefix + (True,)))
        else:
            codes[node.__name__.lstrip("_")] = prefix
    return codes


def read_field_paths(br: BitReader) -> list[FieldPath]:
    """Decode field paths until the finishing operation is read."""
    fp = FieldPath()
    paths: list[FieldPath] = []
    node: _Node = _FIELDOP_HIERARCHY

    while True:
        left, right = node
        node = right if br.read_bool() else left
        if isinstance(node, tuple):
            continue

        node(fp, br)
        if fp.finished:
            return paths
        if len(paths) >= _MAX_FIELD_PATHS:
            raise ValueError(f"more than {_MAX_FIELD_PATHS} field paths")
        paths.append(fp._copy())
        node = _FIELDOP_HIERARCHY