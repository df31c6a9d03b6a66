import pytest

from haste.snappy import SnappyError, decompress, decompress_len


def _uvarint(value):
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _literal_block(chunk):
    n = len(chunk) - 1
    if n < 60:
        return bytes([n << 2]) + chunk
    size = (n.bit_length() + 7) // 8
    return bytes([(59 + size) << 2]) + n.to_bytes(size, "little") + chunk


def _compress_literals(data, chunk_size=1000):
    blocks = b"".join(
        _literal_block(data[start : start + chunk_size])
        for start in range(0, len(data), chunk_size)
    )
    return _uvarint(len(data)) + blocks


def test_literal():
    assert decompress(b"\x05\x10hello") == b"hello"


def test_decompress_len_reads_header():
    assert decompress_len(b"\x05\x10hello") == 5
    assert decompress_len(_uvarint(300) + b"rest") == 300


def test_one_byte_offset_copy():
    assert decompress(b"\x09\x08abc\x09\x03") == b"abcabcabc"


def test_overlapping_copy():
    assert decompress(b"\x05\x00a\x01\x01") == b"aaaaa"


def test_two_byte_offset_copy():
    assert decompress(b"\x08\x0cabcd\x0e\x04\x00") == b"abcdabcd"


def test_four_byte_offset_copy():
    assert decompress(b"\x08\x0cabcd\x0f\x04\x00\x00\x00") == b"abcdabcd"


@pytest.mark.parametrize("size", [0, 1, 59, 60, 61, 256, 5000])
def test_literal_round_trip(size):
    data = bytes(i % 251 for i in range(size))
    compressed = _compress_literals(data)
    assert decompress_len(compressed) == size
    assert decompress(compressed) == data


@pytest.mark.parametrize(
    "block",
    [
        b"\x05\x00a\x01\x00",  # zero offset
        b"\x05\x00a\x01\x05",  # offset past the output
        b"\x06\x10hello",  # shorter than announced
        b"\x03\x10hello",  # longer than announced
        b"\x05\x10hel",  # truncated literal
        b"\x08\x0cabcd\x0e\x04",  # truncated offset
    ],
)
def test_malformed_blocks(block):
    with pytest.raises(SnappyError):
        decompress(block)


def test_empty_input():
    with pytest.raises(SnappyError):
        decompress_len(b"")
    with pytest.raises(SnappyError):
        decompress(b"")


def test_header_too_long():
    with pytest.raises(SnappyError):
        decompress_len(b"\xff\xff\xff\xff\xff\x01")