import io

import pytest

from haste.demostream import (
    CmdHeader,
    DemoCommand,
    DemoStream,
    ReadCmdHeaderError,
    UnknownCmdError,
    read_uvarint32,
)


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


class _BytesStream(DemoStream):
    def __init__(self, data):
        self._rdr = io.BytesIO(data)

    def seek(self, offset, whence=io.SEEK_SET):
        return self._rdr.seek(offset, whence)

    def stream_position(self):
        return self._rdr.tell()

    def read_cmd_header(self):
        cmd, cmd_n = read_uvarint32(self._rdr)
        tick, tick_n = read_uvarint32(self._rdr)
        body_size, size_n = read_uvarint32(self._rdr)
        return CmdHeader(DemoCommand(cmd), False, tick, body_size, cmd_n + tick_n + size_n)

    def read_cmd(self, cmd_header):
        return self._rdr.read(cmd_header.body_size)

    def start_position(self):
        return 0

    def total_ticks(self):
        return -1


def _cmd(cmd, tick, body):
    return _uvarint(cmd) + _uvarint(tick) + _uvarint(len(body)) + body


def test_read_uvarint32_known_encoding():
    assert read_uvarint32(io.BytesIO(b"\x96\x01")) == (150, 2)


@pytest.mark.parametrize("value", [0, 1, 127, 128, 300, 2**21, 2**32 - 1])
def test_read_uvarint32_round_trip(value):
    encoded = _uvarint(value)
    assert read_uvarint32(io.BytesIO(encoded + b"\xff")) == (value, len(encoded))


def test_read_uvarint32_malformed():
    with pytest.raises(ReadCmdHeaderError):
        read_uvarint32(io.BytesIO(b"\xff" * 6))


def test_read_uvarint32_truncated():
    with pytest.raises(ReadCmdHeaderError):
        read_uvarint32(io.BytesIO(b"\x80"))
    with pytest.raises(ReadCmdHeaderError):
        read_uvarint32(io.BytesIO(b""))


def test_command_values_fixed_by_format():
    assert DemoCommand.PACKET == 7
    assert DemoCommand.IS_COMPRESSED == 64
    assert DemoCommand(13) is DemoCommand.FULL_PACKET


def test_unknown_cmd_error_carries_values():
    err = UnknownCmdError(94, 30)
    assert isinstance(err, ReadCmdHeaderError)
    assert (err.raw, err.uncompressed) == (94, 30)
    assert "raw 94" in str(err)


def test_stream_len_keeps_position():
    data = _cmd(7, 1, b"abc") + _cmd(7, 2, b"de")
    stream = _BytesStream(data)
    stream.seek(2)
    assert DemoStream.stream_len(stream) == len(data)
    assert stream.stream_position() == 2


def test_is_at_eof():
    data = _cmd(7, 1, b"abc")
    stream = _BytesStream(data)
    assert DemoStream.is_at_eof(stream) is False
    header = stream.read_cmd_header()
    assert stream.read_cmd(header) == b"abc"
    assert DemoStream.is_at_eof(stream) is True


def test_unread_cmd_header_rewinds():
    stream = _BytesStream(_cmd(8, 300, b"xyz"))
    header = stream.read_cmd_header()
    assert header == CmdHeader(DemoCommand.SIGNON_PACKET, False, 300, 3, 4)
    assert stream.stream_position() == header.size
    DemoStream.unread_cmd_header(stream, header)
    assert stream.stream_position() == 0
    assert stream.read_cmd_header() == header


def test_skip_cmd_moves_to_next_header():
    stream = _BytesStream(_cmd(7, 1, b"abc") + _cmd(8, 2, b"d"))
    first = stream.read_cmd_header()
    DemoStream.skip_cmd(stream, first)
    second = stream.read_cmd_header()
    assert (second.cmd, second.tick, second.body_size) == (DemoCommand.SIGNON_PACKET, 2, 1)


def test_demo_stream_is_abstract():
    with pytest.raises(TypeError):
        DemoStream()