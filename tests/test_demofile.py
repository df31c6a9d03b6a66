import io
import struct

import pytest

from haste.demofile import (
    DemoFile,
    DemoHeaderError,
    FileInfo,
    read_demo_header,
)
from haste.demostream import (
    DecodeCmdError,
    DemoCommand,
    ReadCmdError,
    UnknownCmdError,
)

STAMP = b"PBDEMS2\0"


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


def _header(fileinfo_offset, spawngroups_offset=0, stamp=STAMP):
    return stamp + struct.pack("<ii", fileinfo_offset, spawngroups_offset)


def _cmd(cmd, tick, body):
    return _uvarint(cmd) + _uvarint(tick) + _uvarint(len(body)) + body


def _file_info_body(ticks, frames=None, time=None):
    body = b""
    if time is not None:
        body += b"\x0d" + struct.pack("<f", time)
    body += b"\x10" + _uvarint(ticks & 0xFFFFFFFFFFFFFFFF)
    if frames is not None:
        body += b"\x18" + _uvarint(frames)
    return body


def _demo(commands, file_info_body):
    payload = b"".join(commands)
    offset = 16 + len(payload)
    return _header(offset) + payload + _cmd(2, 0, file_info_body)


def test_demo_header_fields():
    demo = DemoFile(io.BytesIO(_header(1234, 99)))
    assert demo.demo_header.demofilestamp == STAMP
    assert demo.demo_header.fileinfo_offset == 1234
    assert demo.demo_header.spawngroups_offset == 99


def test_invalid_stamp():
    with pytest.raises(DemoHeaderError) as info:
        read_demo_header(io.BytesIO(_header(0, stamp=b"HL2DEMO\0")))
    assert info.value.got == b"HL2DEMO\0"


def test_truncated_header():
    with pytest.raises(DemoHeaderError):
        DemoFile(io.BytesIO(STAMP + b"\x00\x00"))


def test_start_position_is_after_header():
    demo = DemoFile(io.BytesIO(_header(0)))
    assert demo.start_position() == 16
    assert demo.stream_position() == demo.start_position()


def test_read_plain_cmd():
    demo = DemoFile(io.BytesIO(_demo([_cmd(7, 5, b"abc")], _file_info_body(10))))
    header = demo.read_cmd_header()
    assert header.cmd is DemoCommand.PACKET
    assert header.tick == 5
    assert header.body_size == 3
    assert header.size == 3
    assert not header.body_compressed
    assert demo.read_cmd(header) == b"abc"


def test_read_compressed_cmd():
    body = b"\x05\x10hello"
    demo = DemoFile(io.BytesIO(_header(0) + _cmd(7 | 64, 1, body)))
    header = demo.read_cmd_header()
    assert header.body_compressed
    assert header.cmd is DemoCommand.PACKET
    assert header.body_size == len(body)
    assert demo.read_cmd(header) == b"hello"


def test_pre_game_tick_is_negative_one():
    demo = DemoFile(io.BytesIO(_header(0) + _cmd(1, 0xFFFFFFFF, b"")))
    header = demo.read_cmd_header()
    assert header.tick == -1
    assert header.cmd is DemoCommand.FILE_HEADER


@pytest.mark.parametrize("raw, uncompressed", [(30, 30), (30 | 64, 30)])
def test_unknown_cmd(raw, uncompressed):
    demo = DemoFile(io.BytesIO(_header(0) + _cmd(raw, 0, b"")))
    with pytest.raises(UnknownCmdError) as info:
        demo.read_cmd_header()
    assert (info.value.raw, info.value.uncompressed) == (raw, uncompressed)


def test_truncated_body():
    data = _header(0) + _uvarint(7) + _uvarint(0) + _uvarint(10) + b"abc"
    demo = DemoFile(io.BytesIO(data))
    header = demo.read_cmd_header()
    with pytest.raises(ReadCmdError):
        demo.read_cmd(header)


def test_corrupt_compressed_body():
    demo = DemoFile(io.BytesIO(_header(0) + _cmd(7 | 64, 0, b"\x06\x10hello")))
    header = demo.read_cmd_header()
    with pytest.raises(ReadCmdError):
        demo.read_cmd(header)


def test_total_ticks_restores_position():
    demo = DemoFile(io.BytesIO(_demo([_cmd(7, 5, b"abc")], _file_info_body(12345))))
    start = demo.stream_position()
    assert demo.total_ticks() == 12345
    assert demo.stream_position() == start
    header = demo.read_cmd_header()
    assert demo.read_cmd(header) == b"abc"


def test_file_info_fields():
    body = _file_info_body(-1, frames=77, time=1.5)
    demo = DemoFile(io.BytesIO(_demo([], body)))
    assert demo.file_info() == FileInfo(
        playback_time=1.5, playback_ticks=-1, playback_frames=77
    )


def test_file_info_missing_fields_default():
    demo = DemoFile(io.BytesIO(_demo([], b"")))
    assert demo.file_info() == FileInfo()
    assert demo.total_ticks() == 0


def test_file_info_bad_protobuf():
    demo = DemoFile(io.BytesIO(_demo([], b"\x10")))
    with pytest.raises(DecodeCmdError):
        demo.file_info()
    assert demo.stream_position() == 16


def test_skip_and_eof():
    data = _header(0) + _cmd(7, 1, b"abc") + _cmd(8, 2, b"de")
    demo = DemoFile(io.BytesIO(data))
    first = demo.read_cmd_header()
    demo.skip_cmd(first)
    second = demo.read_cmd_header()
    assert second.cmd is DemoCommand.SIGNON_PACKET
    assert demo.read_cmd(second) == b"de"
    assert demo.is_at_eof()
    assert demo.stream_len() == len(data)