# haste

Readers for Source 2 demo files (`.dem`) and for recorded or live TV broadcasts.

The package provides low-level building blocks: a bit reader for the engine's
bit-packed encodings, field path decoding, typed field values, a raw snappy
decompressor, and command streams that walk a demo or a broadcast command by
command. It has no runtime dependencies beyond the standard library; the tests
use `pytest` and `pytest-asyncio` (the `test` extra).

## Reading a demo file

```python
import io
from haste.demofile import DemoFile

with open("match.dem", "rb") as fh:
    demo = DemoFile(fh)
    print(demo.demo_header)            # DemoHeader(demofilestamp, fileinfo_offset, spawngroups_offset)
    print("total ticks:", demo.total_ticks())

    demo.seek(demo.start_position(), io.SEEK_SET)
    while not demo.is_at_eof():
        header = demo.read_cmd_header()
        body = demo.read_cmd(header)   # snappy-decompressed when the header says so
        print(header.cmd, header.tick, len(body))
```

- A file that does not start with the `PBDEMS2` stamp raises `DemoHeaderError`.
- `read_cmd_header` returns a `CmdHeader` (`cmd`, `body_compressed`, `tick`,
  `body_size`, `size`); an unknown command raises `UnknownCmdError`, a
  truncated header `ReadCmdHeaderError`.
- `read_cmd` raises `ReadCmdError` on a truncated body, a body or decompressed
  body too large for the 2 MiB record buffer, or malformed compressed data.
- `file_info()` reads the file info command once (restoring the position) and
  returns a `FileInfo` with `playback_time`, `playback_ticks`,
  `playback_frames` and the raw `game_info` bytes.
- `skip_cmd(header)` and `unread_cmd_header(header)` move over a body or back
  over a header.

## Reading a recorded broadcast

A recorded broadcast is the `start` fragment, then the `full` fragment, then
each `delta` fragment, concatenated:

```python
from haste.broadcastfile import BroadcastFile

with open("broadcast.bin", "rb") as fh:
    stream = BroadcastFile(fh)
    print("last tick:", stream.total_ticks())   # scans all commands, -1 if none
    header = stream.read_cmd_header()
    data = stream.read_cmd(header)
```

The broadcast header layout (one-byte command, 32-bit tick, one unknown byte,
32-bit body size) is read by `haste.broadcaststream.read_cmd_header`. The same
module has `decode_cmd_send_tables` (body past its 4-byte prefix),
`decode_cmd_packet` and `scan_for_last_tick`.

## Streaming a live broadcast

`BroadcastHttp` drives the sync / start / full / delta protocol over any
implementation of the abstract `HttpClient`:

```python
from haste.broadcasthttp import BroadcastHttp, default_headers
from haste.httpclient import HttpClient, HttpRequest, HttpResponse

class MyClient(HttpClient):
    async def execute(self, request: HttpRequest) -> HttpResponse:
        ...  # perform request.method on request.url with an HTTP library of your choice

async def run():
    stream = await BroadcastHttp.start_streaming_and_buffer(MyClient(), "http://localhost/tv/123")
    print(stream.sync_response)
    while (packet := await stream.next_packet()) is not None:
        print(len(packet), "bytes")
```

- `default_headers(app_id)` returns a dict of request headers matching the game
  client's own; pass them in your client.
- The `/sync` body is parsed into a `SyncResponse` (`SyncResponse.from_json`).
- Missing delta fragments (404) are retried up to 5 times, waiting one keyframe
  interval between tries; after that, or on a 404 elsewhere, `next_packet`
  returns `None` for good. Other failures stop the stream and raise
  `BroadcastHttpClientError` (`StatusCodeError` carries the `status`).
- Streams from `start_streaming_and_buffer` keep every fragment and support
  `seek`, `stream_position`, `stream_len` and `total_ticks`. Streams from
  `start_streaming` only expose the latest fragment for reading; the
  seek-related calls raise `RuntimeError`, as does reading before any packet
  arrived.

## Bit-level decoding

```python
from haste.bitreader import BitReader

br = BitReader(b"hello\0")
print(br.read_string(64, False))   # b'hello'
br.is_overflowed()                 # raises BitReaderOverflowError if a read went past the end
```

`BitReader` also reads varints, the engine's `ubitvar` / `ubitvarfp` encodings,
floats, coords, normals, 3-vectors and angles.

`haste.fieldpath.read_field_paths(br)` decodes the Huffman-coded field path
operations of an entity update into a list of `FieldPath` objects.

`haste.fieldvalue.FieldValue` holds a decoded value tagged with a `FieldKind`;
`convert(target)` performs checked conversions:

```python
from haste.fieldvalue import FieldKind, FieldValue

FieldValue(FieldKind.I64, 300).convert("i16")   # 300
FieldValue(FieldKind.I64, 300).convert("i8")    # raises FieldValueConversionError
```

`haste.snappy` offers `decompress_len` and `decompress` for raw snappy blocks.

## What the package does not do

It does not build entities: there are no serializers, class tables, string
tables, instance baselines or per-field decoders here, so field paths and
field values are provided as parts, not as a full entity parser. Apart from the
file info summary, command bodies are returned as raw bytes and their protobuf
messages are not decoded. No HTTP library is bundled; `BroadcastHttp` needs an
`HttpClient` implementation supplied by you. There is no command-line tool.