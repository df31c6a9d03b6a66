"""Reader for recorded broadcasts.

A recording is the concatenation of ``/0/start``, ``/<signup>/full``,
``/<signup>/delta``, ``/<signup + 1>/delta`` and so on.
"""

from __future__ import annotations

import io
from typing import BinaryIO, Optional

from haste import broadcaststream
from haste.demofile import DEMO_RECORD_BUFFER_SIZE
from haste.demostream import CmdHeader, DemoStream, ReadCmdError

__all__ = ["BroadcastFile"]


class BroadcastFile(DemoStream):
    """Reads commands from a recorded broadcast.

    Pass a buffered reader for good performance.
    """

    def __init__(self, rdr: BinaryIO) -> None:
        self._rdr = rdr
        self._total_ticks: Optional[int] = None

    # stream ops

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        return self._rdr.seek(offset, whence)

    def stream_position(self) -> int:
        return self._rdr.tell()

    # cmd header

    def read_cmd_header(self) -> CmdHeader:
        return broadcaststream.read_cmd_header(self._rdr)

    # cmd body

    def read_cmd(self, cmd_header: CmdHeader) -> bytes:
        if cmd_header.body_compressed:
            raise ReadCmdError("broadcast commands are never compressed")
        size = cmd_header.body_size
        if size > DEMO_RECORD_BUFFER_SIZE:
            raise ReadCmdError(f"command body of {size} bytes does not fit the buffer")
        chunks = []
        remaining = size
        while remaining:
            chunk = self._rdr.read(remaining)
            if not chunk:
                raise ReadCmdError("unexpected end of stream while reading command body")
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    # other

    def start_position(self) -> int:
        return 0

    def total_ticks(self) -> int:
        if self._total_ticks is None:
            self._total_ticks = broadcaststream.scan_for_last_tick(self)
        return self._total_ticks