"""Streaming of live broadcasts over HTTP."""

from __future__ import annotations

import asyncio
import enum
import io
import json
import logging
import time
from dataclasses import dataclass, fields
from typing import Any, Optional, Union

from haste import broadcaststream
from haste.demostream import CmdHeader, DemoStream, ReadCmdError
from haste.httpclient import HttpClient, HttpRequest

__all__ = [
    "BroadcastHttp",
    "BroadcastHttpClientError",
    "FragmentType",
    "StatusCodeError",
    "SyncResponse",
    "default_headers",
]

log = logging.getLogger(__name__)

MAX_DELTAFRAME_RETRIES = 5

_NOT_FOUND = 404
_I32_MIN = -(1 << 31)
_I32_MAX = (1 << 31) - 1


def default_headers(app_id: int) -> dict[str, str]:
    """Request headers matching those of the game's own broadcast client."""
    if isinstance(app_id, bool) or not isinstance(app_id, int) or not 0 <= app_id < (1 << 32):
        raise ValueError(f"invalid app id {app_id!r}")
    return {
        "user-agent": f"Valve/Steam HTTP Client 1.0 ({app_id})",
        "accept": "text/html,*/*;q=0.9",
        "accept-encoding": "gzip,identity,*;q=0",
        "accept-charset": "ISO-8859-1,utf-8,*;q=0.7",
    }


class BroadcastHttpClientError(Exception):
    """Raised when a broadcast request fails."""


class StatusCodeError(BroadcastHttpClientError):
    """Raised when the server answers with a client or server error status."""

    def __init__(self, status: int) -> None:
        super().__init__(f"http status code error ({status})")
        self.status = status


@dataclass(frozen=True)
class SyncResponse:
    """State of a broadcast as reported by its ``/sync`` endpoint."""

    tick: int
    """start tick of the current fragment"""
    endtick: int
    maxtick: int
    rtdelay: float
    """delay of this fragment from real time, in seconds"""
    rcvage: float
    """seconds since the relay last received data from the game server"""
    fragment: int
    signup_fragment: int
    tps: int
    keyframe_interval: int
    """interval between full keyframes, in seconds"""
    map: str
    protocol: int

    @classmethod
    def from_json(cls, data: Union[bytes, str]) -> SyncResponse:
        """Parse a ``/sync`` response body."""
        try:
            obj = json.loads(data)
        except (ValueError, UnicodeDecodeError) as exc:
            raise BroadcastHttpClientError("could not deserialize json") from exc
        if not isinstance(obj, dict):
            raise BroadcastHttpClientError("could not deserialize json: not an object")

        values: dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in obj:
                raise BroadcastHttpClientError(
                    f"could not deserialize json: missing field {f.name!r}"
                )
            values[f.name] = _check_field(f.name, f.type, obj[f.name])
        return cls(**values)


def _check_field(name: str, kind: Any, value: Any) -> Any:
    kind = kind if isinstance(kind, str) else getattr(kind, "__name__", str(kind))
    if kind == "int":
        if isinstance(value, bool) or not isinstance(value, int) or not _I32_MIN <= value <= _I32_MAX:
            raise BroadcastHttpClientError(f"could not deserialize json: invalid {name!r}")
        return value
    if kind == "float":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise BroadcastHttpClientError(f"could not deserialize json: invalid {name!r}")
        return float(value)
    if not isinstance(value, str):
        raise BroadcastHttpClientError(f"could not deserialize json: invalid {name!r}")
    return value


class FragmentType(enum.Enum):
    DELTA = "delta"
    FULL = "full"


# stream states


class _Stop:
    def __repr__(self) -> str:
        return "Stop"


class _Start:
    def __repr__(self) -> str:
        return "Start"


class _Fullframe:
    def __repr__(self) -> str:
        return "Fullframe"


@dataclass(frozen=True)
class _Deltaframes:
    num_retries: int
    fetch_after: float
    catchup: bool


_StreamState = Union[_Stop, _Start, _Fullframe, _Deltaframes]


def _remaining(buf: io.BytesIO) -> int:
    with buf.getbuffer() as view:
        return view.nbytes - buf.tell()


class BroadcastHttp(DemoStream):
    """Fetches broadcast packets one after another.

    Create with :meth:`start_streaming` or, to allow seeking over everything
    fetched so far, :meth:`start_streaming_and_buffer`.
    """

    def __init__(
        self,
        http_client: HttpClient,
        base_url: str,
        sync_response: SyncResponse,
        buffered: bool = False,
    ) -> None:
        self._http_client = http_client
        self._base_url = base_url
        self._sync_response = sync_response
        self._stream_fragment = sync_response.fragment
        self._keyframe_interval = float(sync_response.keyframe_interval)
        self._signup_fragment = sync_response.signup_fragment
        self._stream_state: _StreamState = _Start()
        self._buffered = buffered
        # last packet when not buffered, every packet when buffered
        self._last: Optional[io.BytesIO] = None
        self._cursor = io.BytesIO()
        self._total_ticks: Optional[int] = None

    @classmethod
    async def start_streaming(cls, http_client: HttpClient, base_url: str) -> BroadcastHttp:
        sync_response = await cls._fetch_sync(http_client, base_url)
        return cls(http_client, base_url, sync_response)

    @classmethod
    async def start_streaming_and_buffer(
        cls, http_client: HttpClient, base_url: str
    ) -> BroadcastHttp:
        """Like :meth:`start_streaming`, but keep every packet to allow seeking."""
        sync_response = await cls._fetch_sync(http_client, base_url)
        return cls(http_client, base_url, sync_response, buffered=True)

    @property
    def sync_response(self) -> SyncResponse:
        return self._sync_response

    # requests

    @staticmethod
    async def _get(http_client: HttpClient, url: str) -> bytes:
        request = HttpRequest(url=url, method="GET")
        try:
            response = await http_client.execute(request)
        except BroadcastHttpClientError:
            raise
        except Exception as exc:
            raise BroadcastHttpClientError("http client error") from exc
        if response.is_error():
            raise StatusCodeError(response.status)
        if isinstance(response.body, BaseException):
            raise BroadcastHttpClientError("http client error") from response.body
        return bytes(response.body)

    @classmethod
    async def _fetch_sync(cls, http_client: HttpClient, base_url: str) -> SyncResponse:
        body = await cls._get(http_client, f"{base_url}/sync")
        return SyncResponse.from_json(body)

    async def _get_start(self, signup_fragment: int) -> bytes:
        if signup_fragment < 0:
            raise ValueError(f"invalid signup fragment {signup_fragment}")
        return await self._get(self._http_client, f"{self._base_url}/{signup_fragment}/start")

    async def _get_fragment(self, fragment: int, typ: FragmentType) -> bytes:
        return await self._get(self._http_client, f"{self._base_url}/{fragment}/{typ.value}")

    # state handlers

    def _enter(self, state: _StreamState) -> None:
        self._stream_state = state
        log.debug("entering state: %r", state)

    async def _handle_start(self) -> bytes:
        packet = await self._get_start(self._signup_fragment)
        self._enter(_Fullframe())
        return packet

    async def _handle_fullframe(self) -> bytes:
        packet = await self._get_fragment(self._stream_fragment, FragmentType.FULL)
        self._enter(_Deltaframes(num_retries=0, fetch_after=time.monotonic(), catchup=True))
        return packet

    async def _handle_deltaframes(self) -> bytes:
        while True:
            state = self._stream_state
            assert isinstance(state, _Deltaframes)

            if not state.catchup:
                now = time.monotonic()
                if now > state.fetch_after:
                    self._enter(_Deltaframes(state.num_retries, state.fetch_after, True))
                    continue
                await asyncio.sleep(max(0.0, state.fetch_after - now))

            start = time.monotonic()
            try:
                packet = await self._get_fragment(self._stream_fragment, FragmentType.DELTA)
            except StatusCodeError as exc:
                if exc.status != _NOT_FOUND or state.num_retries >= MAX_DELTAFRAME_RETRIES:
                    raise
                self._enter(
                    _Deltaframes(
                        num_retries=state.num_retries + 1,
                        fetch_after=start + self._keyframe_interval,
                        catchup=False,
                    )
                )
                continue

            # the full fragment and the delta of the same number are both needed, so
            # the fragment number only advances after a delta
            self._stream_fragment += 1
            self._enter(
                _Deltaframes(
                    num_retries=0,
                    fetch_after=start + self._keyframe_interval,
                    catchup=state.catchup,
                )
            )
            return packet

    async def next_packet(self) -> Optional[bytes]:
        """Fetch the next packet; None once the broadcast has ended.

        Any other failure stops the stream and is raised.
        """
        state = self._stream_state
        try:
            if isinstance(state, _Stop):
                return None
            if isinstance(state, _Start):
                packet = await self._handle_start()
            elif isinstance(state, _Fullframe):
                packet = await self._handle_fullframe()
            else:
                packet = await self._handle_deltaframes()
        except BroadcastHttpClientError as exc:
            self._stream_state = _Stop()
            if isinstance(exc, StatusCodeError) and exc.status == _NOT_FOUND:
                return None
            raise

        if self._buffered:
            self._cursor.write(packet)
            self._total_ticks = None
        else:
            self._last = io.BytesIO(packet)
        return packet

    # demo stream

    def _seekable(self) -> io.BytesIO:
        if not self._buffered:
            raise RuntimeError(
                "attempted invoking seek-related operation on BroadcastHttp "
                "constructed not with `start_streaming_and_buffer`"
            )
        return self._cursor

    def _reader(self) -> io.BytesIO:
        if self._buffered:
            return self._cursor
        if self._last is None:
            raise RuntimeError("attempted reading on BroadcastHttp with no packets")
        return self._last

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        return self._seekable().seek(offset, whence)

    def stream_position(self) -> int:
        return self._seekable().tell()

    def stream_len(self) -> int:
        with self._seekable().getbuffer() as view:
            return view.nbytes

    def is_at_eof(self) -> bool:
        return _remaining(self._reader()) <= 0

    def read_cmd_header(self) -> CmdHeader:
        return broadcaststream.read_cmd_header(self._reader())

    def read_cmd(self, cmd_header: CmdHeader) -> bytes:
        reader = self._reader()
        size = cmd_header.body_size
        if _remaining(reader) < size:
            raise ReadCmdError("unexpected end of stream while reading command body")
        return reader.read(size)

    def start_position(self) -> int:
        self._seekable()
        return 0

    def total_ticks(self) -> int:
        self._seekable()
        if self._total_ticks is None:
            self._total_ticks = broadcaststream.scan_for_last_tick(self)
        return self._total_ticks