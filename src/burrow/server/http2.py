"""HTTP/2 transport session on top of h2.

One session per connection, serving many concurrent streams. Each
request stream runs in its own task; responses respect the peer's flow
control windows. Used for prior-knowledge cleartext HTTP/2 and for TLS
connections that negotiated ``h2`` through ALPN.
"""

import contextlib
import math
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field

import anyio
import h2.config
import h2.connection
import h2.events
import h2.exceptions
from anyio.abc import ByteStream, TaskGroup
from h2.errors import ErrorCodes

from burrow.errors import TransportError
from burrow.http.headers import Headers
from burrow.http.request import Request
from burrow.http.response import ResponseWriter
from burrow.logs import Level, Logger

RECEIVE_SIZE = 64 * 1024

RequestCallback = Callable[[Request, ResponseWriter], Awaitable[None]]

# Connection-specific headers are forbidden in HTTP/2 (RFC 9113 §8.2.2).
_CONNECTION_HEADERS = frozenset(
    {"connection", "keep-alive", "proxy-connection", "transfer-encoding", "upgrade"}
)


@dataclass(slots=True)
class _StreamState:
    headers: list[tuple[str, str]]
    body: bytearray = field(default_factory=bytearray)
    scope: anyio.CancelScope | None = None
    window: anyio.Event | None = None


class Http2Response(ResponseWriter):
    """Writes one response on an HTTP/2 stream."""

    def __init__(self, session: "Http2Session", stream_id: int, *, head_only: bool = False) -> None:
        super().__init__(head_only=head_only)
        self._session = session
        self.stream_id = stream_id

    async def _send_head(self, status: int, headers: tuple[tuple[str, str], ...]) -> None:
        await self._session.send_headers(self.stream_id, status, headers)

    async def _send_data(self, data: bytes) -> None:
        await self._session.send_data(self.stream_id, data)

    async def _send_end(self) -> None:
        await self._session.end_stream(self.stream_id)


class Http2Session:
    """Serve HTTP/2 streams on one connection.

    The session is idle when it has no open request streams. Once
    keep-alive is stopped it refuses new streams and closes as soon as
    the last open stream finishes.
    """

    protocol = "http2"

    def __init__(
        self,
        stream: ByteStream,
        on_request: RequestCallback,
        *,
        log: Logger,
        keep_alive_timeout: float = 5.0,
        scheme: str = "http",
        client: tuple[str, int] | None = None,
    ) -> None:
        self._stream = stream
        self._on_request = on_request
        self._conn = h2.connection.H2Connection(
            config=h2.config.H2Configuration(client_side=False, header_encoding="utf-8")
        )
        self._streams: dict[int, _StreamState] = {}
        self._scope = anyio.CancelScope()
        self._send_lock = anyio.Lock()
        self._idle_since = anyio.current_time()
        self.log = log
        self.keep_alive = True
        self.keep_alive_timeout = keep_alive_timeout
        self.scheme = scheme
        self.client = client

    # -- Session protocol --

    @property
    def idle(self) -> bool:
        return not self._streams

    def stop_keep_alive(self) -> None:
        self.keep_alive = False

    def close(self) -> None:
        self._scope.cancel()

    # -- Lifecycle --

    async def run(self) -> None:
        """Serve until the connection ends, then send GOAWAY and close."""
        try:
            with self._scope:
                self._conn.initiate_connection()
                await self._flush()
                async with anyio.create_task_group() as tg:
                    await self._read_loop(tg)
                    tg.cancel_scope.cancel()
        except TransportError as exc:
            self.log.log_structured(
                Level.ERROR,
                {"event": "http-session-error", "message": f"Connection dropped: {exc}"},
            )
        finally:
            with anyio.CancelScope(shield=True):
                await self._goaway()
                await self._stream.aclose()

    async def _read_loop(self, tg: TaskGroup) -> None:
        while True:
            try:
                data = await self._receive()
            except TransportError as exc:
                self.log.log_structured(
                    Level.ERROR,
                    {"event": "http-session-error", "message": f"Connection dropped: {exc}"},
                )
                return
            if not data:
                return
            try:
                events = self._conn.receive_data(data)
            except h2.exceptions.ProtocolError as exc:
                self.log.log_structured(
                    Level.ERROR,
                    {"event": "http-request-error", "message": f"HTTP/2 protocol error: {exc}"},
                )
                return

            terminated = False
            for event in events:
                if isinstance(event, h2.events.ConnectionTerminated):
                    terminated = True
                else:
                    self._on_event(event, tg)
            try:
                await self._flush()
            except TransportError:
                return
            if terminated:
                return

    async def _receive(self) -> bytes:
        """Next chunk from the peer; empty once it closed or sat idle too long."""
        timeout = self.keep_alive_timeout if self.keep_alive_timeout > 0 else math.inf
        while True:
            with anyio.move_on_after(timeout):
                try:
                    return await self._stream.receive(RECEIVE_SIZE)
                except anyio.EndOfStream:
                    return b""
                except (anyio.BrokenResourceError, anyio.ClosedResourceError) as exc:
                    raise TransportError(f"connection lost while receiving: {exc!r}") from exc
            if self.idle and anyio.current_time() - self._idle_since >= timeout:
                return b""

    def _on_event(self, event: h2.events.Event, tg: TaskGroup) -> None:
        if isinstance(event, h2.events.RequestReceived):
            if not self.keep_alive:
                self._conn.reset_stream(event.stream_id, ErrorCodes.REFUSED_STREAM)
                return
            self._streams[event.stream_id] = _StreamState(headers=list(event.headers))
        elif isinstance(event, h2.events.DataReceived):
            state = self._streams.get(event.stream_id)
            if state is not None:
                state.body += event.data
            self._conn.acknowledge_received_data(event.flow_controlled_length, event.stream_id)
        elif isinstance(event, h2.events.StreamEnded):
            state = self._streams.get(event.stream_id)
            if state is not None:
                tg.start_soon(self._run_stream, event.stream_id, state)
        elif isinstance(event, h2.events.StreamReset):
            state = self._streams.pop(event.stream_id, None)
            if state is not None:
                if state.scope is not None:
                    state.scope.cancel()
                if state.window is not None:
                    state.window.set()
                self._after_stream()
        elif isinstance(event, h2.events.WindowUpdated):
            if event.stream_id == 0:
                self._wake_writers(self._streams.values())
            else:
                self._wake_writers(s for s in (self._streams.get(event.stream_id),) if s is not None)
        elif isinstance(event, h2.events.RemoteSettingsChanged):
            # A larger SETTINGS_INITIAL_WINDOW_SIZE grows every open stream window.
            self._wake_writers(self._streams.values())

    @staticmethod
    def _wake_writers(states: Iterable[_StreamState]) -> None:
        for state in list(states):
            if state.window is not None:
                state.window.set()

    async def _run_stream(self, stream_id: int, state: _StreamState) -> None:
        pseudo = {name: value for name, value in state.headers if name.startswith(":")}
        method = pseudo.get(":method", "GET")
        request = Request(
            method=method,
            target=pseudo.get(":path", "/"),
            headers=Headers((name, value) for name, value in state.headers if not name.startswith(":")),
            body=bytes(state.body),
            http_version="2",
            scheme=pseudo.get(":scheme", self.scheme),
            authority=pseudo.get(":authority"),
            client=self.client,
        )
        response = Http2Response(self, stream_id, head_only=method == "HEAD")
        try:
            with anyio.CancelScope() as scope:
                state.scope = scope
                await self._on_request(request, response)
            if not response.finished and stream_id in self._streams:
                with contextlib.suppress(h2.exceptions.StreamClosedError):
                    self._conn.reset_stream(stream_id, ErrorCodes.INTERNAL_ERROR)
                await self._flush()
        except TransportError as exc:
            self.log.log_structured(
                Level.ERROR,
                {"event": "http-session-error", "stream_id": stream_id, "message": str(exc)},
            )
        finally:
            self._streams.pop(stream_id, None)
            self._after_stream()

    def _after_stream(self) -> None:
        if not self.idle:
            return
        self._idle_since = anyio.current_time()
        if not self.keep_alive:
            self.close()

    # -- Writing --

    async def send_headers(
        self, stream_id: int, status: int, headers: tuple[tuple[str, str], ...]
    ) -> None:
        fields = [(":status", str(status))]
        fields.extend((name, value) for name, value in headers if name not in _CONNECTION_HEADERS)
        try:
            self._conn.send_headers(stream_id, fields)
        except h2.exceptions.StreamClosedError as exc:
            raise TransportError(f"stream {stream_id} closed by peer") from exc
        await self._flush()

    async def send_data(self, stream_id: int, data: bytes) -> None:
        view = memoryview(data)
        while view:
            try:
                window = self._conn.local_flow_control_window(stream_id)
            except h2.exceptions.StreamClosedError as exc:
                raise TransportError(f"stream {stream_id} closed by peer") from exc
            size = min(window, len(view), self._conn.max_outbound_frame_size)
            if size <= 0:
                await self._wait_for_window(stream_id)
                continue
            self._conn.send_data(stream_id, view[:size].tobytes())
            view = view[size:]
            await self._flush()

    async def end_stream(self, stream_id: int) -> None:
        try:
            self._conn.end_stream(stream_id)
        except h2.exceptions.StreamClosedError as exc:
            raise TransportError(f"stream {stream_id} closed by peer") from exc
        await self._flush()

    async def _wait_for_window(self, stream_id: int) -> None:
        state = self._streams.get(stream_id)
        if state is None:
            raise TransportError(f"stream {stream_id} closed by peer")
        state.window = anyio.Event()
        await state.window.wait()
        state.window = None

    async def _flush(self) -> None:
        async with self._send_lock:
            data = self._conn.data_to_send()
            if not data:
                return
            try:
                await self._stream.send(data)
            except (anyio.BrokenResourceError, anyio.ClosedResourceError) as exc:
                raise TransportError(f"connection lost while sending: {exc!r}") from exc

    async def _goaway(self) -> None:
        try:
            self._conn.close_connection()
        except h2.exceptions.ProtocolError:
            return
        # Best effort: the peer may already be gone.
        with contextlib.suppress(anyio.BrokenResourceError, anyio.ClosedResourceError):
            await self._stream.send(self._conn.data_to_send())
