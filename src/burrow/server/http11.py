"""HTTP/1.1 transport session on top of h11.

One session per TCP (or TLS) connection. Requests are served one after
another on the same connection until the client closes it, the
keep-alive timeout passes with no new request, or shutdown stops
keep-alive.
"""

import math
from collections.abc import Awaitable, Callable
from http import HTTPStatus

import anyio
import h11
from anyio.abc import ByteStream

from burrow.errors import TransportError
from burrow.http.headers import Headers
from burrow.http.request import Request
from burrow.http.response import ResponseWriter
from burrow.logs import Level, Logger

RECEIVE_SIZE = 64 * 1024

RequestCallback = Callable[[Request, ResponseWriter], Awaitable[None]]


def _reason(status: int) -> bytes:
    try:
        return HTTPStatus(status).phrase.encode("ascii")
    except ValueError:
        return b""


class Http11Response(ResponseWriter):
    """Writes one response through the session's h11 connection."""

    def __init__(self, session: "Http11Session", *, head_only: bool = False) -> None:
        super().__init__(head_only=head_only)
        self._session = session

    async def _send_head(self, status: int, headers: tuple[tuple[str, str], ...]) -> None:
        if not self._session.keep_alive:
            headers = (*(h for h in headers if h[0] != "connection"), ("connection", "close"))
        await self._session.send(
            h11.Response(status_code=status, headers=list(headers), reason=_reason(status))
        )

    async def _send_data(self, data: bytes) -> None:
        await self._session.send(h11.Data(data=data))

    async def _send_end(self) -> None:
        await self._session.send(h11.EndOfMessage())


class Http11Session:
    """Serve HTTP/1.1 requests on one connection.

    The session is idle whenever it is not producing a response, which
    includes waiting for the next keep-alive request.
    """

    protocol = "http1.1"

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
        self._conn = h11.Connection(h11.SERVER)
        self._scope = anyio.CancelScope()
        self._in_flight = False
        self.log = log
        self.keep_alive = True
        self.keep_alive_timeout = keep_alive_timeout
        self.scheme = scheme
        self.client = client

    # -- Session protocol --

    @property
    def idle(self) -> bool:
        return not self._in_flight

    def stop_keep_alive(self) -> None:
        self.keep_alive = False

    def close(self) -> None:
        self._scope.cancel()

    # -- Lifecycle --

    async def run(self) -> None:
        """Serve until the connection ends, then close the stream."""
        try:
            with self._scope:
                await self._serve()
        except TransportError as exc:
            self.log.log_structured(
                Level.ERROR,
                {"event": "http-session-error", "message": f"Connection dropped: {exc}"},
            )
        finally:
            with anyio.CancelScope(shield=True):
                await self._stream.aclose()

    async def send(self, event: h11.Event) -> None:
        data = self._conn.send(event)
        if not data:
            return
        try:
            await self._stream.send(data)
        except (anyio.BrokenResourceError, anyio.ClosedResourceError) as exc:
            raise TransportError(f"connection lost while sending: {exc!r}") from exc

    async def _serve(self) -> None:
        while True:
            event = await self._next_request()
            if event is None:
                return

            self._in_flight = True
            try:
                finished = await self._handle(event)
            finally:
                self._in_flight = False

            if not finished or not self.keep_alive or self._conn.our_state is h11.MUST_CLOSE:
                return
            try:
                self._conn.start_next_cycle()
            except h11.LocalProtocolError:
                return

    async def _next_request(self) -> h11.Request | None:
        """Wait for the next request head, or ``None`` when the connection is done."""
        timeout = self.keep_alive_timeout if self.keep_alive_timeout > 0 else math.inf
        with anyio.move_on_after(timeout):
            try:
                event = await self._next_event()
            except h11.RemoteProtocolError as exc:
                await self._reject(exc)
                return None
            if isinstance(event, h11.Request):
                return event
            return None
        return None

    async def _next_event(self) -> h11.Event | type[h11.NEED_DATA]:
        while True:
            event = self._conn.next_event()
            if event is not h11.NEED_DATA:
                return event
            try:
                data = await self._stream.receive(RECEIVE_SIZE)
            except anyio.EndOfStream:
                data = b""
            except (anyio.BrokenResourceError, anyio.ClosedResourceError) as exc:
                raise TransportError(f"connection lost while receiving: {exc!r}") from exc
            self._conn.receive_data(data)

    async def _handle(self, head: h11.Request) -> bool:
        """Read the body, run the request callback; True if the response completed."""
        if self._conn.client_is_waiting_for_100_continue:
            await self.send(h11.InformationalResponse(status_code=100, headers=[]))

        body = bytearray()
        while True:
            try:
                event = await self._next_event()
            except h11.RemoteProtocolError as exc:
                await self._reject(exc)
                return False
            if isinstance(event, h11.Data):
                body += event.data
            elif isinstance(event, h11.EndOfMessage):
                break
            else:
                # Client went away mid-body.
                return False

        method = head.method.decode("ascii")
        request = Request(
            method=method,
            target=head.target.decode("latin-1"),
            headers=Headers(head.headers),
            body=bytes(body),
            http_version=head.http_version.decode("ascii"),
            scheme=self.scheme,
            client=self.client,
        )
        response = Http11Response(self, head_only=method == "HEAD")
        await self._on_request(request, response)
        return response.finished

    async def _reject(self, exc: h11.RemoteProtocolError) -> None:
        self.log.log_structured(
            Level.ERROR,
            {"event": "http-request-error", "message": f"Malformed request: {exc}"},
        )
        if self._conn.our_state not in (h11.IDLE, h11.SEND_RESPONSE):
            return
        status = exc.error_status_hint
        body = HTTPStatus(status).phrase.encode("ascii")
        await self.send(
            h11.Response(
                status_code=status,
                headers=[
                    ("content-type", "text/plain"),
                    ("content-length", str(len(body))),
                    ("connection", "close"),
                ],
                reason=_reason(status),
            )
        )
        await self.send(h11.Data(data=body))
        await self.send(h11.EndOfMessage())
