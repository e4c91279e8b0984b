"""Request boundary — dispatch, invoke, and contain failures.

The only place a request meets the route tree. Every per-request error
stops here: one failing request never affects another, and each error
path writes exactly one log entry.
"""

import time

from burrow._internal.invoke import invoke
from burrow.context import RequestContext
from burrow.errors import HTTPError, TransportError
from burrow.http.request import Request
from burrow.http.response import ResponseWriter
from burrow.logs import Level, Logger, colorize_duration, colorize_status
from burrow.routing.dispatch import dispatch
from burrow.routing.tree import RouteTree

BAD_REQUEST_BODY = "Bad request."
INTERNAL_ERROR_BODY = "Internal server error."


class RequestHandler:
    """Callable the transports hand each complete request to."""

    __slots__ = ("log", "tree")

    def __init__(self, tree: RouteTree, log: Logger) -> None:
        self.tree = tree
        self.log = log

    async def __call__(self, request: Request, response: ResponseWriter) -> None:
        started = time.perf_counter()
        try:
            url = request.url()
        except ValueError as exc:
            self.log.log_structured(
                Level.ERROR,
                {"event": "http-request-error", "message": f"Bad request target: {exc}"},
            )
            await self._send_error(response, 400, BAD_REQUEST_BODY)
            return

        result = dispatch(self.tree, request.method, url.path, log=self.log)
        context = RequestContext(
            request=request,
            response=response,
            url=url,
            matches=result.matches,
            log=self.log,
            route_key=result.route_key,
        )

        try:
            await invoke(result.handler, context)
            if not response.finished:
                await response.end()
        except HTTPError as exc:
            if response.headers_sent:
                self.log.log_structured(
                    Level.ERROR,
                    {"event": "http-routing-error", "route_key": result.route_key, "message": exc},
                )
            else:
                await self._send_error(response, exc.status, exc.detail, exc.headers)
        except TransportError as exc:
            self.log.log_structured(
                Level.ERROR,
                {"event": "http-response-error", "route_key": result.route_key, "message": exc},
            )
        except Exception as exc:
            self.log.log_structured(
                Level.ERROR,
                {"event": "http-routing-error", "route_key": result.route_key, "message": exc},
            )
            await self._send_error(response, 500, INTERNAL_ERROR_BODY)

        if self.log.supports(Level.DEBUG) and response.finished:
            self._log_completed(request, response, started)

    async def _send_error(
        self,
        response: ResponseWriter,
        status: int,
        detail: str,
        headers: tuple[tuple[str, str], ...] = (),
    ) -> None:
        # Once the head is out the status can no longer change.
        if response.headers_sent:
            return
        # Headers the handler set describe a body that will not be sent.
        response.clear_headers()
        response.status_code = status
        for name, value in headers:
            response.set_header(name, value)
        await response.send_text(detail)

    def _log_completed(self, request: Request, response: ResponseWriter, started: float) -> None:
        duration_ms = (time.perf_counter() - started) * 1000
        address, port = request.client or ("-", 0)
        colors = self.log.colors
        self.log.log_structured(
            Level.DEBUG,
            {
                "event": "http-request",
                "status_code": response.status_code,
                "remote_address": address,
                "method": request.method,
                "url": request.target,
                "duration_ms": round(duration_ms, 3),
                "message": " ".join(
                    (
                        address,
                        str(port),
                        request.method,
                        request.target,
                        colorize_status(response.status_code, colors),
                        colorize_duration(duration_ms, colors),
                    )
                ),
            },
        )
