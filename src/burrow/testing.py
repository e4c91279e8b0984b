"""Test client for burrow route definitions.

Runs a real ``Server`` on an ephemeral loopback port inside the caller's
task and talks to it over the wire with ``httpx`` (``pip install
burrow[testing]``). Nothing is mocked: requests go through the same
transports, dispatcher, and request boundary as in production.
"""

import io
from contextlib import AsyncExitStack
from typing import Any

import anyio
import httpx
from anyio.abc import TaskStatus

from burrow.config import ServerConfig
from burrow.logs import Logger
from burrow.routing.route import RouteDefinition
from burrow.routing.tree import RouteTree
from burrow.server.app import Server


class TestClient:
    __test__ = False  # Tell pytest this is not a test class
    """Async test client bound to a live server.

    Usage::

        async with TestClient(routes) as client:
            response = await client.get("/machines")
            assert response.status_code == 200

    The server shuts down gracefully when the block exits and its exit
    code lands in ``exit_code``. Log output is collected in
    ``log_output`` unless a logger is supplied.
    """

    def __init__(
        self,
        routes: RouteDefinition | RouteTree,
        *,
        config: ServerConfig | None = None,
        log: Logger | None = None,
        **client_options: Any,
    ) -> None:
        self.config = config or ServerConfig(host="127.0.0.1", keep_alive_timeout=1.0)
        self.log_output = io.StringIO()
        if log is None:
            log = Logger(level=self.config.log_level, style="json", stream=self.log_output)
        self.server = Server(routes, config=self.config, log=log)
        self.exit_code: int | None = None
        self._client_options = client_options
        self._stack: AsyncExitStack | None = None
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "TestClient":
        async with AsyncExitStack() as stack:
            tg = await stack.enter_async_context(anyio.create_task_group())
            await tg.start(self._serve)
            stack.callback(self.server.shutdown)
            self._client = await stack.enter_async_context(
                httpx.AsyncClient(**self._httpx_options())
            )
            self._stack = stack.pop_all()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        assert self._stack is not None
        stack, self._stack = self._stack, None
        await stack.__aexit__(*exc_info)

    @property
    def client(self) -> httpx.AsyncClient:
        assert self._client is not None, "TestClient used outside 'async with'"
        return self._client

    # -- Requests --

    async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        return await self.client.request(method, path, **kwargs)

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def head(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("HEAD", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", path, **kwargs)

    # -- Internals --

    async def _serve(self, *, task_status: TaskStatus[tuple[str, int]]) -> None:
        self.exit_code = await self.server.serve(handle_signals=False, task_status=task_status)

    def _httpx_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {"base_url": self.server.url}
        if self.config.protocol == "http2":
            options.update(http1=False, http2=True)
        if self.config.secure:
            options["verify"] = False
        options.update(self._client_options)
        return options
