"""Server bootstrap — listener, transports, signals, and shutdown.

Wires a bound TCP (or TLS) listener to the HTTP/1.1 and HTTP/2 sessions,
hands every request to the ``RequestHandler``, and drives the
``ShutdownCoordinator`` from SIGINT/SIGTERM.

Usage::

    server = Server(routes, config=ServerConfig.from_env())
    server.run()  # exits the process with the shutdown exit code
"""

import signal
import socket
import sys
from typing import Any

import anyio
from anyio.abc import ByteStream, Listener, SocketAttribute, TaskGroup, TaskStatus
from anyio.streams.tls import TLSAttribute, TLSStream

from burrow.config import ServerConfig
from burrow.errors import ConfigurationError
from burrow.logs import Level, Logger
from burrow.routing.route import RouteDefinition
from burrow.routing.tree import RouteTree, build_route_tree
from burrow.server.handler import RequestHandler
from burrow.server.http2 import Http2Session
from burrow.server.http11 import Http11Session
from burrow.server.shutdown import ShutdownCoordinator
from burrow.server.tls import create_ssl_context


def _client_address(stream: ByteStream) -> tuple[str, int] | None:
    address = stream.extra(SocketAttribute.remote_address, None)
    if isinstance(address, tuple):
        return address[0], address[1]
    return None


def _bound_address(listener: Listener[Any]) -> tuple[str, int]:
    address = listener.extra(SocketAttribute.local_address)
    return address[0], address[1]


class Server:
    """One listener serving one route tree until shutdown."""

    def __init__(
        self,
        routes: RouteDefinition | RouteTree,
        *,
        config: ServerConfig | None = None,
        log: Logger | None = None,
    ) -> None:
        self.config = config or ServerConfig()
        self.log = log or Logger.from_config(self.config)
        self.tree = routes if isinstance(routes, RouteTree) else build_route_tree(routes, log=self.log)
        self.handler = RequestHandler(self.tree, self.log)
        self.coordinator = ShutdownCoordinator(
            log=self.log, poll_interval=self.config.shutdown_poll_interval
        )
        self.address: tuple[str, int] | None = None
        self._ssl_context: Any = None

    @property
    def url(self) -> str | None:
        if self.address is None:
            return None
        host, port = self.address
        if ":" in host:
            host = f"[{host}]"
        return f"{self.config.scheme}://{host}:{port}"

    def shutdown(self, exit_code: int = 0) -> None:
        """Begin graceful shutdown, as a signal would."""
        self.coordinator.initiate_shutdown(exit_code)

    def run(self) -> None:
        """Serve until shut down, then exit the process with the exit code."""
        sys.exit(anyio.run(self.serve))

    async def serve(
        self,
        *,
        handle_signals: bool = True,
        task_status: TaskStatus[tuple[str, int]] = anyio.TASK_STATUS_IGNORED,
    ) -> int:
        """Bind, serve until shutdown completes, and return the exit code.

        ``task_status.started`` receives the bound ``(host, port)``.
        """
        try:
            if self.config.secure:
                self._ssl_context = create_ssl_context(self.config)
            listener = await anyio.create_tcp_listener(
                local_host=self.config.host, local_port=self.config.port
            )
        except (ConfigurationError, OSError) as exc:
            self._fatal(exc)
            self.coordinator.mark_stopped()
            return self.coordinator.exit_code

        self.address = _bound_address(listener)
        self._log_listening(listener)
        task_status.started(self.address)

        async with anyio.create_task_group() as tg:
            if handle_signals:
                tg.start_soon(self._watch_signals)
            async with anyio.create_task_group() as connections:
                await self._accept(listener, connections)
                await self.coordinator.drain()
            tg.cancel_scope.cancel()

        self.coordinator.mark_stopped()
        return self.coordinator.exit_code

    # -- Listener --

    async def _accept(self, listener: Listener[Any], connections: TaskGroup) -> None:
        with anyio.CancelScope() as scope:
            self.coordinator.on_shutdown(scope.cancel)
            try:
                await listener.serve(self._handle_connection, task_group=connections)
            except Exception as exc:
                self._fatal(exc)
        with anyio.CancelScope(shield=True):
            await listener.aclose()

    async def _watch_signals(self) -> None:
        with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
            async for signum in signals:
                self.log.log_structured(
                    Level.DEBUG,
                    {"event": "http-close", "signal": signal.Signals(signum).name, "message": "Signal received."},
                )
                self.coordinator.initiate_shutdown(0)

    def _fatal(self, exc: Exception) -> None:
        self.log.log_structured(Level.FATAL, {"event": "http-server-error", "message": exc})
        self.coordinator.initiate_shutdown(1)

    def _log_listening(self, listener: Listener[Any]) -> None:
        host, port = self.address or (self.config.host, self.config.port)
        family = listener.extra(SocketAttribute.family, None)
        self.log.log_structured(
            Level.INFO,
            {
                "event": "http-listen",
                "host": host,
                "port": port,
                "family": "IPv6" if family == socket.AF_INET6 else "IPv4",
                "protocol": self.config.protocol,
                "secure": self.config.secure,
                "message": f"Server listening on {self.url}",
            },
        )

    # -- Connections --

    async def _handle_connection(self, stream: ByteStream) -> None:
        client = _client_address(stream)
        if self._ssl_context is not None:
            timeout = self.config.keep_alive_timeout if self.config.keep_alive_timeout > 0 else None
            try:
                with anyio.fail_after(timeout):
                    stream = await TLSStream.wrap(
                        stream,
                        server_side=True,
                        ssl_context=self._ssl_context,
                        standard_compatible=False,
                    )
            except (OSError, anyio.BrokenResourceError, anyio.EndOfStream) as exc:
                self.log.log_structured(
                    Level.ERROR,
                    {"event": "http-tls-error", "remote_address": client and client[0], "message": exc},
                )
                await anyio.aclose_forcefully(stream)
                return

        session = self._open_session(stream, client)
        self.coordinator.register(session)
        try:
            await session.run()
        except Exception as exc:
            self.log.log_structured(Level.ERROR, {"event": "http-session-error", "message": exc})
        finally:
            self.coordinator.unregister(session)

    def _open_session(
        self, stream: ByteStream, client: tuple[str, int] | None
    ) -> Http11Session | Http2Session:
        if self.config.secure:
            use_h2 = stream.extra(TLSAttribute.alpn_protocol, None) == "h2"
        else:
            use_h2 = self.config.protocol == "http2"
        session_class = Http2Session if use_h2 else Http11Session
        return session_class(
            stream,
            self.handler,
            log=self.log,
            keep_alive_timeout=self.config.keep_alive_timeout,
            scheme=self.config.scheme,
            client=client,
        )
