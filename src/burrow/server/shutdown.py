"""Active-session tracking and graceful shutdown.

The coordinator owns the set of open transport sessions. Sessions are
added and removed only from connection lifecycle code, never during
route dispatch. ``initiate_shutdown`` is the single entry point for
stopping the server: the signal adapter calls it with 0, listener
failures call it with 1.

States::

    RUNNING ──initiate_shutdown()──▶ SHUTTING_DOWN ──mark_stopped()──▶ STOPPED
"""

from collections.abc import Callable
from enum import Enum
from typing import Protocol, runtime_checkable

import anyio

from burrow.logs import Level, Logger


class ServerState(Enum):
    RUNNING = "running"
    SHUTTING_DOWN = "shutting-down"
    STOPPED = "stopped"


@runtime_checkable
class Session(Protocol):
    """One open transport session (an HTTP/1.1 socket or an HTTP/2 connection)."""

    @property
    def idle(self) -> bool:
        """True when no response is being produced on this session."""
        ...

    def stop_keep_alive(self) -> None:
        """Finish in-flight work, then close instead of waiting for more requests."""
        ...

    def close(self) -> None:
        """Close the session. Calling it again is a no-op."""
        ...


class ShutdownCoordinator:
    """Tracks live sessions and sequences graceful shutdown.

    Usage::

        coordinator = ShutdownCoordinator(log=log, poll_interval=5.0)
        coordinator.register(session)      # on connection open
        coordinator.unregister(session)    # on connection close
        coordinator.initiate_shutdown(0)   # from a signal handler
        await coordinator.drain()          # returns once no session remains
    """

    __slots__ = ("_emptied", "_on_shutdown", "_requested", "_sessions", "exit_code", "log", "poll_interval", "state")

    def __init__(self, *, log: Logger, poll_interval: float = 1.0) -> None:
        self.log = log
        self.poll_interval = poll_interval
        self.state = ServerState.RUNNING
        self.exit_code = 0
        self._sessions: dict[Session, None] = {}
        self._on_shutdown: list[Callable[[], None]] = []
        self._requested: anyio.Event | None = None
        self._emptied: anyio.Event | None = None

    @property
    def sessions(self) -> tuple[Session, ...]:
        return tuple(self._sessions)

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    def register(self, session: Session) -> None:
        """Track a newly opened session.

        A session that opens while shutting down is told not to keep alive.
        """
        self._sessions[session] = None
        if self.state is not ServerState.RUNNING:
            session.stop_keep_alive()

    def unregister(self, session: Session) -> None:
        """Forget a closed session. Unknown sessions are ignored."""
        self._sessions.pop(session, None)
        if not self._sessions and self._emptied is not None:
            self._emptied.set()

    def on_shutdown(self, callback: Callable[[], None]) -> None:
        """Run *callback* when shutdown begins (immediately if it already has)."""
        if self.state is ServerState.RUNNING:
            self._on_shutdown.append(callback)
        else:
            callback()

    def initiate_shutdown(self, exit_code: int = 0) -> None:
        """Stop accepting, stop keep-alive, and close every idle session.

        Only the first call has an effect; its *exit_code* is the one the
        process exits with.
        """
        if self.state is not ServerState.RUNNING:
            self.log.log_structured(
                Level.DEBUG,
                {"event": "http-close", "message": "Shutdown already in progress."},
            )
            return

        self.state = ServerState.SHUTTING_DOWN
        self.exit_code = exit_code
        self.log.log_structured(
            Level.INFO,
            {"event": "http-close", "message": "Attempting graceful shutdown..."},
        )

        callbacks, self._on_shutdown = self._on_shutdown, []
        for callback in callbacks:
            callback()
        for session in self.sessions:
            session.stop_keep_alive()
        self.close_idle()

        if self._requested is not None:
            self._requested.set()

    def close_idle(self) -> int:
        """Close every idle session; return how many were closed."""
        closed = 0
        for session in self.sessions:
            if session.idle:
                session.close()
                closed += 1
        return closed

    async def wait_requested(self) -> None:
        """Block until ``initiate_shutdown`` has been called."""
        if self.state is not ServerState.RUNNING:
            return
        if self._requested is None:
            self._requested = anyio.Event()
        await self._requested.wait()

    async def drain(self) -> None:
        """Wait for shutdown, then sweep idle sessions until none remain."""
        await self.wait_requested()
        while self._sessions:
            self._emptied = anyio.Event()
            with anyio.move_on_after(self.poll_interval):
                await self._emptied.wait()
            if not self._sessions:
                break
            closed = self.close_idle()
            if closed:
                self.log.log_structured(
                    Level.DEBUG,
                    {
                        "event": "http-close",
                        "closed": closed,
                        "remaining": len(self._sessions),
                        "message": f"Closed {closed} idle session(s).",
                    },
                )

    def mark_stopped(self) -> None:
        """Record that the listener and every connection are closed."""
        self.state = ServerState.STOPPED
        self.log.log_structured(
            Level.INFO,
            {"event": "http-graceful-shutdown", "message": "Graceful shutdown complete."},
        )
