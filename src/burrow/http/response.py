"""Response sink handed to handlers.

A ``ResponseWriter`` collects status and headers until the first byte of
body is written, then streams. Each transport provides the three
primitives that put the head, body chunks, and end of message on the wire.
"""

import json as json_module
from abc import ABC, abstractmethod
from typing import Any

from burrow.errors import ResponseStateError


class ResponseWriter(ABC):
    """Status, headers, and body for one response.

    Usage inside a handler::

        ctx.response.status_code = 201
        ctx.response.set_header("Content-Type", "application/json")
        await ctx.response.end(b'{"ok": true}')
    """

    def __init__(self, *, head_only: bool = False) -> None:
        self.status_code = 200
        self.head_only = head_only
        self.headers_sent = False
        self.finished = False
        self._headers: list[tuple[str, str]] = []

    # -- Headers --

    @property
    def headers(self) -> tuple[tuple[str, str], ...]:
        return tuple(self._headers)

    def get_header(self, name: str) -> str | None:
        name_lower = name.lower()
        for key, value in self._headers:
            if key == name_lower:
                return value
        return None

    def set_header(self, name: str, value: str | int) -> None:
        """Set *name*, replacing any earlier value."""
        self._check_head_open()
        name_lower = name.lower()
        self._headers = [(k, v) for k, v in self._headers if k != name_lower]
        self._headers.append((name_lower, str(value)))

    def add_header(self, name: str, value: str | int) -> None:
        """Append *name* without replacing earlier values."""
        self._check_head_open()
        self._headers.append((name.lower(), str(value)))

    def remove_header(self, name: str) -> None:
        self._check_head_open()
        name_lower = name.lower()
        self._headers = [(k, v) for k, v in self._headers if k != name_lower]

    def clear_headers(self) -> None:
        self._check_head_open()
        self._headers = []

    # -- Body --

    async def write(self, data: bytes | str) -> None:
        """Send a body chunk, sending the head first if needed."""
        if self.finished:
            raise ResponseStateError("Cannot write to a finished response.")
        chunk = data.encode("utf-8") if isinstance(data, str) else data
        if not self.headers_sent:
            await self._start()
        if chunk and not self.head_only:
            await self._send_data(chunk)

    async def end(self, data: bytes | str = b"") -> None:
        """Finish the response, optionally with a last body chunk.

        When nothing was written yet, ``Content-Length`` is set from *data*.
        """
        if self.finished:
            raise ResponseStateError("Response already ended.")
        chunk = data.encode("utf-8") if isinstance(data, str) else data
        if not self.headers_sent:
            if self.get_header("content-length") is None:
                self.set_header("content-length", len(chunk))
            await self._start()
        if chunk and not self.head_only:
            await self._send_data(chunk)
        self.finished = True
        await self._send_end()

    async def send_text(self, text: str, *, status: int | None = None) -> None:
        if status is not None:
            self.status_code = status
        self.set_header("content-type", "text/plain; charset=utf-8")
        await self.end(text)

    async def send_json(self, obj: Any, *, status: int | None = None) -> None:
        if status is not None:
            self.status_code = status
        self.set_header("content-type", "application/json")
        await self.end(json_module.dumps(obj, ensure_ascii=False))

    # -- Transport primitives --

    async def _start(self) -> None:
        self.headers_sent = True
        await self._send_head(self.status_code, self.headers)

    def _check_head_open(self) -> None:
        if self.headers_sent:
            raise ResponseStateError("Cannot change headers after they were sent.")

    @abstractmethod
    async def _send_head(self, status: int, headers: tuple[tuple[str, str], ...]) -> None: ...

    @abstractmethod
    async def _send_data(self, data: bytes) -> None: ...

    @abstractmethod
    async def _send_end(self) -> None: ...
