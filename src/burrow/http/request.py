"""Immutable HTTP request.

Built by the transport once the head and the full body have arrived.
Handlers receive it unchanged.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any
from urllib.parse import SplitResult, urlsplit

from burrow.http.headers import Headers


@dataclass(frozen=True, slots=True)
class Request:
    """An immutable HTTP request.

    ``target`` is the raw request target (path plus query string) as it
    appeared on the request line or in the ``:path`` pseudo-header.
    """

    method: str
    target: str
    headers: Headers
    body: bytes = b""
    http_version: str = "1.1"
    scheme: str = "http"
    authority: str | None = None
    client: tuple[str, int] | None = None

    @property
    def path(self) -> str:
        return self.target.partition("?")[0]

    @property
    def query_string(self) -> str:
        return self.target.partition("?")[2]

    @property
    def host(self) -> str:
        """The ``:authority`` for HTTP/2, the ``Host`` header otherwise."""
        return self.authority or self.headers.get("host") or "localhost"

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type")

    def url(self) -> SplitResult:
        """The parsed absolute URL of this request.

        Path and query always come from the request target; the host only
        supplies the network location.
        """
        if self.target.startswith(("http://", "https://")):
            return urlsplit(self.target)
        netloc = urlsplit(f"{self.scheme}://{self.host}").netloc
        return SplitResult(self.scheme, netloc, self.path, self.query_string, "")

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding)

    def json(self) -> Any:
        return json.loads(self.body)
