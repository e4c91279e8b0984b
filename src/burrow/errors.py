"""Burrow exception hierarchy.

Shared across the router, the request boundary, and the transports so
every module raises and catches the same types.
"""

from dataclasses import dataclass


class BurrowError(Exception):
    """Base for all burrow-specific errors."""


class ConfigurationError(BurrowError):
    """Raised when server or logger configuration is invalid."""


class RouteSyntaxError(ConfigurationError):
    """Raised when a path template cannot be compiled.

    The tree builder catches this, logs a warning, and leaves the
    offending route out of the tree.
    """

    def __init__(self, template: str, reason: str) -> None:
        self.template = template
        self.reason = reason
        super().__init__(f"Invalid path syntax: `{template}`. {reason}")


class ResponseStateError(BurrowError):
    """Raised when a response is mutated after its head or body was sent."""


class TransportError(BurrowError):
    """Raised when the connection fails while a response is being written."""


@dataclass(frozen=True, slots=True)
class HTTPError(BurrowError):
    """An error that maps directly to an HTTP status code.

    Raised by the fallback handler or by route handlers. The request
    boundary catches these and writes the status and detail as plain text.
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class NotFound(HTTPError):  # noqa: N818 — conventional name in web frameworks
    """404 — no route matched the request path."""

    def __init__(self, detail: str = "Not found.") -> None:
        super().__init__(status=404, detail=detail)


class MethodMismatch(HTTPError):  # noqa: N818
    """406 — a route matched the path but has no handler for the method.

    The handler set had neither the request method nor a ``*`` wildcard.
    """

    def __init__(self, detail: str = "Method not allowed.") -> None:
        super().__init__(status=406, detail=detail)
