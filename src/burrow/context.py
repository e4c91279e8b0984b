"""Per-request context handed to route handlers."""

from dataclasses import dataclass
from urllib.parse import SplitResult

from burrow.http.request import Request
from burrow.http.response import ResponseWriter
from burrow.logs import Logger
from burrow.routing.route import SegmentMatch, merge_captures


@dataclass(frozen=True, slots=True)
class RequestContext:
    """Everything a handler needs for one request.

    ``matches`` holds one record per matched edge, in path order, so
    ``matches[-1]`` is the deepest edge. ``params`` merges the named
    captures of all of them.
    """

    request: Request
    response: ResponseWriter
    url: SplitResult
    matches: tuple[SegmentMatch, ...]
    log: Logger
    route_key: str | None = None

    @property
    def params(self) -> dict[str, str]:
        return merge_captures(self.matches)
