"""Request-time route selection.

Walks the route tree one path segment at a time. The first child that
matches a segment is taken; a segment no child matches invalidates the
whole walk. There is no backtracking into sibling subtrees.
"""

from urllib.parse import unquote

from burrow.errors import MethodMismatch, NotFound
from burrow.logs import Level, Logger
from burrow.routing.route import Dispatch, Handler, Handlers, SegmentMatch
from burrow.routing.template import Segment, SegmentKind, split_path
from burrow.routing.tree import RouteNode, RouteTree


def split_request_path(path: str) -> list[str]:
    """Split a request path with the template scanner, then percent-decode.

    Decoding happens per segment, so ``%2F`` never creates a new segment.
    """
    return [unquote(segment) for segment in split_path(path)]


def fallback(handlers: Handlers | None) -> Handler:
    """The handler used when the walk selects nothing for the method.

    Raises ``NotFound`` when no handler set was reached and
    ``MethodMismatch`` when one was reached without a usable method.
    """

    def not_routed(context: object) -> None:
        if handlers is None:
            raise NotFound()
        raise MethodMismatch()

    return not_routed


def _subject(segment: Segment, segments: list[str], index: int, to_end: bool) -> str:
    if not to_end:
        return segments[index]
    remaining = "/".join(segments[index:])
    # Raw regex routes see the remainder as a path, leading slash included.
    return "/" + remaining if segment.kind is SegmentKind.REGEX else remaining


def _match_edge(
    segment: Segment,
    child: RouteNode,
    segments: list[str],
    index: int,
) -> SegmentMatch | None:
    options = child.match_options
    subject = _subject(segment, segments, index, options.match_to_end)

    if options.match_as_literal_string:
        if subject != segment.value:
            return None
        return SegmentMatch(text=subject, groups=None, index=index, input=subject)

    assert segment.pattern is not None
    if segment.kind is SegmentKind.REGEX:
        found = segment.pattern.search(subject)
    else:
        found = segment.pattern.fullmatch(subject)
    if found is None:
        return None
    groups = found.groupdict() if segment.pattern.groupindex else None
    return SegmentMatch(text=found.group(0), groups=groups, index=index, input=subject)


def _step(
    node: RouteNode,
    segments: list[str],
    index: int,
) -> tuple[RouteNode, SegmentMatch] | None:
    for segment, child in node.children.items():
        match = _match_edge(segment, child, segments, index)
        if match is not None:
            return child, match
    return None


def dispatch(
    tree: RouteTree,
    method: str,
    path: str,
    *,
    log: Logger | None = None,
) -> Dispatch:
    """Select the handler for *method* and *path*.

    Returns a ``Dispatch`` holding the route key, the ordered segment
    matches, and the selected handler (the fallback when nothing fits).
    """
    segments = split_request_path(path)
    matches: list[SegmentMatch] = []
    reached: RouteNode | None = tree.root

    index = 0
    while index < len(segments):
        assert reached is not None
        step = _step(reached, segments, index)
        if step is None:
            matches = []
            reached = None
            break
        child, match = step
        matches.append(match)
        reached = child
        if child.match_options.match_to_end:
            break
        index += 1

    handlers = reached.handlers if reached is not None and matches else None
    route_key = reached.route_key if handlers is not None else None
    handler = handlers.select(method) if handlers is not None else None

    if log is not None and log.supports(Level.TRACE):
        log.log_structured(
            Level.TRACE,
            {
                "event": "http-route",
                "route_key": route_key,
                "message": f"{method} {path} -> {route_key or 'no route'}",
            },
        )

    return Dispatch(
        route_key=route_key,
        matches=tuple(matches),
        handler=handler or fallback(handlers),
        handlers=handlers,
    )
