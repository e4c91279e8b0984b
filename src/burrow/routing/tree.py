"""Route tree construction.

Builds an immutable segment-matching tree from a route definition.
Nodes are mutable only inside the builder; ``build_route_tree`` returns
frozen ``RouteNode`` values with read-only child mappings.
"""

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from burrow.errors import RouteSyntaxError
from burrow.logs import Level, Logger
from burrow.routing.route import (
    Handlers,
    MatchOptions,
    RouteDefinition,
    SubRoutes,
    Target,
    iter_definition,
)
from burrow.routing.template import (
    Segment,
    SegmentKind,
    compile_regex_route,
    compile_template,
    matches_empty,
)

_OPTIONS = {
    SegmentKind.LITERAL: MatchOptions(match_to_end=False, match_as_literal_string=True),
    SegmentKind.NAMED: MatchOptions(match_to_end=False, match_as_literal_string=False),
    SegmentKind.SPLAT: MatchOptions(match_to_end=True, match_as_literal_string=False),
    SegmentKind.REGEX: MatchOptions(match_to_end=True, match_as_literal_string=False),
}


@dataclass(frozen=True, slots=True)
class RouteNode:
    """A frozen node of the route tree.

    ``children`` iterates in insertion order, which is the order the
    dispatcher tries edges in.
    """

    children: Mapping[Segment, "RouteNode"] = field(default_factory=lambda: MappingProxyType({}))
    handlers: Handlers | None = None
    match_options: MatchOptions = MatchOptions()
    route_key: str | None = None


@dataclass(frozen=True, slots=True)
class RouteTree:
    """The compiled tree. Read-only once built."""

    root: RouteNode

    def routes(self) -> list[tuple[str, tuple[str, ...]]]:
        """``(route_key, methods)`` for every node that holds handlers.

        Useful for introspection (``burrow routes``).
        """
        return [
            (node.route_key or "", tuple(sorted(node.handlers.methods)))
            for node in self._walk(self.root)
            if node.handlers is not None
        ]

    def _walk(self, node: RouteNode) -> Iterator[RouteNode]:
        yield node
        for child in node.children.values():
            yield from self._walk(child)


class _NodeBuilder:
    """A node in the route tree. Mutable during construction only."""

    __slots__ = ("children", "handlers", "match_options", "route_key")

    def __init__(self, match_options: MatchOptions | None = None) -> None:
        self.children: dict[Segment, _NodeBuilder] = {}
        self.handlers: Handlers | None = None
        self.match_options = match_options or MatchOptions()
        self.route_key: str | None = None

    def child(self, segment: Segment) -> "_NodeBuilder":
        """Return the child for *segment*, creating it on first use."""
        existing = self.children.get(segment)
        if existing is not None:
            return existing
        created = _NodeBuilder(_OPTIONS[segment.kind])
        self.children[segment] = created
        return created

    def freeze(self) -> RouteNode:
        return RouteNode(
            children=MappingProxyType(
                {segment: child.freeze() for segment, child in self.children.items()}
            ),
            handlers=self.handlers,
            match_options=self.match_options,
            route_key=self.route_key,
        )


def build_route_tree(definition: RouteDefinition, *, log: Logger | None = None) -> RouteTree:
    """Compile *definition* into a ``RouteTree``.

    Raw regex keys are inserted before string templates at every level.
    A template that fails to compile is logged as a warning and left out;
    the rest of the tree is still built.

    Raises ``TypeError`` for a key that is neither ``str`` nor
    ``re.Pattern``, or a target that is neither ``Handlers`` nor
    ``SubRoutes``.
    """
    log = log if log is not None else Logger()
    root = _NodeBuilder()
    _insert_definition(root, definition, "", log)
    return RouteTree(root=root.freeze())


def _insert_definition(
    node: _NodeBuilder,
    definition: RouteDefinition,
    prefix: str,
    log: Logger,
) -> None:
    entries = list(iter_definition(definition))

    for pattern, target in entries:
        if isinstance(pattern, re.Pattern):
            route_key = prefix + pattern.pattern
            if matches_empty(pattern):
                _attach(node, target, route_key, log)
            else:
                _attach(node.child(compile_regex_route(pattern)), target, route_key, log)
        elif not isinstance(pattern, str):
            msg = f"Route keys must be str or re.Pattern, got {type(pattern).__name__}"
            raise TypeError(msg)

    for pattern, target in entries:
        if not isinstance(pattern, str):
            continue
        try:
            segments = compile_template(pattern)
        except RouteSyntaxError as exc:
            log.log_structured(Level.WARN, {"event": "http-router", "message": str(exc)})
            continue
        terminal = node
        for segment in segments:
            terminal = terminal.child(segment)
        _attach(terminal, target, prefix + pattern, log)


def _attach(node: _NodeBuilder, target: Target, route_key: str, log: Logger) -> None:
    if isinstance(target, SubRoutes):
        _insert_definition(node, target.definition, route_key, log)
        return
    if not isinstance(target, Handlers):
        msg = f"Route targets must be Handlers or SubRoutes, got {type(target).__name__}"
        raise TypeError(msg)

    if node.handlers is None:
        node.handlers = target
        node.route_key = route_key
        return

    node.handlers, conflicts = node.handlers.merged_with(target)
    if conflicts:
        log.log_structured(
            Level.WARN,
            {
                "event": "http-router",
                "message": f"Route `{route_key}` repeats {', '.join(sorted(conflicts))} "
                f"already handled by `{node.route_key}`; keeping the first",
            },
        )
