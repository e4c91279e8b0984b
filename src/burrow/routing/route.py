"""Route definition values and dispatch results.

A route definition pairs patterns with targets. A target is exactly one
of two cases, ``Handlers`` or ``SubRoutes``, resolved once when the tree
is built.
"""

import re
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, TypeAlias

Handler: TypeAlias = Callable[..., Any]

WILDCARD = "*"


@dataclass(frozen=True, slots=True)
class Handlers:
    """Handlers keyed by lowercase HTTP method, plus an optional ``*``.

    Method names are normalized to lowercase::

        Handlers({"GET": list_machines, "*": anything_else})
    """

    methods: Mapping[str, Handler] = field(default_factory=dict)

    def __post_init__(self) -> None:
        normalized = {method.lower(): handler for method, handler in self.methods.items()}
        object.__setattr__(self, "methods", MappingProxyType(normalized))

    def select(self, method: str) -> Handler | None:
        """The handler for *method*, else the wildcard, else ``None``."""
        return self.methods.get(method.lower()) or self.methods.get(WILDCARD)

    def merged_with(self, other: "Handlers") -> tuple["Handlers", list[str]]:
        """Combine two sets; methods already present here win.

        Returns the merged set and the methods *other* could not claim.
        """
        combined = dict(self.methods)
        conflicts = [method for method in other.methods if method in combined]
        for method, handler in other.methods.items():
            combined.setdefault(method, handler)
        return Handlers(combined), conflicts


@dataclass(frozen=True, slots=True)
class SubRoutes:
    """A nested route definition spliced in under the parent path."""

    definition: "RouteDefinition"


Target: TypeAlias = Handlers | SubRoutes
RoutePattern: TypeAlias = str | re.Pattern[str]
RouteDefinition: TypeAlias = (
    Mapping[RoutePattern, Target] | Iterable[tuple[RoutePattern, Target]]
)


def iter_definition(definition: RouteDefinition) -> Iterator[tuple[RoutePattern, Target]]:
    """Yield ``(pattern, target)`` pairs in definition order."""
    if isinstance(definition, Mapping):
        yield from definition.items()
    else:
        yield from definition


@dataclass(frozen=True, slots=True)
class MatchOptions:
    """How an edge compares against the request path."""

    match_to_end: bool = False
    match_as_literal_string: bool = False


@dataclass(frozen=True, slots=True)
class SegmentMatch:
    """What one edge matched during dispatch.

    ``text`` is the matched text, ``groups`` the named captures (``None``
    for literal edges and patterns without named groups), ``index`` the
    position of the first path segment the edge consumed, and ``input``
    the subject the edge was compared against.
    """

    text: str
    groups: Mapping[str, str | None] | None
    index: int
    input: str

    def get(self, name: str, default: str | None = None) -> str | None:
        if self.groups is None:
            return default
        value = self.groups.get(name)
        return default if value is None else value


@dataclass(frozen=True, slots=True)
class Dispatch:
    """Result of walking the route tree for one request.

    ``handlers`` is the handler set the walk reached (``None`` on a miss),
    ``handler`` the callable selected for the method (the fallback when
    nothing fits).
    """

    route_key: str | None
    matches: tuple[SegmentMatch, ...]
    handler: Handler
    handlers: Handlers | None = None

    @property
    def matched(self) -> bool:
        return self.handlers is not None

    @property
    def params(self) -> dict[str, str]:
        return merge_captures(self.matches)


def merge_captures(matches: Iterable[SegmentMatch]) -> dict[str, str]:
    """Named captures from every edge, later edges winning on clashes."""
    merged: dict[str, str] = {}
    for match in matches:
        if match.groups:
            merged.update({k: v for k, v in match.groups.items() if v is not None})
    return merged
