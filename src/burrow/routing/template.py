"""Path template compilation.

Turns a template such as ``/machines/{id:[a-z]+}`` into an ordered list
of ``Segment`` matchers. Request paths are split by the same scanner,
so the escaping rules are shared between the two.
"""

import re
from dataclasses import dataclass, field
from enum import Enum

from burrow.errors import RouteSyntaxError

# Capture pattern for a {name} segment with no explicit expression
DEFAULT_EXPRESSION = ".+"

# Capture name for an expression segment whose name part is empty
DEFAULT_NAME = "segment"


class SegmentKind(Enum):
    LITERAL = "literal"
    NAMED = "named"
    SPLAT = "splat"
    REGEX = "regex"


@dataclass(frozen=True, slots=True)
class Segment:
    """One compiled edge of a route template.

    Literal:  ``machines``       (kind=LITERAL, value="machines")
    Named:    ``{id}``           (kind=NAMED, name="id", value="(?P<id>.+)")
    Splat:    ``{rest*}``        (kind=SPLAT, name="rest", value="(?P<rest>.+)")
    Regex:    raw ``re.Pattern`` route key (kind=REGEX, value=pattern source)

    Two segments with the same kind, value, and name are the same edge.
    """

    kind: SegmentKind
    value: str
    name: str | None = None
    pattern: re.Pattern[str] | None = field(default=None, compare=False, repr=False)

    @property
    def is_literal(self) -> bool:
        return self.kind is SegmentKind.LITERAL

    @property
    def matches_to_end(self) -> bool:
        return self.kind in (SegmentKind.SPLAT, SegmentKind.REGEX)


def split_path(path: str) -> list[str]:
    """Split *path* on unescaped ``/`` characters.

    The leading slash does not produce a segment, so ``"/a/b"`` and
    ``"a/b"`` both give ``["a", "b"]``. A trailing slash yields a final
    empty segment and ``"/"`` yields ``[""]``. ``"\\/"`` stays inside its
    segment with the backslash kept. The empty string has no segments.

    Examples::

        "/machines/{id}"  -> ["machines", "{id}"]
        "/files/a\\/b"    -> ["files", "a\\/b"]
        "/machines/"      -> ["machines", ""]
    """
    if not path:
        return []
    segments: list[str] = []
    current: list[str] = []
    escaped = False
    for char in path:
        if char == "/" and not escaped:
            segments.append("".join(current))
            current = []
        else:
            current.append(char)
        escaped = char == "\\" and not escaped
    segments.append("".join(current))
    if path.startswith("/"):
        segments.pop(0)
    return segments


def unescape_literal(segment: str) -> str:
    """Turn escaped slashes in a literal segment back into ``/``."""
    return segment.replace("\\/", "/")


def compile_segment(raw: str, template: str) -> Segment:
    """Compile one raw template segment.

    Raises ``RouteSyntaxError`` if the derived expression does not compile.
    """
    if not (raw.startswith("{") and raw.endswith("}") and len(raw) >= 2):
        return Segment(kind=SegmentKind.LITERAL, value=unescape_literal(raw))

    inner = raw[1:-1]
    name_part, _, expression = inner.partition(":")
    splat = name_part.endswith("*")
    name = name_part.rstrip("*") or DEFAULT_NAME
    source = f"(?P<{name}>{expression or DEFAULT_EXPRESSION})"
    try:
        pattern = re.compile(source)
    except re.error as exc:
        raise RouteSyntaxError(template, str(exc)) from exc

    return Segment(
        kind=SegmentKind.SPLAT if splat else SegmentKind.NAMED,
        value=source,
        name=name,
        pattern=pattern,
    )


def compile_template(template: str) -> list[Segment]:
    """Compile a path template into its ordered segment matchers.

    Raises ``RouteSyntaxError`` if any segment fails to compile; the
    template is then unusable as a whole.
    """
    return [compile_segment(raw, template) for raw in split_path(template)]


def compile_regex_route(pattern: re.Pattern[str]) -> Segment:
    """Wrap a raw regular-expression route key as a match-to-end edge."""
    return Segment(kind=SegmentKind.REGEX, value=pattern.pattern, pattern=pattern)


def matches_empty(pattern: re.Pattern[str]) -> bool:
    """True when a raw route pattern also matches the empty path."""
    return pattern.search("") is not None
