"""Routing — path templates compiled into an immutable matching tree.

Routes are declared as a definition, compiled once at startup, and
walked segment by segment for each request.
"""

from burrow.routing.dispatch import dispatch, fallback
from burrow.routing.route import Dispatch, Handlers, MatchOptions, SegmentMatch, SubRoutes
from burrow.routing.template import Segment, SegmentKind, compile_template, split_path
from burrow.routing.tree import RouteNode, RouteTree, build_route_tree

__all__ = [
    "Dispatch",
    "Handlers",
    "MatchOptions",
    "RouteNode",
    "RouteTree",
    "Segment",
    "SegmentKind",
    "SegmentMatch",
    "SubRoutes",
    "build_route_tree",
    "compile_template",
    "dispatch",
    "fallback",
    "split_path",
]
