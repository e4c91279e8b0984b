"""``burrow routes`` — list compiled routes.

Resolves an import string to a route definition, compiles it, and
prints every route key that holds handlers with its methods.
"""

import argparse
import sys

from burrow.cli._resolve import resolve_routes
from burrow.routing.tree import RouteTree, build_route_tree


def run_routes(args: argparse.Namespace) -> None:
    """Print a table of ROUTE and METHODS for ``args.routes``."""
    try:
        resolved = resolve_routes(args.routes)
    except (ModuleNotFoundError, AttributeError, TypeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    tree = resolved if isinstance(resolved, RouteTree) else build_route_tree(resolved)
    rows = [(route_key or "/", ", ".join(m.upper() for m in methods)) for route_key, methods in tree.routes()]
    if not rows:
        print("No routes registered.")
        return

    width = max(max(len(row[0]) for row in rows), 5)  # "ROUTE" header
    fmt = f"{{:<{width}}}  {{}}"
    print(fmt.format("ROUTE", "METHODS"))
    print("-" * min(width + 2 + max(len(row[1]) for row in rows), 80))
    for route_key, methods in rows:
        print(fmt.format(route_key, methods))
