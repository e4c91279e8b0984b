"""Burrow CLI — serve a route definition and list its routes.

Entry point registered as ``burrow`` in ``pyproject.toml``::

    [project.scripts]
    burrow = "burrow.cli:main"
"""

import argparse
import sys

from burrow.config import LOG_STYLES, PROTOCOLS


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the ``burrow`` command."""
    parser = argparse.ArgumentParser(
        prog="burrow",
        description="Burrow — a small HTTP/1.1 and HTTP/2 server with a path-template router.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # -- burrow run -------------------------------------------------------
    run_parser = subparsers.add_parser("run", help="Serve a route definition")
    run_parser.add_argument(
        "routes",
        help="Import string (e.g. myapp:routes)",
    )
    run_parser.add_argument("--host", default=None, help="Bind host address")
    run_parser.add_argument("--port", type=int, default=None, help="Bind port number")
    run_parser.add_argument(
        "--protocol",
        choices=PROTOCOLS,
        default=None,
        help="Wire protocol (HTTP/2 uses prior knowledge without --secure)",
    )
    run_parser.add_argument(
        "--secure",
        action="store_true",
        default=None,
        help="Serve over TLS using TLS_KEY_FILE / TLS_CERT_FILE / TLS_CA_FILE",
    )
    run_parser.add_argument("--log-level", default=None, help="Minimum log level")
    run_parser.add_argument("--log-style", choices=LOG_STYLES, default=None, help="Log renderer")

    # -- burrow routes ----------------------------------------------------
    routes_parser = subparsers.add_parser("routes", help="List compiled routes")
    routes_parser.add_argument(
        "routes",
        help="Import string (e.g. myapp:routes)",
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "run":
        from burrow.cli._run import run_server

        run_server(args)
    elif args.command == "routes":
        from burrow.cli._routes import run_routes

        run_routes(args)
