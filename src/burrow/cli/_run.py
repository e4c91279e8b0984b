"""``burrow run`` — serve a route definition until signalled.

Configuration comes from the environment first; flags given on the
command line override it.
"""

import argparse
import dataclasses
import sys

from burrow.cli._resolve import resolve_routes
from burrow.config import ServerConfig
from burrow.errors import ConfigurationError


def build_config(args: argparse.Namespace) -> ServerConfig:
    """Environment configuration with command-line overrides applied."""
    config = ServerConfig.from_env()
    overrides = {
        field: value
        for field, value in (
            ("host", args.host),
            ("port", args.port),
            ("protocol", args.protocol),
            ("secure", args.secure),
            ("log_level", args.log_level),
            ("log_style", args.log_style),
        )
        if value is not None
    }
    return dataclasses.replace(config, **overrides)


def run_server(args: argparse.Namespace) -> None:
    """Resolve ``args.routes`` and serve it; exits with the server's code."""
    try:
        routes = resolve_routes(args.routes)
        config = build_config(args)
    except (ModuleNotFoundError, AttributeError, TypeError, ConfigurationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    from burrow.server.app import Server

    Server(routes, config=config).run()
