"""Burrow — a small HTTP/1.1 and HTTP/2 server with a path-template router.

Routes are declared once, compiled into an immutable tree, and served
until SIGINT/SIGTERM starts a graceful shutdown.

Basic usage::

    from burrow import Handlers, Server, ServerConfig

    async def hello(ctx):
        await ctx.response.send_json({"hello": ctx.params["name"]})

    routes = {"/hello/{name}": Handlers({"get": hello})}

    Server(routes, config=ServerConfig.from_env()).run()
"""

__version__ = "0.1.0"
__all__ = [
    "BurrowError",
    "ConfigurationError",
    "HTTPError",
    "Handlers",
    "Level",
    "Logger",
    "MethodMismatch",
    "NotFound",
    "Request",
    "RequestContext",
    "ResponseWriter",
    "RouteTree",
    "Server",
    "ServerConfig",
    "SubRoutes",
    "build_route_tree",
    "dispatch",
]

_LAZY = {
    "BurrowError": "burrow.errors",
    "ConfigurationError": "burrow.errors",
    "HTTPError": "burrow.errors",
    "MethodMismatch": "burrow.errors",
    "NotFound": "burrow.errors",
    "Handlers": "burrow.routing.route",
    "SubRoutes": "burrow.routing.route",
    "RouteTree": "burrow.routing.tree",
    "build_route_tree": "burrow.routing.tree",
    "dispatch": "burrow.routing.dispatch",
    "Level": "burrow.logs",
    "Logger": "burrow.logs",
    "Request": "burrow.http.request",
    "ResponseWriter": "burrow.http.response",
    "RequestContext": "burrow.context",
    "ServerConfig": "burrow.config",
    "Server": "burrow.server.app",
}


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import burrow`` from pulling in the transports until needed.
    """
    module_name = _LAZY.get(name)
    if module_name is None:
        msg = f"module 'burrow' has no attribute {name!r}"
        raise AttributeError(msg)

    import importlib

    return getattr(importlib.import_module(module_name), name)
