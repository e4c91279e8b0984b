"""Route import resolution — resolves ``"module:attribute"`` strings.

Shared utility used by ``burrow run`` and ``burrow routes`` to locate a
route definition from a user-supplied import string.
"""

import importlib
from collections.abc import Iterable, Mapping

from burrow.routing.route import RouteDefinition
from burrow.routing.tree import RouteTree


def resolve_routes(import_string: str) -> RouteDefinition | RouteTree:
    """Resolve an import string to a route definition or compiled tree.

    Accepts ``"module:attribute"`` format.  When the attribute portion
    is omitted, defaults to ``"routes"`` (e.g. ``"myapp"`` resolves to
    ``myapp.routes``).

    Supports factory functions: if the resolved object is callable, it
    is called and its return value is used.

    Raises:
        ModuleNotFoundError: If the module cannot be imported.
        AttributeError: If the attribute does not exist on the module.
        TypeError: If the resolved object is not a definition or tree.

    """
    module_path, _, attr_name = import_string.partition(":")
    if not attr_name:
        attr_name = "routes"

    module = importlib.import_module(module_path)
    obj = getattr(module, attr_name)

    if callable(obj) and not isinstance(obj, RouteTree):
        try:
            obj = obj()
        except Exception as exc:
            msg = f"Factory function {import_string!r} raised an error: {exc}"
            raise TypeError(msg) from exc

    if isinstance(obj, (RouteTree, Mapping)):
        return obj
    if isinstance(obj, Iterable) and not isinstance(obj, (str, bytes)):
        return list(obj)

    msg = f"{import_string!r} resolved to {type(obj).__name__}, not a route definition"
    raise TypeError(msg)
