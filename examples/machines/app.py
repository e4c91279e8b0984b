"""Machines — a read-only JSON API over a fixed fleet.

Demonstrates literal and named path segments, a regex-constrained
segment, a nested sub-router, and raising ``NotFound`` from a handler.

Run:
    burrow run app:routes        # from examples/machines
    python app.py                # same, configured from the environment
"""

from burrow import Handlers, NotFound, RequestContext, Server, ServerConfig, SubRoutes

MACHINES = (
    {"id": "mercury", "region": "us-east-1"},
    {"id": "venus", "region": "us-west-1"},
    {"id": "mars", "region": "us-west-2"},
)


def _find(machine_id: str) -> dict[str, str]:
    for machine in MACHINES:
        if machine["id"] == machine_id:
            return machine
    raise NotFound(f"No machine named {machine_id!r}.")


async def list_machines(ctx: RequestContext) -> None:
    await ctx.response.send_json(list(MACHINES))


async def get_machine(ctx: RequestContext) -> None:
    await ctx.response.send_json(_find(ctx.params["id"]))


async def machines_in_region(ctx: RequestContext) -> None:
    region = ctx.params["region"]
    await ctx.response.send_json([m for m in MACHINES if m["region"] == region])


def health(ctx: RequestContext) -> None:
    ctx.response.set_header("cache-control", "no-store")


routes = {
    "/machines": Handlers({"get": list_machines}),
    "/machines/{id}": Handlers({"get": get_machine}),
    "/regions": SubRoutes(
        {
            "/{region:[a-z]+-[a-z]+-[0-9]+}/machines": Handlers({"get": machines_in_region}),
        }
    ),
    "/health": Handlers({"*": health}),
}


if __name__ == "__main__":
    Server(routes, config=ServerConfig.from_env()).run()
