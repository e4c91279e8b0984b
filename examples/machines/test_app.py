"""Tests for the machines example."""

from burrow.config import ServerConfig
from burrow.testing import TestClient


class TestMachinesApp:
    """Every route in the machines example, served over real sockets."""

    async def test_list_machines(self, example_routes) -> None:
        async with TestClient(example_routes) as client:
            response = await client.get("/machines")
            assert response.status_code == 200
            assert response.headers["content-type"] == "application/json"
            assert [m["id"] for m in response.json()] == ["mercury", "venus", "mars"]

    async def test_get_one_machine(self, example_routes) -> None:
        async with TestClient(example_routes) as client:
            response = await client.get("/machines/mars")
            assert response.status_code == 200
            assert response.json() == {"id": "mars", "region": "us-west-2"}

    async def test_unknown_machine_is_404(self, example_routes) -> None:
        async with TestClient(example_routes) as client:
            response = await client.get("/machines/pluto")
            assert response.status_code == 404
            assert "pluto" in response.text

    async def test_post_to_get_only_route_is_406(self, example_routes) -> None:
        async with TestClient(example_routes) as client:
            response = await client.post("/machines", content=b"{}")
            assert response.status_code == 406
            assert response.text == "Method not allowed."

    async def test_nested_region_route(self, example_routes) -> None:
        async with TestClient(example_routes) as client:
            response = await client.get("/regions/us-west-1/machines")
            assert response.status_code == 200
            assert response.json() == [{"id": "venus", "region": "us-west-1"}]

    async def test_region_must_match_pattern(self, example_routes) -> None:
        async with TestClient(example_routes) as client:
            response = await client.get("/regions/nowhere/machines")
            assert response.status_code == 404

    async def test_wildcard_health_ends_empty(self, example_routes) -> None:
        async with TestClient(example_routes) as client:
            response = await client.delete("/health")
            assert response.status_code == 200
            assert response.content == b""
            assert response.headers["cache-control"] == "no-store"

    async def test_over_http2(self, example_routes) -> None:
        config = ServerConfig(host="127.0.0.1", protocol="http2", keep_alive_timeout=1.0)
        async with TestClient(example_routes, config=config) as client:
            response = await client.get("/machines/venus")
            assert response.http_version == "HTTP/2"
            assert response.json()["region"] == "us-west-1"
