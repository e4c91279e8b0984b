"""End-to-end tests for burrow.server — real sockets, real transports."""

import io
import json
import os
import signal
import sys

import anyio
import h2.connection
import h2.events
from h2.settings import SettingCodes
import httpx
import pytest

from burrow.config import ServerConfig
from burrow.logs import Logger
from burrow.routing.route import Handlers
from burrow.server.app import Server
from burrow.testing import TestClient

MACHINES = [
    {"id": "mercury", "region": "us-east-1"},
    {"id": "venus", "region": "us-west-1"},
    {"id": "mars", "region": "us-west-2"},
]


async def list_machines(ctx) -> None:
    await ctx.response.send_json(MACHINES)


async def get_machine(ctx) -> None:
    for machine in MACHINES:
        if machine["id"] == ctx.params["id"]:
            await ctx.response.send_json(machine)
            return
    ctx.response.status_code = 404


async def echo(ctx) -> None:
    await ctx.response.send_text(ctx.request.text())


ROUTES = {
    "/machines": Handlers({"get": list_machines}),
    "/machines/{id}": Handlers({"get": get_machine}),
    "/echo": Handlers({"post": echo}),
}


def _config(**overrides) -> ServerConfig:
    overrides.setdefault("host", "127.0.0.1")
    overrides.setdefault("keep_alive_timeout", 1.0)
    return ServerConfig(**overrides)


def _events(output: io.StringIO) -> list[str]:
    return [json.loads(line)["event"] for line in output.getvalue().splitlines()]


async def _read_until(stream, marker: bytes) -> bytes:
    data = b""
    with anyio.fail_after(5):
        while marker not in data:
            data += await stream.receive()
    return data


class _Gate:
    """A handler that blocks until released, for in-flight shutdown tests."""

    def __init__(self) -> None:
        self.entered = anyio.Event()
        self.release = anyio.Event()

    async def __call__(self, ctx) -> None:
        self.entered.set()
        await self.release.wait()
        await ctx.response.send_text("done")


class TestMachinesOverHttp11:
    async def test_list(self) -> None:
        async with TestClient(ROUTES) as client:
            response = await client.get("/machines")
            assert response.status_code == 200
            assert response.json() == MACHINES

    async def test_one(self) -> None:
        async with TestClient(ROUTES) as client:
            response = await client.get("/machines/mars")
            assert response.json() == {"id": "mars", "region": "us-west-2"}

    async def test_missing_machine(self) -> None:
        async with TestClient(ROUTES) as client:
            assert (await client.get("/machines/pluto")).status_code == 404

    async def test_unrouted_path(self) -> None:
        async with TestClient(ROUTES) as client:
            response = await client.get("/planets")
            assert response.status_code == 404
            assert response.text == "Not found."
            assert response.headers["content-type"].startswith("text/plain")

    async def test_wrong_method(self) -> None:
        async with TestClient(ROUTES) as client:
            assert (await client.post("/machines")).status_code == 406

    async def test_request_body(self) -> None:
        async with TestClient(ROUTES) as client:
            response = await client.post("/echo", content=b"ping")
            assert response.text == "ping"

    async def test_head_has_no_body(self) -> None:
        async with TestClient({"/machines": Handlers({"head": list_machines})}) as client:
            response = await client.head("/machines")
            assert response.status_code == 200
            assert int(response.headers["content-length"]) == len(json.dumps(MACHINES))
            assert response.content == b""

    async def test_keep_alive_reuses_connection(self) -> None:
        async with TestClient(ROUTES) as client:
            for _ in range(3):
                assert (await client.get("/machines")).status_code == 200
            assert client.server.coordinator.active_sessions == 1

    async def test_handler_error_contained(self) -> None:
        def broken(ctx) -> None:
            raise RuntimeError("boom")

        async with TestClient({"/broken": Handlers({"get": broken}), **ROUTES}) as client:
            assert (await client.get("/broken")).status_code == 500
            assert (await client.get("/machines")).status_code == 200
        assert "http-routing-error" in _events(client.log_output)

    async def test_error_after_content_length_is_framed(self) -> None:
        def sized(ctx) -> None:
            ctx.response.set_header("content-length", 100)
            raise RuntimeError("lost the body")

        client = TestClient({"/sized": Handlers({"get": sized}), **ROUTES})
        async with client:
            response = await client.get("/sized")
            assert response.status_code == 500
            assert response.text == "Internal server error."
            assert (await client.get("/machines")).status_code == 200
        events = _events(client.log_output)
        assert events.count("http-routing-error") == 1
        assert "http-session-error" not in events


class TestMachinesOverHttp2:
    async def test_prior_knowledge(self) -> None:
        async with TestClient(ROUTES, config=_config(protocol="http2")) as client:
            response = await client.get("/machines/mars")
            assert response.http_version == "HTTP/2"
            assert response.json()["id"] == "mars"

    async def test_concurrent_streams(self) -> None:
        async with TestClient(ROUTES, config=_config(protocol="http2")) as client:
            results: dict[str, int] = {}

            async def fetch(path: str) -> None:
                results[path] = (await client.get(path)).status_code

            async with anyio.create_task_group() as tg:
                for path in ("/machines", "/machines/venus", "/machines/pluto", "/nowhere"):
                    tg.start_soon(fetch, path)

        assert results == {"/machines": 200, "/machines/venus": 200, "/machines/pluto": 404, "/nowhere": 404}

    async def test_large_body_respects_flow_control(self) -> None:
        payload = "x" * 200_000

        async def big(ctx) -> None:
            await ctx.response.send_text(payload)

        async with TestClient({"/big": Handlers({"get": big})}, config=_config(protocol="http2")) as client:
            response = await client.get("/big")
            assert response.text == payload

    async def test_post_body(self) -> None:
        async with TestClient(ROUTES, config=_config(protocol="http2")) as client:
            assert (await client.post("/echo", content=b"over h2")).text == "over h2"

    async def test_goaway_on_shutdown(self) -> None:
        server = Server(ROUTES, config=_config(protocol="http2"), log=Logger(stream=io.StringIO()))
        async with anyio.create_task_group() as tg:
            host, port = await tg.start(lambda task_status: server.serve(handle_signals=False, task_status=task_status))
            stream = await anyio.connect_tcp(host, port)
            conn = h2.connection.H2Connection()
            conn.initiate_connection()
            await stream.send(conn.data_to_send())
            conn.receive_data(await stream.receive())  # server settings

            server.shutdown()
            terminated = False
            with anyio.fail_after(5):
                while not terminated:
                    try:
                        data = await stream.receive()
                    except (anyio.EndOfStream, anyio.BrokenResourceError):
                        break
                    events = conn.receive_data(data)
                    terminated = any(isinstance(e, h2.events.ConnectionTerminated) for e in events)
            await stream.aclose()
        assert terminated

    async def test_settings_window_growth_resumes_blocked_stream(self) -> None:
        payload = "y" * 1000

        async def big(ctx) -> None:
            await ctx.response.send_text(payload)

        config = _config(protocol="http2")
        async with TestClient({"/big": Handlers({"get": big})}, config=config) as client:
            host, port = client.server.address
            async with await anyio.connect_tcp(host, port) as stream:
                conn = h2.connection.H2Connection()

                async def flush() -> None:
                    if data := conn.data_to_send():
                        await stream.send(data)

                conn.initiate_connection()
                conn.update_settings({SettingCodes.INITIAL_WINDOW_SIZE: 10})
                conn.send_headers(
                    1,
                    [(":method", "GET"), (":path", "/big"), (":scheme", "http"), (":authority", host)],
                    end_stream=True,
                )
                await flush()

                body = b""
                ended = False
                with anyio.fail_after(5):
                    while len(body) < 10:
                        for event in conn.receive_data(await stream.receive()):
                            if isinstance(event, h2.events.DataReceived):
                                body += event.data
                        await flush()

                    assert len(body) == 10
                    conn.update_settings({SettingCodes.INITIAL_WINDOW_SIZE: 65535})
                    await flush()
                    while not ended:
                        for event in conn.receive_data(await stream.receive()):
                            if isinstance(event, h2.events.DataReceived):
                                body += event.data
                            elif isinstance(event, h2.events.StreamEnded):
                                ended = True
                        await flush()

        assert body == payload.encode()


class TestGracefulShutdown:
    async def test_exit_code_and_lifecycle_logs(self) -> None:
        client = TestClient(ROUTES)
        async with client:
            await client.get("/machines")
        assert client.exit_code == 0
        assert _events(client.log_output) == ["http-listen", "http-close", "http-graceful-shutdown"]

    async def test_listen_log_fields(self) -> None:
        client = TestClient(ROUTES)
        async with client:
            host, port = client.server.address
        entry = json.loads(client.log_output.getvalue().splitlines()[0])
        assert entry["event"] == "http-listen"
        assert (entry["host"], entry["port"]) == (host, port)
        assert entry["family"] == "IPv4"
        assert entry["protocol"] == "http1.1"
        assert entry["secure"] is False
        assert entry["message"] == f"Server listening on http://127.0.0.1:{port}"

    async def test_idle_keep_alive_closed_immediately(self) -> None:
        client = TestClient(ROUTES, config=_config(keep_alive_timeout=30.0))
        with anyio.fail_after(5):
            async with client:
                await client.get("/machines")
                assert client.server.coordinator.active_sessions == 1
        assert client.server.coordinator.active_sessions == 0

    async def test_in_flight_request_completes(self) -> None:
        gate = _Gate()
        client = TestClient({"/slow": Handlers({"get": gate})}, config=_config(keep_alive_timeout=0.2))
        async with client:
            result: dict[str, httpx.Response] = {}

            async def fetch() -> None:
                result["response"] = await client.get("/slow")

            async with anyio.create_task_group() as tg:
                tg.start_soon(fetch)
                await gate.entered.wait()
                client.server.shutdown()
                await anyio.sleep(0.3)
                assert client.server.coordinator.active_sessions == 1
                gate.release.set()

        response = result["response"]
        assert response.text == "done"
        assert response.headers["connection"] == "close"
        assert client.exit_code == 0
        assert client.server.coordinator.active_sessions == 0

    async def test_in_flight_http2_stream_completes(self) -> None:
        gate = _Gate()
        config = _config(protocol="http2", keep_alive_timeout=0.2)
        client = TestClient({"/slow": Handlers({"get": gate})}, config=config)
        async with client:
            result: dict[str, httpx.Response] = {}

            async def fetch() -> None:
                result["response"] = await client.get("/slow")

            async with anyio.create_task_group() as tg:
                tg.start_soon(fetch)
                await gate.entered.wait()
                client.server.shutdown()
                gate.release.set()

        assert result["response"].text == "done"
        assert client.exit_code == 0

    async def test_new_connections_refused_after_shutdown(self) -> None:
        client = TestClient(ROUTES)
        async with client:
            host, port = client.server.address
        with pytest.raises(OSError):
            await anyio.connect_tcp(host, port)

    async def test_bind_failure_exits_with_one(self) -> None:
        async with TestClient(ROUTES) as running:
            _, port = running.server.address
            output = io.StringIO()
            server = Server(ROUTES, config=_config(port=port), log=Logger(stream=output))
            assert await server.serve(handle_signals=False) == 1
        entries = [json.loads(line) for line in output.getvalue().splitlines()]
        assert entries[0]["event"] == "http-server-error"
        assert entries[0]["level"] == "fatal"
        assert entries[-1]["event"] == "http-graceful-shutdown"

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
    async def test_sigterm_initiates_shutdown(self) -> None:
        server = Server(ROUTES, config=_config(), log=Logger(stream=io.StringIO()))
        async with anyio.create_task_group() as tg:
            await tg.start(lambda task_status: server.serve(task_status=task_status))
            await anyio.sleep(0.1)
            os.kill(os.getpid(), signal.SIGTERM)
        assert server.coordinator.exit_code == 0
        assert server.coordinator.state.value == "stopped"


class TestHttp11Wire:
    async def test_expect_continue(self) -> None:
        async with TestClient(ROUTES) as client:
            host, port = client.server.address
            async with await anyio.connect_tcp(host, port) as stream:
                await stream.send(
                    b"POST /echo HTTP/1.1\r\nHost: x\r\nContent-Length: 4\r\n"
                    b"Expect: 100-continue\r\n\r\n"
                )
                interim = await _read_until(stream, b"\r\n\r\n")
                assert interim.startswith(b"HTTP/1.1 100 ")
                await stream.send(b"ping")
                final = await _read_until(stream, b"ping")
                assert b"HTTP/1.1 200 " in final

    async def test_malformed_request_is_400(self) -> None:
        client = TestClient(ROUTES)
        async with client:
            host, port = client.server.address
            async with await anyio.connect_tcp(host, port) as stream:
                await stream.send(b"NOT HTTP AT ALL\r\n\r\n")
                response = await _read_until(stream, b"\r\n\r\n")
                assert response.startswith(b"HTTP/1.1 400 ")
        assert "http-request-error" in _events(client.log_output)

    async def test_idle_connection_times_out(self) -> None:
        async with TestClient(ROUTES, config=_config(keep_alive_timeout=0.2)) as client:
            host, port = client.server.address
            async with await anyio.connect_tcp(host, port) as stream:
                with anyio.fail_after(5), pytest.raises((anyio.EndOfStream, anyio.BrokenResourceError)):
                    await stream.receive()


class TestTls:
    def _secure(self, tls_files, **overrides) -> ServerConfig:
        cert_file, key_file = tls_files
        return _config(secure=True, tls_cert_file=cert_file, tls_key_file=key_file, tls_ca_file=None, **overrides)

    async def test_https(self, tls_files) -> None:
        async with TestClient(ROUTES, config=self._secure(tls_files)) as client:
            assert client.server.url.startswith("https://")
            response = await client.get("/machines/venus")
            assert response.json()["region"] == "us-west-1"
            assert response.http_version == "HTTP/1.1"

    async def test_h2_negotiated_by_alpn(self, tls_files) -> None:
        async with TestClient(ROUTES, config=self._secure(tls_files, protocol="http2")) as client:
            response = await client.get("/machines")
            assert response.http_version == "HTTP/2"
            assert len(response.json()) == 3

    async def test_plaintext_on_tls_port_logged(self, tls_files) -> None:
        client = TestClient(ROUTES, config=self._secure(tls_files))
        async with client:
            host, port = client.server.address
            async with await anyio.connect_tcp(host, port) as stream:
                await stream.send(b"GET / HTTP/1.1\r\nHost: x\r\n\r\n")
                with anyio.fail_after(5):
                    try:
                        while await stream.receive():
                            pass
                    except (anyio.EndOfStream, anyio.BrokenResourceError):
                        pass
        assert "http-tls-error" in _events(client.log_output)

    async def test_missing_certificate_is_fatal(self, tmp_path) -> None:
        output = io.StringIO()
        config = _config(secure=True, tls_cert_file=tmp_path / "nope.pem", tls_key_file=tmp_path / "nope-key.pem")
        server = Server(ROUTES, config=config, log=Logger(stream=output))
        assert await server.serve(handle_signals=False) == 1
        assert json.loads(output.getvalue().splitlines()[0])["event"] == "http-server-error"
