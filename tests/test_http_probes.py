from __future__ import annotations

import json
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer

import httpx
import pytest

from status_checks.probe_http import check_http
from status_checks.probe_json import _MISSING, check_json, resolve_json_path
from status_checks.probe_statuspage import check_statuspage, statuspage_api_url


def _json_route(payload: object) -> tuple[int, str, str]:
    return 200, "application/json", json.dumps(payload)


ROUTES: dict[str, tuple[int, str, str]] = {
    "/ok": (200, "text/plain; charset=utf-8", "ok"),
    "/no_content": (204, "text/plain; charset=utf-8", ""),
    "/unavailable": (503, "text/plain; charset=utf-8", "down"),
    "/health": _json_route({"status": "OK", "data": {"healthy": True, "nodes": [{"state": "up"}]}}),
    "/not_json": (200, "text/html; charset=utf-8", "<html></html>"),
    "/sp/api/v2/status.json": _json_route({"status": {"indicator": "minor", "description": "Partially Degraded Service"}}),
    "/sp_ok/api/v2/status.json": _json_route({"status": {"indicator": "none", "description": "All Systems Operational"}}),
    "/sp_weird/api/v2/status.json": _json_route({"status": {"indicator": "maintenance"}}),
}


class _Handler(BaseHTTPRequestHandler):
    def log_message(self, format: str, *args) -> None:  # noqa: A002
        return

    def _respond(self, *, with_body: bool) -> None:
        if self.path == "/redirect":
            self.send_response(302)
            self.send_header("Location", "/ok")
            self.end_headers()
            return

        status, content_type, body = ROUTES.get(self.path, (404, "text/plain; charset=utf-8", "Not Found"))
        body_bytes = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        if status != 204:
            self.send_header("Content-Length", str(len(body_bytes)))
        self.end_headers()
        if with_body and status != 204:
            self.wfile.write(body_bytes)

    def do_GET(self) -> None:  # noqa: N802
        self._respond(with_body=True)

    def do_HEAD(self) -> None:  # noqa: N802
        self._respond(with_body=False)


@pytest.fixture(scope="module")
def local_server_base_url() -> str:
    httpd = HTTPServer(("127.0.0.1", 0), _Handler)
    host, port = httpd.server_address
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()

    try:
        yield f"http://{host}:{port}"
    finally:
        httpd.shutdown()
        thread.join(timeout=5)
        httpd.server_close()


@pytest.mark.asyncio
async def test_http_probe_ok_and_redirect(local_server_base_url: str) -> None:
    async with httpx.AsyncClient() as client:
        obs = await check_http(client, url=f"{local_server_base_url}/ok", timeout_seconds=5.0)
        assert obs.status == "operational"
        assert obs.status_code == 200
        assert obs.message == "HTTP 200"
        assert obs.response_time is not None and obs.response_time >= 0

        redirected = await check_http(client, url=f"{local_server_base_url}/redirect", timeout_seconds=5.0)
        assert redirected.status == "operational"
        assert redirected.status_code == 200


@pytest.mark.asyncio
async def test_http_probe_expected_status_list(local_server_base_url: str) -> None:
    async with httpx.AsyncClient() as client:
        obs = await check_http(client, url=f"{local_server_base_url}/no_content", expected_statuses=(200, 204), timeout_seconds=5.0)
        assert obs.status == "operational"

        bad = await check_http(client, url=f"{local_server_base_url}/unavailable", expected_statuses=(200, 204), timeout_seconds=5.0)
        assert bad.status == "down"
        assert bad.status_code == 503
        assert bad.message == "Expected 200/204, got 503"


@pytest.mark.asyncio
async def test_http_probe_connection_error_is_down() -> None:
    async with httpx.AsyncClient() as client:
        obs = await check_http(client, url="http://127.0.0.1:9/", timeout_seconds=2.0)
    assert obs.status == "down"
    assert obs.status_code is None
    assert obs.message


@pytest.mark.asyncio
async def test_json_probe(local_server_base_url: str) -> None:
    url = f"{local_server_base_url}/health"
    async with httpx.AsyncClient() as client:
        ok = await check_json(client, url=url, json_path="status", expected_value="ok", timeout_seconds=5.0)
        assert ok.status == "operational"
        assert ok.message == "status = OK"

        nested = await check_json(client, url=url, json_path="data.nodes.0.state", expected_value="up", timeout_seconds=5.0)
        assert nested.status == "operational"

        boolean = await check_json(client, url=url, json_path="data.healthy", expected_value=True, timeout_seconds=5.0)
        assert boolean.status == "operational"
        assert boolean.message == "data.healthy = true"

        mismatch = await check_json(client, url=url, json_path="status", expected_value="green", timeout_seconds=5.0)
        assert mismatch.status == "down"
        assert mismatch.message == "Expected green, got OK"

        missing = await check_json(client, url=url, json_path="data.version", timeout_seconds=5.0)
        assert missing.status == "down"
        assert missing.message == 'Path "data.version" not found'

        not_json = await check_json(client, url=f"{local_server_base_url}/not_json", timeout_seconds=5.0)
        assert not_json.status == "down"

        not_found = await check_json(client, url=f"{local_server_base_url}/nope", timeout_seconds=5.0)
        assert not_found.status == "down"
        assert not_found.message == "HTTP 404"


def test_resolve_json_path() -> None:
    data = {"a": {"b": [10, {"c": None}]}}
    assert resolve_json_path(data, "a.b.0") == 10
    assert resolve_json_path(data, "a.b.1.c") is None
    assert resolve_json_path(data, "a.b.5") is _MISSING
    assert resolve_json_path(data, "a.b.x") is _MISSING
    assert resolve_json_path(data, "a.b.0.z") is _MISSING


@pytest.mark.asyncio
async def test_statuspage_probe(local_server_base_url: str) -> None:
    async with httpx.AsyncClient() as client:
        minor = await check_statuspage(client, url=f"{local_server_base_url}/sp", timeout_seconds=5.0)
        assert minor.status == "degraded"
        assert minor.message == "Partially Degraded Service"

        ok = await check_statuspage(client, url=f"{local_server_base_url}/sp_ok/", timeout_seconds=5.0)
        assert ok.status == "operational"

        weird = await check_statuspage(client, url=f"{local_server_base_url}/sp_weird", timeout_seconds=5.0)
        assert weird.status == "down"
        assert weird.message == "Unknown status"


def test_statuspage_api_url() -> None:
    assert statuspage_api_url("https://status.example.com") == "https://status.example.com/api/v2/status.json"
    assert statuspage_api_url("https://status.example.com/") == "https://status.example.com/api/v2/status.json"
    assert statuspage_api_url("https://x.example.com/api/v2/summary.json") == "https://x.example.com/api/v2/summary.json"
