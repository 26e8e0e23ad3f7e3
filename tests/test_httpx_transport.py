"""Tests for guarded_http.transport.httpx_transport, driven by httpx.MockTransport."""

from __future__ import annotations

import io

import httpx
import pytest

from guarded_http.services.client import HttpClient, HttpClientConfig
from guarded_http.services.errors import (
    HttpStatusError,
    RequestTimeoutError,
    TransportError,
)
from guarded_http.transport.base import Request
from guarded_http.transport.httpx_transport import HttpxTransport


def _transport(handler) -> HttpxTransport:
    client = httpx.AsyncClient(
        base_url="https://api.example.com",
        transport=httpx.MockTransport(handler),
    )
    return HttpxTransport(base_url="https://api.example.com", client=client)


class TestHttpxTransport:
    @pytest.mark.asyncio
    async def test_json_response(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/users"
            assert request.url.params["page"] == "2"
            assert request.headers["authorization"] == "Bearer abc"
            return httpx.Response(200, json=[{"id": 1}], headers={"X-Total-Pages": "4"})

        transport = _transport(handler)
        response = await transport.send(
            Request("GET", "/users", params={"page": 2}, headers={"Authorization": "Bearer abc"})
        )

        assert response.status_code == 200
        assert response.data == [{"id": 1}]
        assert response.headers["x-total-pages"] == "4"
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_non_json_body_falls_back_to_text(self):
        transport = _transport(lambda request: httpx.Response(200, text="plain"))
        response = await transport.send(Request("GET", "/"))
        assert response.data == "plain"

    @pytest.mark.asyncio
    async def test_bytes_response(self):
        transport = _transport(lambda request: httpx.Response(200, content=b"\x89PNG"))
        response = await transport.send(Request("GET", "/logo", response_type="bytes"))
        assert response.data == b"\x89PNG"

    @pytest.mark.asyncio
    async def test_json_body_sent(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = request.content
            return httpx.Response(201)

        transport = _transport(handler)
        response = await transport.send(Request("POST", "/items", json={"name": "x"}))

        assert response.status_code == 201
        assert response.data is None
        assert b'"name"' in seen["body"]

    @pytest.mark.asyncio
    async def test_error_status(self):
        transport = _transport(lambda request: httpx.Response(500, json={"error": "db"}))

        with pytest.raises(HttpStatusError) as exc_info:
            await transport.send(Request("GET", "/"))

        assert exc_info.value.status == 500
        assert exc_info.value.data == {"error": "db"}
        assert exc_info.value.message == "Server error. Try again later."

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        transport = _transport(handler)

        with pytest.raises(TransportError) as exc_info:
            await transport.send(Request("GET", "/"))
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        transport = _transport(handler)

        with pytest.raises(RequestTimeoutError):
            await transport.send(Request("GET", "/", timeout=1.5))

    @pytest.mark.asyncio
    async def test_upload_progress(self):
        payload = b"x" * 150_000
        received = {}

        def handler(request: httpx.Request) -> httpx.Response:
            received["body"] = request.content
            return httpx.Response(200, json={"ok": True})

        transport = _transport(handler)
        progress = []
        request = Request(
            "POST",
            "/files",
            files={"file": ("data.bin", io.BytesIO(payload))},
            on_upload_progress=progress.append,
        )

        await transport.send(request)

        assert progress[-1] == 100
        assert progress == sorted(progress)
        assert payload in received["body"]
        assert b'filename="data.bin"' in received["body"]


class TestClientOverHttpx:
    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        attempts = {"count": 0}

        def handler(request):
            attempts["count"] += 1
            if attempts["count"] == 1:
                return httpx.Response(503)
            return httpx.Response(200, json={"ok": True})

        client = HttpClient(
            HttpClientConfig(retries=2, retry_base_delay=0.001),
            transport=_transport(handler),
        )

        response = await client.get("/health")
        assert response.data == {"ok": True}
        assert attempts["count"] == 2
        await client.close()
