"""Tests for guarded_http.services.client: request pipeline and facade."""

from __future__ import annotations

import asyncio
import io
from datetime import timedelta

import pytest
from loguru import logger

from guarded_http.services.client import (
    HttpClient,
    HttpClientConfig,
    close_http_client,
    get_http_client,
)
from guarded_http.services.connectivity import ManualConnectivity
from guarded_http.services.errors import (
    HttpStatusError,
    RequestTimeoutError,
    TransportError,
)
from guarded_http.settings import Settings
from guarded_http.transport.base import Response
from guarded_http.transport.httpx_transport import HttpxTransport, ProgressReader
from guarded_http.transport.mock import MockTransport


class TestConfig:
    def test_defaults(self):
        config = HttpClientConfig()
        assert config.retries == 3
        assert config.timeout == 10.0
        assert config.rate_limit_delay == 0.3
        assert config.circuit_breaker_threshold == 5
        assert config.circuit_breaker_cooldown == timedelta(seconds=60)

    def test_from_settings(self):
        settings = Settings.model_validate(
            {
                "HTTP_CLIENT_BASE_URL": "https://api.example.com",
                "HTTP_CLIENT_RETRIES": "1",
                "HTTP_CLIENT_CIRCUIT_BREAKER_COOLDOWN": "5",
                "HTTP_CLIENT_MOCK_MODE": "true",
            }
        )
        config = HttpClientConfig.from_settings(settings, retries=7)

        assert config.base_url == "https://api.example.com"
        assert config.retries == 7
        assert config.mock_mode is True
        assert config.circuit_breaker_cooldown == timedelta(seconds=5)


class TestTransportSelection:
    @pytest.mark.asyncio
    async def test_mock_mode(self):
        client = HttpClient(HttpClientConfig(mock_mode=True))
        response = await client.get("/anything")

        assert response.status_code == 200
        assert response.data == {"message": "Mocked response"}
        await client.close()

    def test_default_is_httpx(self):
        client = HttpClient(HttpClientConfig(base_url="https://api.example.com"))
        assert isinstance(client._transport, HttpxTransport)


class TestRequestPipeline:
    @pytest.mark.asyncio
    async def test_http_methods(self, make_client):
        client, transport = make_client(lambda request: Response(200, request.json))

        await client.get("/r")
        await client.get_with_params("/r", {"x": 1})
        await client.post("/r", {"a": 1})
        await client.put("/r", {"a": 2})
        await client.patch("/r", {"a": 3})
        await client.delete("/r")

        assert [c.method for c in transport.calls] == [
            "GET", "GET", "POST", "PUT", "PATCH", "DELETE",
        ]
        assert transport.calls[1].params == {"x": 1}
        assert transport.calls[2].json == {"a": 1}

    @pytest.mark.asyncio
    async def test_default_headers(self, make_client):
        client, transport = make_client(
            lambda request: Response(200, None), headers={"X-App": "demo"}
        )
        client.set_header("X-Tenant", "acme")

        await client.get("/r", headers={"X-Request": "1"})

        headers = transport.calls[0].headers
        assert headers["X-App"] == "demo"
        assert headers["X-Tenant"] == "acme"
        assert headers["X-Request"] == "1"

    @pytest.mark.asyncio
    async def test_token_provider_header(self, make_client):
        client, transport = make_client(
            lambda request: Response(200, None), token_provider=lambda: "t0k"
        )

        await client.get("/me")
        assert transport.calls[0].headers["Authorization"] == "Bearer t0k"

    @pytest.mark.asyncio
    async def test_response_transformer(self, make_client):
        client, _ = make_client(
            lambda request: Response(200, {"payload": [1, 2]}),
            response_transformer=lambda data: data["payload"],
        )

        response = await client.get("/r")
        assert response.data == [1, 2]

    @pytest.mark.asyncio
    async def test_slow_request_is_logged(self, make_client, clock):
        def handler(request):
            clock.advance(9.0)
            return Response(200, "late")

        client, _ = make_client(handler, clock=clock, slow_request_threshold=8.0)
        messages = []
        sink_id = logger.add(messages.append, level="WARNING", format="{message}")
        try:
            response = await client.get("/reports")
        finally:
            logger.remove(sink_id)

        assert response.elapsed == pytest.approx(9.0)
        assert any("[Long Request] /reports" in m for m in messages)

    @pytest.mark.asyncio
    async def test_error_normalization(self, make_client):
        def handler(request):
            raise HttpStatusError(404, data={"detail": "missing"})

        client, _ = make_client(handler)

        with pytest.raises(HttpStatusError) as exc_info:
            await client.get("/missing")

        assert exc_info.value.to_dict() == {
            "message": "Not found",
            "status": 404,
            "data": {"detail": "missing"},
        }

    @pytest.mark.asyncio
    async def test_unknown_status_message(self, make_client):
        def handler(request):
            raise HttpStatusError(418)

        client, _ = make_client(handler)

        with pytest.raises(HttpStatusError) as exc_info:
            await client.get("/teapot")
        assert exc_info.value.message == "Request failed with status code 418"

    @pytest.mark.asyncio
    async def test_foreign_exception_is_normalized(self, make_client):
        def handler(request):
            raise ConnectionResetError("peer reset")

        client, transport = make_client(handler, retries=2)

        with pytest.raises(TransportError) as exc_info:
            await client.get("/r")

        assert exc_info.value.message == "peer reset"
        assert isinstance(exc_info.value.__cause__, ConnectionResetError)
        assert len(transport.calls) == 1

    @pytest.mark.asyncio
    async def test_timeout(self, make_client):
        async def handler(request):
            await asyncio.sleep(1)
            return Response(200, None)

        client, _ = make_client(handler, timeout=0.02)

        with pytest.raises(RequestTimeoutError) as exc_info:
            await client.get("/slow")
        assert exc_info.value.timeout == 0.02

    @pytest.mark.asyncio
    async def test_retry_through_client(self, make_client):
        attempts = {"count": 0}

        def handler(request):
            attempts["count"] += 1
            if attempts["count"] < 3:
                raise TransportError("Network Error")
            return Response(200, "ok")

        client, _ = make_client(handler, retries=3)

        response = await client.get("/r")
        assert response.data == "ok"
        assert attempts["count"] == 3


class TestUploadDownload:
    @pytest.mark.asyncio
    async def test_upload_passes_file_and_progress(self, make_client, tmp_path):
        path = tmp_path / "report.csv"
        path.write_bytes(b"a,b\n1,2\n")
        client, transport = make_client(lambda request: Response(201, {"stored": True}))
        progress = []

        response = await client.upload("/files", path, on_progress=progress.append)

        assert response.status_code == 201
        request = transport.calls[0]
        assert request.method == "POST"
        filename, _ = request.files["file"]
        assert filename == "report.csv"
        assert request.on_upload_progress is not None

    @pytest.mark.asyncio
    async def test_upload_bytes(self, make_client):
        client, transport = make_client(lambda request: Response(201, None))

        await client.upload("/files", b"raw", field_name="attachment")

        filename, fileobj = transport.calls[0].files["attachment"]
        assert filename == "upload"
        assert fileobj.read() == b"raw"

    @pytest.mark.asyncio
    async def test_download_requests_bytes(self, make_client):
        client, transport = make_client(lambda request: Response(200, b"\x00\x01"))

        response = await client.download("/blob")

        assert response.data == b"\x00\x01"
        assert transport.calls[0].response_type == "bytes"


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_close_unsubscribes_connectivity(self):
        connectivity = ManualConnectivity()
        client = HttpClient(transport=MockTransport(), connectivity=connectivity)
        assert len(connectivity._listeners) == 1

        await client.close()
        assert connectivity._listeners == []

    @pytest.mark.asyncio
    async def test_close_cancels_parked_requests(self):
        connectivity = ManualConnectivity(online=False)
        client = HttpClient(transport=MockTransport(), connectivity=connectivity)

        task = asyncio.ensure_future(client.get("/later"))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        await client.close()

        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_context_manager(self):
        async with HttpClient(HttpClientConfig(mock_mode=True)) as client:
            response = await client.get("/x")
        assert response.ok

    @pytest.mark.asyncio
    async def test_health_status(self, make_client):
        client, _ = make_client(lambda request: Response(200, None))
        await client.get("/x")

        status = client.get_health_status()
        assert status["online"] is True
        assert status["circuit_breaker"]["state"] == "CLOSED"
        assert status["credentials"]["refresh_in_flight"] is False
        assert status["offline_queue"] == 0
        assert status["cancelable_requests"] == 0

    @pytest.mark.asyncio
    async def test_global_client(self):
        client = get_http_client()
        assert get_http_client() is client
        await close_http_client()
        assert get_http_client() is not client
        await close_http_client()


class TestProgressReader:
    def test_reports_percentages(self):
        progress = []
        reader = ProgressReader(io.BytesIO(b"12345678"), progress.append)

        assert reader.read(4) == b"1234"
        assert reader.read(4) == b"5678"
        assert reader.read(4) == b""
        assert progress == [50, 100]
