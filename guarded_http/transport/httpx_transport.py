"""
HttpxTransport - real network transport on top of httpx.AsyncClient.
"""

import io
import time
from typing import IO, Any, Callable

import httpx
from loguru import logger

from guarded_http.services.errors import (
    HttpStatusError,
    RequestTimeoutError,
    TransportError,
)
from guarded_http.transport.base import Request, Response, TransportAdapter


class ProgressReader:
    """
    File wrapper reporting upload progress as an integer percentage.

    httpx reads multipart file fields in chunks through read(); each chunk
    advances the counter.
    """

    def __init__(self, fileobj: IO[bytes], on_progress: Callable[[int], None]):
        self._file = fileobj
        self._on_progress = on_progress
        self._total = self._measure()
        self._loaded = 0
        self._last_percent = -1

    def _measure(self) -> int:
        position = self._file.tell()
        end = self._file.seek(0, io.SEEK_END)
        self._file.seek(position)
        return end - position

    def read(self, size: int = -1) -> bytes:
        chunk = self._file.read(size)
        if chunk:
            self._loaded += len(chunk)
            percent = round(self._loaded * 100 / (self._total or 1))
            if percent != self._last_percent:
                self._last_percent = percent
                self._on_progress(percent)
        return chunk

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if offset == 0 and whence == io.SEEK_SET:
            self._loaded = 0
            self._last_percent = -1
        return self._file.seek(offset, whence)

    def tell(self) -> int:
        return self._file.tell()


class HttpxTransport(TransportAdapter):
    """
    Transport dispatching requests with httpx.

    Usage:
        transport = HttpxTransport(base_url="https://api.example.com")
        response = await transport.send(Request("GET", "/users"))
    """

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._base_url = base_url
        self._timeout = timeout

        # HTTP client (lazy initialization)
        self._http_client = client

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
            )
        return self._http_client

    async def send(self, request: Request) -> Response[Any]:
        client = await self._get_http_client()
        timeout = request.timeout if request.timeout is not None else self._timeout

        kwargs: dict[str, Any] = {
            "params": request.params,
            "headers": request.headers,
            "timeout": timeout,
        }
        if request.json is not None:
            kwargs["json"] = request.json
        if request.data is not None:
            kwargs["data"] = request.data
        if request.content is not None:
            kwargs["content"] = request.content
        if request.files is not None:
            kwargs["files"] = self._wrap_files(request)

        started = time.monotonic()
        try:
            response = await client.request(request.method, request.url, **kwargs)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(timeout) from e
        except httpx.RequestError as e:
            raise TransportError(str(e) or type(e).__name__) from e

        data = self._decode(response, request.response_type)
        if not response.is_success:
            raise HttpStatusError(response.status_code, data=data)

        return Response(
            status_code=response.status_code,
            data=data,
            headers=response.headers,
            request=request,
            elapsed=time.monotonic() - started,
        )

    def _wrap_files(self, request: Request) -> dict[str, Any]:
        """Attach progress reporting to file objects of a multipart upload."""
        files = dict(request.files or {})
        if request.on_upload_progress is None:
            return files

        for name, value in files.items():
            if isinstance(value, tuple):
                filename, fileobj, *rest = value
                if hasattr(fileobj, "read"):
                    reader = ProgressReader(fileobj, request.on_upload_progress)
                    files[name] = (filename, reader, *rest)
            elif hasattr(value, "read"):
                files[name] = ProgressReader(value, request.on_upload_progress)
        return files

    @staticmethod
    def _decode(response: httpx.Response, response_type: str) -> Any:
        if response_type == "bytes":
            return response.content
        if response_type == "text":
            return response.text
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
            logger.debug("HttpxTransport closed")
