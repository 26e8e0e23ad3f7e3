"""
HttpClient - Async HTTP client with resilience and traffic control.

Combines:
- CircuitBreaker for failure protection
- RetryPolicy for transient failures
- TokenCoordinator for bearer tokens and single-flight refresh
- Debouncer, Throttler and RateLimitQueue for traffic shaping
- OfflineQueue for requests issued while disconnected
- CancellationRegistry for caller-driven aborts
"""

import asyncio
import io
import time
from dataclasses import dataclass
from datetime import timedelta
from functools import partial
from pathlib import Path
from typing import IO, Any, Awaitable, Callable, TypeVar

from loguru import logger

from guarded_http.services.batch import batch
from guarded_http.services.cancellation import (
    CancelableRequest,
    CancellationRegistry,
    CancelToken,
)
from guarded_http.services.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from guarded_http.services.connectivity import ConnectivityObserver, ManualConnectivity
from guarded_http.services.debouncer import DebounceKey, Debouncer
from guarded_http.services.errors import (
    AuthRefreshError,
    CancellationError,
    CircuitOpenError,
    HttpClientError,
    HttpStatusError,
    RequestTimeoutError,
    TransportError,
    normalize_error,
)
from guarded_http.services.pagination import PaginationWalker
from guarded_http.services.queues import OfflineQueue, RateLimitQueue
from guarded_http.services.retry import RetryPolicy
from guarded_http.services.throttle import Throttler
from guarded_http.services.token import TokenCoordinator, TokenProvider, TokenRefresher
from guarded_http.settings import Settings, global_settings
from guarded_http.transport.base import Request, Response, ResponseType, TransportAdapter
from guarded_http.transport.httpx_transport import HttpxTransport
from guarded_http.transport.mock import MockTransport

T = TypeVar("T")

DEBUG_TAG_HEADER = "X-Debug-Tag"


@dataclass
class HttpClientConfig:
    """Configuration for an HttpClient."""

    base_url: str = ""
    token_provider: TokenProvider | None = None
    refresh_token: TokenRefresher | None = None
    enable_logging: bool = False
    retries: int = 3
    retry_base_delay: float = 0.1
    timeout: float = 10.0
    mock_mode: bool = False
    rate_limit_delay: float = 0.3
    response_transformer: Callable[[Any], Any] | None = None
    circuit_breaker_threshold: int = 5
    circuit_breaker_cooldown: timedelta = timedelta(seconds=60)
    slow_request_threshold: float = 8.0
    sequential_offline_replay: bool = False
    headers: dict[str, str] | None = None

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, **overrides: Any
    ) -> "HttpClientConfig":
        """Build a config from environment settings, with explicit overrides."""
        settings = settings or global_settings
        values: dict[str, Any] = {
            "base_url": settings.base_url,
            "enable_logging": settings.enable_logging,
            "retries": settings.retries,
            "retry_base_delay": settings.retry_base_delay,
            "timeout": settings.timeout,
            "mock_mode": settings.mock_mode,
            "rate_limit_delay": settings.rate_limit_delay,
            "circuit_breaker_threshold": settings.circuit_breaker_threshold,
            "circuit_breaker_cooldown": timedelta(
                seconds=settings.circuit_breaker_cooldown
            ),
            "slow_request_threshold": settings.slow_request_threshold,
        }
        values.update(overrides)
        return cls(**values)


class HttpClient:
    """
    HTTP client gating every request through the resilience pipeline.

    Usage:
        client = HttpClient(HttpClientConfig(
            base_url="https://api.example.com",
            token_provider=lambda: store.access_token,
            refresh_token=renew_access_token,
        ))

        # Simple request
        response = await client.get("/users", params={"active": True})

        # Collapse bursts of identical searches
        response = await client.debounce_get("/search", {"q": "abc"}, wait=0.3)

        # Abort later
        pending = client.cancelable_request("/reports/big")
        client.cancel_all_requests()
    """

    def __init__(
        self,
        config: HttpClientConfig | None = None,
        *,
        transport: TransportAdapter | None = None,
        connectivity: ConnectivityObserver | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or HttpClientConfig()
        self._debug = self.config.enable_logging
        self._clock = clock
        self._headers: dict[str, str] = dict(self.config.headers or {})

        # Initialize components
        self._transport = transport or self._create_transport()
        self._circuit = CircuitBreaker(
            CircuitBreakerConfig(
                failure_threshold=self.config.circuit_breaker_threshold,
                cooldown=self.config.circuit_breaker_cooldown,
            ),
            clock=clock,
        )
        self._retry = RetryPolicy(
            retries=self.config.retries,
            base_delay=self.config.retry_base_delay,
        )
        self._tokens = TokenCoordinator(
            token_provider=self.config.token_provider,
            refresh_token=self.config.refresh_token,
            debug=self._debug,
        )
        self._debouncer = Debouncer(debug=self._debug)
        self._throttler = Throttler(debug=self._debug)
        self._rate_queue = RateLimitQueue(self.config.rate_limit_delay, debug=self._debug)
        self._offline = OfflineQueue(
            sequential=self.config.sequential_offline_replay, debug=self._debug
        )
        self._cancellations = CancellationRegistry()

        # Connectivity subscription, released in close()
        self._connectivity = connectivity or ManualConnectivity()
        self._unsubscribe: Callable[[], None] | None = self._connectivity.subscribe(
            self._on_connectivity_change
        )
        self._replay_task: asyncio.Task[int] | None = None
        # loop that parked the offline entries; replay is scheduled onto it
        self._offline_loop: asyncio.AbstractEventLoop | None = None

    def _create_transport(self) -> TransportAdapter:
        if self.config.mock_mode:
            return MockTransport()
        return HttpxTransport(base_url=self.config.base_url, timeout=self.config.timeout)

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit

    @property
    def tokens(self) -> TokenCoordinator:
        return self._tokens

    @property
    def offline_queue(self) -> OfflineQueue:
        return self._offline

    @property
    def cancellations(self) -> CancellationRegistry:
        return self._cancellations

    # Core pipeline

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        data: Any = None,
        content: bytes | None = None,
        files: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        response_type: ResponseType = "json",
        cancel_token: CancelToken | None = None,
        on_upload_progress: Callable[[int], None] | None = None,
    ) -> Response[Any]:
        """
        Make an HTTP request through the resilience pipeline.

        Raises:
            CircuitOpenError: If the circuit breaker is open
            CancellationError: If cancel_token fired
            AuthRefreshError: If a 401 triggered a refresh that failed
            RequestTimeoutError: If every attempt timed out
            HttpStatusError: For non-2xx responses after retries
            TransportError: For network failures after retries
        """
        request = Request(
            method=method,
            url=url,
            params=params,
            headers={**self._headers, **(headers or {})},
            json=json,
            data=data,
            content=content,
            files=files,
            timeout=timeout if timeout is not None else self.config.timeout,
            response_type=response_type,
            on_upload_progress=on_upload_progress,
            cancel_token=cancel_token,
        )
        return await self._dispatch(request)

    async def _dispatch(self, request: Request, allow_refresh: bool = True) -> Response[Any]:
        if request.cancel_token is not None:
            request.cancel_token.raise_if_cancelled()

        if self._circuit.check_open():
            error = CircuitOpenError(self._circuit.get_time_until_reset() or 0)
            self._log_error(error)
            raise error

        if not self._connectivity.is_online():
            return await self._park_offline(request, allow_refresh)

        self._tokens.attach_token(request)
        self._trace_request(request)

        try:
            response = await self._retry.run(
                partial(self._send, request),
                idempotent=request.is_idempotent,
                cancel_token=request.cancel_token,
                label=f"{request.method} {request.url}",
            )
        except CancellationError:
            raise
        except TransportError as e:
            if not self._connectivity.is_online():
                return await self._park_offline(request, allow_refresh)
            self._circuit.record_failure()
            self._log_error(e)
            raise
        except HttpStatusError as e:
            # the resubmitted request records its own outcome
            if e.status == 401 and allow_refresh and self._tokens.can_refresh:
                return await self._handle_unauthorized(request, e)
            self._circuit.record_failure()
            self._log_error(e)
            raise
        except HttpClientError as e:
            self._circuit.record_failure()
            self._log_error(e)
            raise

        self._circuit.record_success()
        return self._finalize(request, response)

    async def _send(self, request: Request) -> Response[Any]:
        """One transport attempt, bounded by the timeout and the cancel token."""
        request.started_at = self._clock()
        send: Awaitable[Response[Any]] = self._transport.send(request)
        if request.cancel_token is not None:
            send = request.cancel_token.run(send)

        try:
            return await asyncio.wait_for(send, request.timeout)
        except HttpClientError:
            raise
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError(request.timeout) from e
        except Exception as e:
            raise normalize_error(e) from e

    async def _handle_unauthorized(
        self, request: Request, error: HttpStatusError
    ) -> Response[Any]:
        recovery = self._tokens.handle_auth_failure(
            request, error, partial(self._dispatch, allow_refresh=False)
        )
        if request.cancel_token is not None:
            recovery = request.cancel_token.run(recovery)

        try:
            return await recovery
        except AuthRefreshError as refresh_error:
            self._circuit.record_failure()
            self._log_error(refresh_error)
            raise
        except HttpStatusError as status_error:
            # refresh started by another request failed
            if status_error is error:
                self._circuit.record_failure()
                self._log_error(error)
            raise

    async def _park_offline(self, request: Request, allow_refresh: bool) -> Response[Any]:
        self._offline_loop = asyncio.get_running_loop()
        logger.info(f"[OfflineQueue] Network offline, queueing request: {request.url}")
        future = self._offline.defer(
            partial(self._dispatch, request, allow_refresh=allow_refresh)
        )
        if request.cancel_token is not None:
            return await request.cancel_token.run(future)
        return await future

    def _finalize(self, request: Request, response: Response[Any]) -> Response[Any]:
        if request.started_at is not None:
            elapsed = self._clock() - request.started_at
            if not response.elapsed:
                response.elapsed = elapsed
            if elapsed > self.config.slow_request_threshold:
                logger.warning(
                    f"[Long Request] {request.url} took {elapsed * 1000:.0f} ms"
                )

        self._log(f"[Response] {response.status_code} {request.method} {request.url}")
        if self.config.response_transformer is not None:
            response.data = self.config.response_transformer(response.data)
        return response

    def _on_connectivity_change(self, online: bool) -> None:
        if not online:
            self._log("[OfflineQueue] Network went offline")
            return
        if self._offline_loop is None or not self._offline.pending_count:
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._offline_loop:
            self._replay_offline()
        else:
            self._offline_loop.call_soon_threadsafe(self._replay_offline)

    def _replay_offline(self) -> None:
        if self._offline.pending_count:
            self._replay_task = self._offline.replay()

    # Standard HTTP methods

    async def get(
        self, url: str, params: dict[str, Any] | None = None, **kwargs: Any
    ) -> Response[Any]:
        return await self.request("GET", url, params=params, **kwargs)

    async def get_with_params(
        self, url: str, params: dict[str, Any], **kwargs: Any
    ) -> Response[Any]:
        return await self.request("GET", url, params=params, **kwargs)

    async def post(self, url: str, json: Any = None, **kwargs: Any) -> Response[Any]:
        return await self.request("POST", url, json=json, **kwargs)

    async def put(self, url: str, json: Any = None, **kwargs: Any) -> Response[Any]:
        return await self.request("PUT", url, json=json, **kwargs)

    async def patch(self, url: str, json: Any = None, **kwargs: Any) -> Response[Any]:
        return await self.request("PATCH", url, json=json, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> Response[Any]:
        return await self.request("DELETE", url, **kwargs)

    async def upload(
        self,
        url: str,
        file: str | Path | bytes | IO[bytes],
        on_progress: Callable[[int], None] | None = None,
        field_name: str = "file",
        **kwargs: Any,
    ) -> Response[Any]:
        """
        Upload a file as multipart/form-data.

        Args:
            url: Target URL
            file: Path, raw bytes or a binary file object
            on_progress: Called with the upload percentage (0-100)
            field_name: Multipart field name
        """
        if isinstance(file, (str, Path)):
            path = Path(file)
            with path.open("rb") as fh:
                return await self._upload(url, field_name, path.name, fh, on_progress, **kwargs)

        if isinstance(file, bytes):
            return await self._upload(
                url, field_name, "upload", io.BytesIO(file), on_progress, **kwargs
            )

        filename = Path(str(getattr(file, "name", "upload"))).name
        return await self._upload(url, field_name, filename, file, on_progress, **kwargs)

    async def _upload(
        self,
        url: str,
        field_name: str,
        filename: str,
        fileobj: IO[bytes],
        on_progress: Callable[[int], None] | None,
        **kwargs: Any,
    ) -> Response[Any]:
        return await self.request(
            "POST",
            url,
            files={field_name: (filename, fileobj)},
            on_upload_progress=on_progress,
            **kwargs,
        )

    async def download(self, url: str, **kwargs: Any) -> Response[bytes]:
        """GET with the raw response body."""
        return await self.request("GET", url, response_type="bytes", **kwargs)

    def set_header(self, key: str, value: str) -> None:
        """Set a header sent with every subsequent request."""
        self._headers[key] = value

    # Traffic shaping

    def debounce_get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        wait: float = 0.3,
        **kwargs: Any,
    ) -> asyncio.Future[Response[Any]]:
        """
        Debounced GET.

        Calls with the same url and params within `wait` seconds share one
        outcome and produce a single request, issued by the last call.
        """
        key = DebounceKey.build(url, params)
        return self._debouncer.debounce(
            key, wait, partial(self.get, url, params=params, **kwargs)
        )

    async def throttle_request(
        self, request_fn: Callable[[], Awaitable[T]], limit: float = 1.0
    ) -> T:
        """Run request_fn no sooner than `limit` seconds after the last throttled dispatch."""
        return await self._throttler.throttle(request_fn, limit)

    def enqueue_request(self, request_fn: Callable[[], Awaitable[T]]) -> asyncio.Future[T]:
        """Queue request_fn behind the rate limiter (FIFO, `rate_limit_delay` apart)."""
        return self._rate_queue.enqueue(request_fn)

    # Cancellation

    def cancelable_request(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        group: str | None = None,
        **kwargs: Any,
    ) -> CancelableRequest[Response[Any]]:
        """Start a GET that can be aborted with `.cancel()` or cancel_all_requests()."""
        return self._cancellations.issue_cancelable(
            lambda token: self.get(url, params=params, cancel_token=token, **kwargs),
            group=group,
        )

    def cancel_all_requests(self, reason: str = "Canceled by user") -> int:
        return self._cancellations.cancel_all(reason)

    def cancel_request_group(self, group: str, reason: str = "Canceled by user") -> int:
        return self._cancellations.cancel_group(group, reason)

    # Aggregation

    async def batch_requests(self, requests: list[Awaitable[T]]) -> list[T]:
        return await batch(requests)

    async def fetch_all_pages(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        page_key: str = "page",
        limit_key: str = "limit",
        limit: int = 50,
        total_pages_header: str = "x-total-pages",
    ) -> list[Any]:
        """Fetch every page of `url`, driven by the total-pages header."""
        walker = PaginationWalker(
            lambda page_params: self.get(url, params=page_params),
            total_pages_header=total_pages_header,
        )
        return await walker.fetch_all(params, page_key, limit_key, limit)

    # Lifecycle

    async def close(self) -> None:
        """Release the connectivity subscription, pending work and the transport."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        self._debouncer.cancel_all()
        self._rate_queue.cancel_all()
        self._offline.cancel_all()
        self._cancellations.cancel_all("Client closed")
        await self._transport.aclose()
        logger.debug("HttpClient closed")

    async def __aenter__(self) -> "HttpClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    # Health and status methods

    def get_health_status(self) -> dict[str, Any]:
        """Get status of every component."""
        return {
            "online": self._connectivity.is_online(),
            "circuit_breaker": self._circuit.get_status(),
            "credentials": self._tokens.get_status(),
            "debouncer": self._debouncer.get_stats().to_dict(),
            "rate_limit_queue": len(self._rate_queue),
            "offline_queue": self._offline.pending_count,
            "cancelable_requests": len(self._cancellations),
        }

    def _trace_request(self, request: Request) -> None:
        debug_tag = request.headers.get(DEBUG_TAG_HEADER)
        if debug_tag:
            logger.info(f"[Tag] {debug_tag}")
        self._log(f"[Request] {request.method} {request.url}")

    def _log_error(self, error: HttpClientError) -> None:
        if self._debug:
            logger.error(f"[Error] {error.to_dict()}")

    def _log(self, message: str) -> None:
        """Log debug message if logging is enabled."""
        if self._debug:
            logger.debug(message)


# Global client instance
_global_client: HttpClient | None = None


def get_http_client() -> HttpClient:
    """Get the global client instance, configured from environment settings."""
    global _global_client
    if _global_client is None:
        _global_client = HttpClient(HttpClientConfig.from_settings())
    return _global_client


async def close_http_client() -> None:
    """Close the global client."""
    global _global_client
    if _global_client:
        await _global_client.close()
        _global_client = None
