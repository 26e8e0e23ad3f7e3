"""
Service layer - resilience and traffic-control patterns for HTTP requests.

Provides:
- CircuitBreaker: Stops dispatch after repeated failures
- RetryPolicy: Bounded retries with exponential backoff
- TokenCoordinator: Bearer tokens with single-flight refresh
- Debouncer / Throttler / RateLimitQueue: Traffic shaping
- OfflineQueue: Buffers requests while disconnected
- CancellationRegistry: Cooperative request cancellation
- HttpClient: Unified client combining all patterns
"""

from guarded_http.services.errors import (
    HttpClientError,
    TransportError,
    HttpStatusError,
    CircuitOpenError,
    AuthRefreshError,
    CancellationError,
    RequestTimeoutError,
    STATUS_MESSAGES,
    normalize_error,
)
from guarded_http.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from guarded_http.services.retry import RetryPolicy
from guarded_http.services.token import TokenCoordinator
from guarded_http.services.debouncer import Debouncer, DebounceKey, DebouncerStats
from guarded_http.services.throttle import Throttler
from guarded_http.services.queues import OfflineQueue, QueueEntry, RateLimitQueue
from guarded_http.services.cancellation import (
    CancelableRequest,
    CancellationHandle,
    CancellationRegistry,
    CancelToken,
)
from guarded_http.services.batch import batch
from guarded_http.services.pagination import PaginationWalker
from guarded_http.services.connectivity import ConnectivityObserver, ManualConnectivity
from guarded_http.services.client import (
    HttpClient,
    HttpClientConfig,
    close_http_client,
    get_http_client,
)

__all__ = [
    # Errors
    "HttpClientError",
    "TransportError",
    "HttpStatusError",
    "CircuitOpenError",
    "AuthRefreshError",
    "CancellationError",
    "RequestTimeoutError",
    "STATUS_MESSAGES",
    "normalize_error",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    # Retry
    "RetryPolicy",
    # Credentials
    "TokenCoordinator",
    # Traffic shaping
    "Debouncer",
    "DebounceKey",
    "DebouncerStats",
    "Throttler",
    "RateLimitQueue",
    # Offline
    "OfflineQueue",
    "QueueEntry",
    "ConnectivityObserver",
    "ManualConnectivity",
    # Cancellation
    "CancelableRequest",
    "CancellationHandle",
    "CancellationRegistry",
    "CancelToken",
    # Aggregation
    "batch",
    "PaginationWalker",
    # Client
    "HttpClient",
    "HttpClientConfig",
    "get_http_client",
    "close_http_client",
]
