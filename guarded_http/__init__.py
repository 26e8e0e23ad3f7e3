"""
guarded_http - resilient async HTTP client.
"""

from guarded_http.services import (
    AuthRefreshError,
    CancellationError,
    CircuitOpenError,
    HttpClient,
    HttpClientConfig,
    HttpClientError,
    HttpStatusError,
    ManualConnectivity,
    RequestTimeoutError,
    TransportError,
)
from guarded_http.transport import MockTransport, Request, Response, TransportAdapter

__all__ = [
    "HttpClient",
    "HttpClientConfig",
    "HttpClientError",
    "TransportError",
    "HttpStatusError",
    "CircuitOpenError",
    "AuthRefreshError",
    "CancellationError",
    "RequestTimeoutError",
    "ManualConnectivity",
    "MockTransport",
    "Request",
    "Response",
    "TransportAdapter",
]
