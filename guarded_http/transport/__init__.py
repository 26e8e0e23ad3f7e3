"""
Transport adapters - the opaque `send(request) -> response` boundary.
"""

from guarded_http.transport.base import Request, Response, TransportAdapter
from guarded_http.transport.httpx_transport import HttpxTransport, ProgressReader
from guarded_http.transport.mock import MockTransport

__all__ = [
    "Request",
    "Response",
    "TransportAdapter",
    "HttpxTransport",
    "ProgressReader",
    "MockTransport",
]
