"""
Transport adapter interface.

The client never talks to the network itself: every attempt goes through
a TransportAdapter, which returns a Response or raises an HttpClientError.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Generic, Literal, TypeVar

import httpx

if TYPE_CHECKING:
    from guarded_http.services.cancellation import CancelToken

T = TypeVar("T")

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})

ResponseType = Literal["json", "text", "bytes"]


@dataclass
class Request:
    """A single logical request, as handed to the transport."""

    method: str
    url: str
    params: dict[str, Any] | None = None
    headers: dict[str, str] = field(default_factory=dict)
    json: Any = None
    data: Any = None
    content: bytes | None = None
    files: dict[str, Any] | None = None
    timeout: float | None = None
    response_type: ResponseType = "json"
    on_upload_progress: Callable[[int], None] | None = None
    cancel_token: "CancelToken | None" = None
    started_at: float | None = None

    def __post_init__(self) -> None:
        self.method = self.method.upper()

    @property
    def is_idempotent(self) -> bool:
        return self.method in IDEMPOTENT_METHODS


@dataclass
class Response(Generic[T]):
    """Response returned by a transport attempt."""

    status_code: int
    data: T
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    request: Request | None = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class TransportAdapter(ABC):
    """Performs one request attempt."""

    @abstractmethod
    async def send(self, request: Request) -> Response[Any]:
        """
        Dispatch the request.

        Raises:
            TransportError: No response was received
            HttpStatusError: A non-2xx response was received
            RequestTimeoutError: The attempt exceeded its timeout
        """
        ...

    async def aclose(self) -> None:
        """Release transport resources."""
        return None
