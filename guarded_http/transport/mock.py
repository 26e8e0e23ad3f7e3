"""
MockTransport - in-process transport for mock mode and tests.
"""

from dataclasses import replace
from typing import Any, Awaitable, Callable

import httpx

from guarded_http.transport.base import Request, Response, TransportAdapter
from guarded_http.utils import maybe_await

MockHandler = Callable[[Request], Response[Any] | Awaitable[Response[Any]]]


class MockTransport(TransportAdapter):
    """
    Transport that never touches the network.

    Without a handler every request succeeds with a canned body. A handler
    (sync or async) may build the response or raise an HttpClientError.
    Every request is recorded in `calls`.
    """

    def __init__(self, handler: MockHandler | None = None):
        self._handler = handler
        self.calls: list[Request] = []

    async def send(self, request: Request) -> Response[Any]:
        # snapshot: headers are re-attached on resubmission
        self.calls.append(replace(request, headers=dict(request.headers)))
        if self._handler is None:
            return Response(
                status_code=200,
                data={"message": "Mocked response"},
                headers=httpx.Headers(),
                request=request,
            )

        response = await maybe_await(self._handler(request))
        if response.request is None:
            response.request = request
        return response
