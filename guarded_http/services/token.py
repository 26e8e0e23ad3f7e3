"""
TokenCoordinator - Credential injection and single-flight token refresh.

When several requests fail authorization at once, only the first one
renews the credential. The others wait on the same pending refresh and
are resubmitted with its result.
"""

import asyncio
from typing import Any, Awaitable, Callable

from loguru import logger

from guarded_http.services.errors import AuthRefreshError, HttpClientError
from guarded_http.transport.base import Request, Response
from guarded_http.utils import maybe_await

TokenProvider = Callable[[], str | None]
TokenRefresher = Callable[[], Awaitable[str] | str]
Resubmit = Callable[[Request], Awaitable[Response[Any]]]

AUTH_HEADER = "Authorization"


class TokenCoordinator:
    """
    Attaches bearer tokens and coordinates their renewal.

    Usage:
        tokens = TokenCoordinator(token_provider=store.get, refresh_token=renew)
        tokens.attach_token(request)
        ...
        except HttpStatusError as e:
            if e.status == 401:
                return await tokens.handle_auth_failure(request, e, resubmit)
    """

    def __init__(
        self,
        token_provider: TokenProvider | None = None,
        refresh_token: TokenRefresher | None = None,
        debug: bool = False,
    ):
        self._token_provider = token_provider
        self._refresh_token = refresh_token
        self._debug = debug

        self._current_token: str | None = None
        # pending while a refresh runs; resolves to the new token, or None on failure
        self._refresh_future: asyncio.Future[str | None] | None = None
        self._refresh_task: asyncio.Task[str] | None = None
        self._refresh_count = 0

    @property
    def can_refresh(self) -> bool:
        return self._refresh_token is not None

    @property
    def refresh_in_flight(self) -> bool:
        return self._refresh_future is not None

    @property
    def refresh_count(self) -> int:
        return self._refresh_count

    @property
    def current_token(self) -> str | None:
        """Last refreshed token, falling back to the token provider."""
        if self._current_token:
            return self._current_token
        if self._token_provider:
            return self._token_provider()
        return None

    def set_token(self, token: str | None) -> None:
        """Override (or clear) the refreshed token."""
        self._current_token = token

    def attach_token(self, request: Request, token: str | None = None) -> None:
        """Inject the bearer token into the request headers, if any."""
        token = token or self.current_token
        if token:
            request.headers[AUTH_HEADER] = f"Bearer {token}"

    async def handle_auth_failure(
        self,
        request: Request,
        error: HttpClientError,
        resubmit: Resubmit,
    ) -> Response[Any]:
        """
        Renew the credential (single-flight) and resubmit the request once.

        Raises:
            AuthRefreshError: The refresh started by this caller failed
            HttpClientError: `error`, when refresh is not configured or a
                refresh started by another caller failed
        """
        if self._refresh_token is None:
            raise error

        # Token was already renewed after this request went out
        if self._current_token and request.headers.get(AUTH_HEADER) != (
            f"Bearer {self._current_token}"
        ):
            if not self.refresh_in_flight:
                self.attach_token(request, self._current_token)
                return await resubmit(request)

        if self._refresh_future is not None:
            self._log(f"Waiting for in-flight refresh: {request.method} {request.url}")
            token = await asyncio.shield(self._refresh_future)
            if token is None:
                raise error
            self.attach_token(request, token)
            return await resubmit(request)

        # the refresh outlives this caller; waiters still get its result
        token = await asyncio.shield(self._start_refresh())
        self.attach_token(request, token)
        return await resubmit(request)

    def _start_refresh(self) -> "asyncio.Task[str]":
        loop = asyncio.get_running_loop()
        future: asyncio.Future[str | None] = loop.create_future()
        self._refresh_future = future
        self._refresh_task = asyncio.ensure_future(self._refresh(future))
        self._refresh_task.add_done_callback(_retrieve_outcome)
        return self._refresh_task

    async def _refresh(self, future: "asyncio.Future[str | None]") -> str:
        """Run the one refresh and broadcast its outcome to all waiters."""
        refreshed: str | None = None

        logger.info("[TokenCoordinator] Refreshing access token")
        try:
            new_token = await maybe_await(self._refresh_token())
            if not new_token:
                raise AuthRefreshError("Token refresh returned no token")
        except AuthRefreshError:
            logger.error("[TokenCoordinator] Token refresh failed")
            raise
        except Exception as e:
            logger.error(f"[TokenCoordinator] Token refresh failed: {e}")
            raise AuthRefreshError(f"Token refresh failed: {e}") from e
        else:
            self._current_token = refreshed = new_token
            self._refresh_count += 1
            return new_token
        finally:
            self._refresh_future = None
            self._refresh_task = None
            if not future.done():
                future.set_result(refreshed)

    def get_status(self) -> dict[str, Any]:
        return {
            "has_token": self.current_token is not None,
            "refresh_in_flight": self.refresh_in_flight,
            "refresh_count": self._refresh_count,
        }

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[TokenCoordinator] {message}")


def _retrieve_outcome(task: "asyncio.Task[str]") -> None:
    # the initiator may have been cancelled; the failure is already logged
    if not task.cancelled():
        task.exception()
