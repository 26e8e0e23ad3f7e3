"""
PaginationWalker - Follows page-numbered endpoints until exhaustion.
"""

from typing import Any, Awaitable, Callable

from loguru import logger

from guarded_http.transport.base import Response

FetchPage = Callable[[dict[str, Any]], Awaitable[Response[Any]]]


class PaginationWalker:
    """
    Fetches every page of a paginated resource, in page order.

    The total page count is read from a response header on each page
    (missing or malformed means a single page).

    Usage:
        walker = PaginationWalker(lambda params: client.get("/users", params=params))
        users = await walker.fetch_all({}, page_key="page", limit_key="limit", page_size=50)
    """

    def __init__(self, fetch_page: FetchPage, total_pages_header: str = "x-total-pages"):
        self._fetch_page = fetch_page
        self._total_pages_header = total_pages_header

    async def fetch_all(
        self,
        base_params: dict[str, Any] | None = None,
        page_key: str = "page",
        limit_key: str = "limit",
        page_size: int = 50,
    ) -> list[Any]:
        results: list[Any] = []
        page = 1
        total_pages = 1

        while page <= total_pages:
            params = {**(base_params or {}), page_key: page, limit_key: page_size}
            response = await self._fetch_page(params)

            if isinstance(response.data, list):
                results.extend(response.data)
            elif response.data is not None:
                results.append(response.data)

            total_pages = self._read_total_pages(response)
            logger.debug(f"[Pagination] Fetched page {page}/{total_pages}")
            page += 1

        return results

    def _read_total_pages(self, response: Response[Any]) -> int:
        value = response.headers.get(self._total_pages_header)
        if value is None:
            return 1
        try:
            return int(value)
        except ValueError:
            logger.warning(
                f"[Pagination] Invalid {self._total_pages_header} header: {value!r}"
            )
            return 1
