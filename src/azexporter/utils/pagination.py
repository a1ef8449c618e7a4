import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from ..core.exceptions import ProviderError
from ..models.azure import Page

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def drain_pages(fetch_page: Callable[[Optional[str]], Awaitable[Page]]) -> List[Dict[str, Any]]:
    """
    Calls fetch_page(None), then fetch_page(next_token) until no token is left,
    and returns every row. A failing page or a repeated token raises; no partial
    result is returned.
    """
    rows: List[Dict[str, Any]] = []
    token: Optional[str] = None
    pages = 0
    seen_tokens = set()
    while True:
        page = await fetch_page(token)
        pages += 1
        rows.extend(page.rows)
        token = page.next_token
        if not token:
            break
        if token in seen_tokens:
            raise ProviderError(f"Pagination returned an already visited continuation token after {pages} page(s)")
        seen_tokens.add(token)
    logger.debug("Drained %d page(s) with %d row(s)", pages, len(rows))
    return rows


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """Splits items into consecutive batches of at most `size` elements."""
    if size < 1:
        raise ValueError("Chunk size must be at least 1")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]
