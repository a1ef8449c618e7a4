import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..core.config import config
from ..core.exceptions import ProviderError
from ..models.azure import Page
from .pagination import drain_pages

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


def get_async_http_client(
    connect_timeout: float = None,
    read_timeout: float = None,
    verify: bool = True,
) -> httpx.AsyncClient:
    """
    Returns a configured httpx.AsyncClient with:
    - Default timeouts (connect and read).
    - Standard User-Agent header.
    """
    c_timeout = connect_timeout if connect_timeout is not None else config.DEFAULT_TIMEOUT_CONNECT
    r_timeout = read_timeout if read_timeout is not None else config.DEFAULT_TIMEOUT_READ

    timeout = httpx.Timeout(r_timeout, connect=c_timeout)

    headers = {"User-Agent": config.USER_AGENT}

    return httpx.AsyncClient(
        timeout=timeout,
        headers=headers,
        verify=verify,
        follow_redirects=True,
    )


class AzureApiClient:
    """
    Thin authenticated client for one Azure API family (ARM or Graph).

    Every failure surfaces as ProviderError. Transient failures (timeouts,
    connection errors, throttling, 5xx) are retried only when max_retries
    is configured above zero; by default they escalate immediately.
    """

    def __init__(
        self,
        base_url: str,
        credentials,
        http: Optional[httpx.AsyncClient] = None,
        max_retries: int = None,
        retry_backoff: float = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self._http = http
        self._owns_http = http is None
        self.max_retries = config.PROVIDER_MAX_RETRIES if max_retries is None else max_retries
        self.retry_backoff = config.PROVIDER_RETRY_BACKOFF if retry_backoff is None else retry_backoff

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = get_async_http_client()
        return self._http

    def url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def request(self, method: str, path: str, params: Dict[str, Any] = None, json: Any = None) -> Dict:
        url = self.url(path)
        attempt = 0
        while True:
            try:
                return await self._request_once(method, url, params=params, json=json)
            except ProviderError as e:
                if not e.transient or attempt >= self.max_retries:
                    raise
                delay = self.retry_backoff * (2**attempt)
                attempt += 1
                logger.warning(
                    "Transient error calling %s (attempt %d/%d), retrying in %.1fs: %s",
                    url,
                    attempt,
                    self.max_retries,
                    delay,
                    e,
                )
                await asyncio.sleep(delay)

    async def _request_once(self, method: str, url: str, params=None, json=None) -> Dict:
        credential = await self.credentials.get_credential()
        headers = {"Authorization": f"Bearer {credential.token}"}
        try:
            response = await self.http.request(method, url, params=params, json=json, headers=headers)
        except httpx.TimeoutException as e:
            raise ProviderError(f"Timeout calling {url}: {e}", transient=True, url=url) from e
        except httpx.TransportError as e:
            raise ProviderError(f"Transport error calling {url}: {e}", transient=True, url=url) from e

        if response.status_code >= 400:
            transient = response.status_code in TRANSIENT_STATUS_CODES
            raise ProviderError(
                f"{method} {url} failed with HTTP {response.status_code}: {response.text[:200]}",
                transient=transient,
                status_code=response.status_code,
                url=url,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"Invalid JSON body from {url}: {e}", status_code=response.status_code, url=url) from e

    async def list_page(self, path: str, params: Dict[str, Any] = None) -> Page:
        """
        Fetches one page. ARM pages carry 'nextLink', Graph pages '@odata.nextLink';
        next links already embed the query string so params are only sent on the first page.
        """
        data = await self.request("GET", path, params=params)
        if not isinstance(data, dict):
            raise ProviderError(f"Unexpected response body from {self.url(path)}", url=self.url(path))
        rows = data.get("value")
        if rows is None:
            rows = []
        if not isinstance(rows, list):
            raise ProviderError(f"Unexpected 'value' in response from {self.url(path)}", url=self.url(path))
        return Page(rows=rows, next_token=data.get("nextLink") or data.get("@odata.nextLink"))

    async def list_all(self, path: str, params: Dict[str, Any] = None) -> List[Dict[str, Any]]:
        """Drains every page of a list API. Any page failure aborts the whole listing."""

        async def fetch(token: Optional[str]) -> Page:
            if token is None:
                return await self.list_page(path, params=params)
            return await self.list_page(token)

        return await drain_pages(fetch)

    async def post(self, path: str, json: Any) -> Dict:
        return await self.request("POST", path, json=json)

    async def close(self):
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None
        await self.credentials.close()
