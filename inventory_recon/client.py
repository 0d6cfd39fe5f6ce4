"""
Thin `requests` wrapper shared by every inventory source.

It knows how to authenticate (static headers), retry transient failures,
and walk an offset-paginated list endpoint. It knows nothing about what
the records mean; the source adapters do.
"""

import logging
import time
from typing import Any, Callable

import requests

from . import settings
from .errors import FetchError, SourceAuthError
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

# (offset, page_size) -> query params for one page
ParamsBuilder = Callable[[int, int], dict[str, Any]]
# (decoded payload, page_size) -> (records on this page, more pages available?)
PageExtractor = Callable[[Any, int], tuple[list[Any], bool]]


class TransientFetchError(FetchError):
    """5xx or network failure. Worth another attempt."""


def is_transient(exc: Exception) -> bool:
    return isinstance(exc, TransientFetchError)


class ApiClient:
    def __init__(
        self,
        source: str,
        base_url: str,
        headers: dict[str, str],
        session: requests.Session | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float = settings.REQUEST_TIMEOUT,
        page_delay: float = settings.PAGE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        rate_limit_header: str | None = None,
    ):
        self.source = source
        self.base_url = base_url.rstrip("/")
        self.headers = {"Content-Type": "application/json", "Accept": "application/json", **headers}
        self.session = session or requests.Session()
        self.retry_policy = retry_policy or RetryPolicy(is_retryable=is_transient, sleep=sleep)
        self.timeout = timeout
        self.page_delay = page_delay
        self.sleep = sleep
        self.rate_limit_header = rate_limit_header

    def get(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        """GET one endpoint and return the decoded JSON body, retrying transient failures."""
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        return self.retry_policy.call(
            lambda: self._get_once(url, endpoint, params),
            description=f"{self.source} GET {endpoint}",
        )

    def _get_once(self, url: str, endpoint: str, params: dict[str, Any] | None) -> Any:
        logger.debug(f"🔄 {self.source} request: {url} {params or ''}")
        try:
            response = self.session.get(
                url, headers=self.headers, params=params, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise TransientFetchError(
                f"Network error: {e}", source=self.source, endpoint=endpoint
            ) from e

        if self.rate_limit_header:
            remaining = response.headers.get(self.rate_limit_header)
            if remaining is not None:
                logger.debug(f"📈 {self.source} requests remaining: {remaining}")

        status = response.status_code
        if status >= 500:
            raise TransientFetchError(
                f"Server error: {response.text[:200]}",
                source=self.source, endpoint=endpoint, status=status,
            )
        if 400 <= status < 500:
            raise SourceAuthError(
                f"Request rejected: {response.text[:200]}",
                source=self.source, endpoint=endpoint, status=status,
            )
        if not response.ok:
            raise FetchError(
                "Unexpected response status", source=self.source, endpoint=endpoint, status=status
            )

        try:
            return response.json()
        except ValueError as e:
            raise FetchError(
                "Response was not valid JSON", source=self.source, endpoint=endpoint, status=status
            ) from e

    def fetch_all(
        self,
        endpoint: str,
        page_size: int,
        build_params: ParamsBuilder,
        extract_page: PageExtractor,
        max_pages: int,
    ) -> list[Any]:
        """
        Walk a paginated list endpoint and return every record in order.

        Stops when the source says there is nothing more, when a page comes
        back empty, or after `max_pages` pages, whichever happens first.
        The inter-page delay is only applied when another page will be requested.
        """
        records: list[Any] = []
        offset = 0

        for page in range(1, max_pages + 1):
            payload = self.get(endpoint, build_params(offset, page_size))
            try:
                batch, more = extract_page(payload, page_size)
            except (KeyError, TypeError, AttributeError, IndexError) as e:
                raise FetchError(
                    f"Unexpected response shape on page {page}: {e}",
                    source=self.source, endpoint=endpoint,
                ) from e

            if not batch:
                break

            records.extend(batch)
            logger.info(
                f"  > {self.source} page {page}: {len(batch)} records (Total so far: {len(records)})"
            )

            if not more:
                break
            if page == max_pages:
                logger.warning(
                    f"⚠️ {self.source}: stopped at the {max_pages}-page safety cap; "
                    "more records may be available."
                )
                break

            offset += page_size
            self.sleep(self.page_delay)

        return records
