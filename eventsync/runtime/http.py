"""Requests-based page fetcher for HTML scrapers.

Features:
- session reuse + connection pooling
- browser-like default headers
- per-request timeout
- failures raised as SourceFetchError with a transient/terminal flag
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

from eventsync.ingestion.errors import SourceFetchError
from eventsync.runtime.resilience import is_transient_status

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
BROWSER_HEADERS = {
    "User-Agent": BROWSER_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}


@dataclass
class PageFetcherOptions:
    """Configuration options for the page fetcher."""

    timeout_s: float = 30.0
    verify_ssl: bool = True
    user_agent: str | None = None

    pool_connections: int = 10
    pool_maxsize: int = 20


class PageFetcher:
    """HTML page fetcher using the requests library."""

    def __init__(self, *, options: PageFetcherOptions | None = None, session: requests.Session | None = None) -> None:
        self.options = options or PageFetcherOptions()
        self._session = session or requests.Session()

        if session is None:
            adapter = requests.adapters.HTTPAdapter(
                pool_connections=self.options.pool_connections,
                pool_maxsize=self.options.pool_maxsize,
            )
            self._session.mount("http://", adapter)
            self._session.mount("https://", adapter)

        headers = dict(BROWSER_HEADERS)
        if self.options.user_agent:
            headers["User-Agent"] = self.options.user_agent
        self._session.headers.update(headers)

    def close(self) -> None:
        self._session.close()

    def get(self, url: str) -> str:
        """
        Fetch a page and return its text.

        Raises:
            SourceFetchError: On network errors, timeouts, or HTTP >= 400
        """
        try:
            response = self._session.get(
                url,
                timeout=self.options.timeout_s,
                verify=self.options.verify_ssl,
                allow_redirects=True,
            )
        except requests.Timeout as e:
            raise SourceFetchError(f"Timed out fetching {url}", retryable=True) from e
        except requests.RequestException as e:
            raise SourceFetchError(f"Error fetching {url}: {e}", retryable=True) from e

        if response.status_code >= 400:
            raise SourceFetchError(
                f"Failed to fetch {url}: HTTP {response.status_code}",
                retryable=is_transient_status(response.status_code),
                status_code=response.status_code,
            )
        return response.text
