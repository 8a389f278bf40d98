"""
Scrape Client

Fetches a web page as markdown through a Firecrawl-compatible scrape API.

Request:
--------
POST {FIRECRAWL_API_URL}
{
    "url": "https://example.com/photosynthesis",
    "formats": ["markdown"],
    "waitFor": 5000,     # let client-side rendering settle
    "timeout": 25000     # upstream budget, below our own hard limit
}

Response:
---------
{
    "success": true,
    "data": {
        "markdown": "# Photosynthesis ...",
        "metadata": {"title": "Photosynthesis for Kids", ...}
    }
}

A `"success": false` body (or one without markdown) is an upstream
failure even when the HTTP status is 200.
"""

import asyncio
import enum
from typing import Any, Optional

import httpx
from pydantic import BaseModel, Field

from lesson_ingest.core.config import settings
from lesson_ingest.core.logging import get_logger

logger = get_logger(__name__)


DEFAULT_TITLE = "Untitled Resource"


# ========================================
# Custom Exceptions
# ========================================


class ScrapeErrorKind(str, enum.Enum):
    """Category of a scrape failure."""

    TIMEOUT = "timeout"
    NETWORK = "network"
    HTTP_ERROR = "http_error"
    UPSTREAM_FAILURE = "upstream_failure"

    def __str__(self) -> str:
        return self.value


class ScrapeError(Exception):
    """Raised when a page could not be scraped."""

    def __init__(
        self,
        kind: ScrapeErrorKind,
        detail: str,
        status_code: Optional[int] = None
    ):
        self.kind = kind
        self.detail = detail
        self.status_code = status_code
        super().__init__(detail)


# ========================================
# Result Model
# ========================================


class ScrapeResult(BaseModel):
    """Markdown and metadata for a successfully scraped page."""

    markdown: str
    title: str = DEFAULT_TITLE
    metadata: dict[str, Any] = Field(default_factory=dict)


# ========================================
# Scrape Client
# ========================================


class ScrapeClient:
    """
    Async client for the scrape API.

    Usage:
    ------
    async with ScrapeClient() as scraper:
        result = await scraper.scrape("https://example.com/lesson")
        print(result.title, len(result.markdown))
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        wait_for_ms: Optional[int] = None,
        upstream_timeout_ms: Optional[int] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize the scrape client.

        Args:
            api_key: Bearer token for the scrape API (default from settings)
            api_url: Scrape endpoint (default from settings)
            timeout: Hard timeout for the whole call in seconds (default from settings)
            wait_for_ms: Upstream render wait passed as "waitFor"
            upstream_timeout_ms: Upstream budget passed as "timeout"
            http_client: Shared httpx client; created on demand when omitted
        """
        self.api_key = api_key or settings.FIRECRAWL_API_KEY
        self.api_url = api_url or settings.FIRECRAWL_API_URL
        self.timeout = timeout or settings.SCRAPE_TIMEOUT_SECONDS
        self.wait_for_ms = (
            wait_for_ms if wait_for_ms is not None else settings.SCRAPE_WAIT_FOR_MS
        )
        self.upstream_timeout_ms = upstream_timeout_ms or settings.SCRAPE_UPSTREAM_TIMEOUT_MS

        self._http = http_client
        self._owns_http = http_client is None

    async def __aenter__(self) -> "ScrapeClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient()
        return self._http

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _payload(self, url: str) -> dict[str, Any]:
        return {
            "url": url,
            "formats": ["markdown"],
            "waitFor": self.wait_for_ms,
            "timeout": self.upstream_timeout_ms,
        }

    async def scrape(self, url: str) -> ScrapeResult:
        """
        Scrape a page and return its markdown.

        Args:
            url: Page to scrape

        Returns:
            ScrapeResult with markdown, title and page metadata

        Raises:
            ScrapeError: timeout, network, http_error (with status_code)
                or upstream_failure (with the upstream message)
        """
        logger.info("scrape_started", url=url)

        try:
            response = await asyncio.wait_for(
                self._client().post(self.api_url, json=self._payload(url), headers=self._headers()),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.warning("scrape_timeout", url=url, timeout_seconds=self.timeout)
            raise ScrapeError(
                ScrapeErrorKind.TIMEOUT,
                f"Scrape request timed out after {self.timeout}s"
            ) from e
        except httpx.HTTPError as e:
            logger.warning("scrape_network_error", url=url, error=str(e))
            raise ScrapeError(
                ScrapeErrorKind.NETWORK,
                f"Network error while scraping: {e}"
            ) from e

        if not response.is_success:
            body = response.text
            logger.warning(
                "scrape_http_error",
                url=url,
                status_code=response.status_code,
                body=body[:500],
            )
            raise ScrapeError(
                ScrapeErrorKind.HTTP_ERROR,
                f"Scrape API error: {response.status_code} - {body}",
                status_code=response.status_code,
            )

        result = self._parse_result(response)

        logger.info(
            "scrape_completed",
            url=url,
            title=result.title,
            content_length=len(result.markdown),
        )
        return result

    def _parse_result(self, response: httpx.Response) -> ScrapeResult:
        """Turn a 2xx scrape response into a ScrapeResult."""
        try:
            body: Any = response.json()
        except ValueError as e:
            raise ScrapeError(
                ScrapeErrorKind.UPSTREAM_FAILURE,
                "Scrape API returned a non-JSON response"
            ) from e

        if not isinstance(body, dict) or not body.get("success"):
            message = body.get("error") if isinstance(body, dict) else None
            if not isinstance(message, str):
                message = None
            raise ScrapeError(
                ScrapeErrorKind.UPSTREAM_FAILURE,
                message or "Failed to scrape URL"
            )

        data = body.get("data")
        if not isinstance(data, dict):
            data = {}
        markdown = data.get("markdown")
        if not isinstance(markdown, str):
            raise ScrapeError(
                ScrapeErrorKind.UPSTREAM_FAILURE,
                "Scrape API response did not include markdown"
            )

        metadata = data.get("metadata") or {}
        title = metadata.get("title") if isinstance(metadata, dict) else None
        if isinstance(title, list):
            title = title[0] if title else None

        return ScrapeResult(
            markdown=markdown,
            title=title.strip() if isinstance(title, str) and title.strip() else DEFAULT_TITLE,
            metadata=metadata if isinstance(metadata, dict) else {},
        )

    async def close(self) -> None:
        """Release the HTTP connection pool if this client created it."""
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None
