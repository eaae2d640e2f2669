"""
Shared plumbing for product-page scrapers.

Both scraping strategies fetch a single HTML page over an httpx AsyncClient
with browser-like headers and a bounded timeout, then extract attributes with
BeautifulSoup. A scraper never raises to its caller: every failure is folded
into a ScrapeErr with a classified code.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from bs4 import BeautifulSoup, Tag

from listing_audit.config.settings import Settings, get_settings
from listing_audit.models.schemas import ScrapeErr, ScrapeErrorCode, ScrapeResult
from listing_audit.utils.logger import get_logger

logger = get_logger(__name__)

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-GB,en;q=0.9",
}

WHITESPACE = re.compile(r"\s+")


def clean_text(value: Optional[str]) -> str:
    """Collapse runs of whitespace and trim."""
    if not value:
        return ""
    return WHITESPACE.sub(" ", value).strip()


def node_text(node: Optional[Tag]) -> str:
    return clean_text(node.get_text(" ")) if node is not None else ""


def meta_content(soup: BeautifulSoup, key: str) -> str:
    """Content of a <meta property=...> or <meta name=...> tag."""
    tag = soup.find("meta", attrs={"property": key}) or soup.find("meta", attrs={"name": key})
    if tag is None:
        return ""
    return clean_text(tag.get("content"))


# =============================================================================
# Abstract Scraper
# =============================================================================

class ProductScraper(ABC):
    """
    Abstract base class for scraping strategies.

    Subclasses implement `scrape` and the page parser; the base class owns
    the HTTP client lifecycle.

    Example:
        >>> async with MarketplaceScraper() as scraper:
        ...     result = await scraper.scrape("B08N5WRWNW")
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self._client = client
        self._owns_client = client is None

    @property
    @abstractmethod
    def name(self) -> str:
        """Strategy name used in logs."""

    @property
    @abstractmethod
    def timeout_seconds(self) -> float:
        ...

    async def connect(self) -> None:
        """Initialize HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=BROWSER_HEADERS,
                timeout=httpx.Timeout(self.timeout_seconds, connect=min(5.0, self.timeout_seconds)),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                follow_redirects=True,
            )
            self._owns_client = True

    async def disconnect(self) -> None:
        """Close HTTP client if this scraper created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ProductScraper":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()

    async def _get(self, url: str) -> httpx.Response:
        if self._client is None:
            await self.connect()
        return await self._client.get(url, headers=BROWSER_HEADERS, timeout=self.timeout_seconds)

    async def _fetch(self, url: str) -> httpx.Response | ScrapeErr:
        """Fetch a page, classifying transport failures."""
        try:
            return await self._get(url)
        except httpx.TimeoutException:
            logger.warning("Scrape fetch timed out", scraper=self.name, url=url, timeout=self.timeout_seconds)
            return ScrapeErr(
                ScrapeErrorCode.TIMEOUT,
                f"Fetching the page took longer than {self.timeout_seconds:g} seconds",
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("Scrape fetch failed", scraper=self.name, url=url, error=str(e))
            return ScrapeErr(ScrapeErrorCode.FETCH_FAILED, f"Failed to fetch page: {e}")

    @abstractmethod
    async def scrape(self, identifier_or_url: str) -> ScrapeResult:
        """Fetch and extract product attributes. Never raises."""

