"""
Marketplace product-page scraper.

Identifier-based strategy: resolves an ASIN from a bare identifier or a
product URL, fetches the marketplace detail page and extracts the listing as
the shopper sees it.

Features:
    - INVALID_INPUT / INVALID_ASIN before any network call
    - PRODUCT_NOT_FOUND for 404s, error pages, robot checks, pages with no
      title and pages that resolve to a different ASIN
    - FETCH_FAILED / TIMEOUT / SCRAPING_FAILED for transient failures

Example:
    >>> async with MarketplaceScraper() as scraper:
    ...     result = await scraper.scrape("https://www.amazon.co.uk/dp/B08N5WRWNW")
    ...     if isinstance(result, ScrapeOk):
    ...         print(result.data.title)
"""

from __future__ import annotations

import re
from typing import Optional

from bs4 import BeautifulSoup

from listing_audit.extractors.base import ProductScraper, clean_text, node_text
from listing_audit.models.schemas import (
    ScrapedProductData,
    ScrapeErr,
    ScrapeErrorCode,
    ScrapeOk,
    ScrapeResult,
    find_embedded_asin,
)
from listing_audit.utils.logger import get_logger

logger = get_logger(__name__)

ERROR_PAGE_MARKERS = (
    "Looking for something?",
    "Type the characters you see in this image",
    "Robot Check",
    "Page Not Found",
    "/errors/validateCaptcha",
)

IMAGE_NOISE = ("sprite", "transparent-pixel", "grey-pixel", "play-icon", "loading", ".gif")

RATING_PATTERN = re.compile(r"([\d.]+)\s+out of\s+5", re.IGNORECASE)
DIGITS = re.compile(r"[\d,]+")
BRAND_PREFIXES = re.compile(r"^(Visit the|Brand:)\s*", re.IGNORECASE)
MAX_IMAGES = 10


class MarketplaceScraper(ProductScraper):
    """Scrapes a marketplace detail page for one ASIN."""

    @property
    def name(self) -> str:
        return "marketplace"

    @property
    def timeout_seconds(self) -> float:
        return self.settings.marketplace_timeout_seconds

    @staticmethod
    def extract_asin(identifier_or_url: str) -> Optional[str]:
        """
        Resolve the identifier from the argument.

        Returns the embedded identifier for product URLs, the upper-cased
        value for bare alphanumeric input of any length (so that a length
        mismatch can be reported as INVALID_ASIN), and None otherwise.
        """
        value = (identifier_or_url or "").strip()
        if not value:
            return None
        embedded = find_embedded_asin(value)
        if embedded:
            return embedded
        if value.isalnum():
            return value.upper()
        return None

    def product_url(self, asin: str) -> str:
        return f"{self.settings.marketplace_base_url}/dp/{asin}"

    async def scrape(self, identifier_or_url: str) -> ScrapeResult:
        asin = self.extract_asin(identifier_or_url)
        if asin is None:
            return ScrapeErr(ScrapeErrorCode.INVALID_INPUT, "Could not extract an ASIN from the input")
        if len(asin) != 10:
            return ScrapeErr(ScrapeErrorCode.INVALID_ASIN, f"ASIN must be 10 characters, got {len(asin)}")

        url = self.product_url(asin)
        logger.info("Scraping marketplace page", asin=asin, url=url)

        response = await self._fetch(url)
        if isinstance(response, ScrapeErr):
            return response
        if response.status_code == 404:
            return ScrapeErr(ScrapeErrorCode.PRODUCT_NOT_FOUND, f"No product found for ASIN {asin}")
        if not response.is_success:
            return ScrapeErr(
                ScrapeErrorCode.FETCH_FAILED,
                f"Marketplace returned HTTP {response.status_code}",
            )

        try:
            result = self.parse_product_page(response.text, asin, url)
        except Exception as e:
            logger.error("Marketplace page parsing failed", asin=asin, error=str(e))
            return ScrapeErr(ScrapeErrorCode.SCRAPING_FAILED, f"Failed to parse product page: {e}")

        if isinstance(result, ScrapeOk):
            logger.info(
                "Marketplace scrape completed",
                asin=asin,
                bullets=len(result.data.bullet_points),
                images=len(result.data.images),
            )
        return result

    # =========================================================================
    # Parsing
    # =========================================================================

    def parse_product_page(self, html: str, asin: str, url: str) -> ScrapeResult:
        """Extract listing attributes from a detail page."""
        if any(marker in html for marker in ERROR_PAGE_MARKERS):
            return ScrapeErr(ScrapeErrorCode.PRODUCT_NOT_FOUND, "Marketplace returned an error or robot-check page")

        soup = BeautifulSoup(html, "html.parser")

        title = node_text(soup.select_one("#productTitle")) or node_text(soup.select_one("#title"))
        if not title:
            return ScrapeErr(ScrapeErrorCode.PRODUCT_NOT_FOUND, "Product title not found on page")

        page_asin = self._page_asin(soup)
        if page_asin and page_asin != asin:
            return ScrapeErr(
                ScrapeErrorCode.PRODUCT_NOT_FOUND,
                f"Page resolved to ASIN {page_asin} instead of {asin}",
            )

        data = ScrapedProductData(
            title=title,
            description=node_text(soup.select_one("#productDescription")) or None,
            price=self._price(soup),
            images=self._images(soup),
            bullet_points=self._bullets(soup),
            category=self._category(soup),
            brand=self._brand(soup, title),
            availability=node_text(soup.select_one("#availability")) or None,
            rating=self._rating(soup),
            review_count=self._review_count(soup),
            asin=asin,
            url=url,
        )
        return ScrapeOk(data)

    def _page_asin(self, soup: BeautifulSoup) -> Optional[str]:
        field = soup.select_one("input#ASIN")
        if field is not None and field.get("value"):
            return str(field["value"]).strip().upper()
        canonical = soup.find("link", attrs={"rel": "canonical"})
        if canonical is not None and canonical.get("href"):
            return find_embedded_asin(str(canonical["href"]))
        return None

    def _price(self, soup: BeautifulSoup) -> Optional[str]:
        offscreen = node_text(soup.select_one(".a-price .a-offscreen"))
        if offscreen:
            return offscreen
        whole = node_text(soup.select_one(".a-price-whole")).rstrip(".")
        if not whole:
            return None
        fraction = node_text(soup.select_one(".a-price-fraction"))
        symbol = node_text(soup.select_one(".a-price-symbol"))
        return f"{symbol}{whole}.{fraction}" if fraction else f"{symbol}{whole}"

    def _rating(self, soup: BeautifulSoup) -> Optional[float]:
        candidates = [node_text(soup.select_one("#acrPopover .a-icon-alt"))]
        popover = soup.select_one("#acrPopover")
        if popover is not None and popover.get("title"):
            candidates.append(str(popover["title"]))
        candidates.extend(node_text(n) for n in soup.select("span.a-icon-alt"))
        for text in candidates:
            match = RATING_PATTERN.search(text or "")
            if match:
                value = float(match.group(1))
                if 0 <= value <= 5:
                    return value
        return None

    def _review_count(self, soup: BeautifulSoup) -> Optional[int]:
        match = DIGITS.search(node_text(soup.select_one("#acrCustomerReviewText")))
        if not match:
            return None
        return int(match.group(0).replace(",", ""))

    def _bullets(self, soup: BeautifulSoup) -> list[str]:
        nodes = soup.select("#feature-bullets li span.a-list-item") or soup.select("#feature-bullets li")
        bullets = []
        for node in nodes:
            text = node_text(node)
            if len(text) > 10 and text not in bullets:
                bullets.append(text)
        return bullets

    def _brand(self, soup: BeautifulSoup, title: str) -> Optional[str]:
        byline = node_text(soup.select_one("#bylineInfo"))
        if byline:
            brand = BRAND_PREFIXES.sub("", byline)
            brand = re.sub(r"\s*Store$", "", brand, flags=re.IGNORECASE).strip()
            if brand:
                return brand
        first_word = title.split(" ", 1)[0]
        return first_word or None

    def _category(self, soup: BeautifulSoup) -> Optional[str]:
        crumbs = [node_text(a) for a in soup.select("#wayfinding-breadcrumbs_feature_div li a")]
        crumbs = [c for c in crumbs if c]
        return " > ".join(crumbs) if crumbs else None

    def _images(self, soup: BeautifulSoup) -> list[str]:
        urls: list[str] = []
        landing = soup.select_one("#landingImage") or soup.select_one("#imgBlkFront")
        if landing is not None:
            urls.append(str(landing.get("data-old-hires") or landing.get("src") or ""))
        for img in soup.select("#altImages img"):
            urls.append(str(img.get("src") or ""))

        images: list[str] = []
        for src in urls:
            src = clean_text(src)
            if not src.startswith("http") or any(noise in src for noise in IMAGE_NOISE):
                continue
            if src not in images:
                images.append(src)
        return images[:MAX_IMAGES]
