"""
Generic product-page scraper.

URL-based strategy for a seller's own website or store. Structured fields
come from OpenGraph/Twitter meta tags with class-name fallbacks; headings,
paragraphs and a bounded plain-text excerpt are captured for the AI prompt.
"""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from listing_audit.extractors.base import ProductScraper, clean_text, meta_content, node_text
from listing_audit.models.schemas import (
    ScrapedProductData,
    ScrapeErr,
    ScrapeErrorCode,
    ScrapeOk,
    ScrapeResult,
)
from listing_audit.utils.logger import get_logger

logger = get_logger(__name__)

RAW_CONTENT_LIMIT = 2000
MAX_IMAGES = 10
MAX_FEATURES = 10
MAX_HEADINGS = 10
MAX_PARAGRAPHS = 5

IMAGE_NOISE = ("logo", "icon", "avatar", "favicon")
PRICE_PATTERN = re.compile(r"[£$€]\s*[\d,]+(?:\.\d+)?")
RATING_PATTERN = re.compile(r"\d+(?:\.\d+)?")
COUNT_PATTERN = re.compile(r"[\d,]+")


class SitePageScraper(ProductScraper):
    """Scrapes an arbitrary product page by URL."""

    @property
    def name(self) -> str:
        return "site"

    @property
    def timeout_seconds(self) -> float:
        return self.settings.site_timeout_seconds

    async def scrape(self, identifier_or_url: str) -> ScrapeResult:
        url = (identifier_or_url or "").strip()
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            return ScrapeErr(ScrapeErrorCode.INVALID_INPUT, "A valid http(s) URL is required")

        logger.info("Scraping product site", url=url, domain=parsed.hostname)

        response = await self._fetch(url)
        if isinstance(response, ScrapeErr):
            return response
        if not response.is_success:
            return ScrapeErr(
                ScrapeErrorCode.FETCH_FAILED,
                f"Failed to fetch page: HTTP {response.status_code}",
            )

        try:
            data = self.parse_page(response.text, str(response.url))
        except Exception as e:
            logger.error("Site page parsing failed", url=url, error=str(e))
            return ScrapeErr(ScrapeErrorCode.SCRAPING_FAILED, f"Failed to parse page: {e}")

        if data.is_empty():
            return ScrapeErr(ScrapeErrorCode.SCRAPING_FAILED, "No product content found on the page")

        logger.info(
            "Site scrape completed",
            url=url,
            has_title=bool(data.title),
            has_description=bool(data.description),
            images=len(data.images),
            features=len(data.bullet_points),
        )
        return ScrapeOk(data)

    def parse_page(self, html: str, url: str) -> ScrapedProductData:
        soup = BeautifulSoup(html, "html.parser")
        for tag in soup(["script", "style", "noscript"]):
            tag.decompose()

        return ScrapedProductData(
            title=self._title(soup),
            description=self._description(soup),
            price=self._price(soup),
            images=self._images(soup, url),
            bullet_points=self._features(soup),
            category=self._first(soup, ["product:category", "category"], ".category"),
            brand=self._first(soup, ["product:brand", "brand", "og:site_name"], ".brand"),
            availability=self._first(soup, ["product:availability"], ".availability, .stock"),
            rating=self._rating(soup),
            review_count=self._review_count(soup),
            url=url,
            headings=self._headings(soup),
            paragraphs=self._paragraphs(soup),
            raw_content=self._raw_content(soup),
        )

    # =========================================================================
    # Field extractors
    # =========================================================================

    def _first(self, soup: BeautifulSoup, meta_keys: list[str], selector: str) -> Optional[str]:
        for key in meta_keys:
            value = meta_content(soup, key)
            if value:
                return value
        return node_text(soup.select_one(selector)) or None

    def _title(self, soup: BeautifulSoup) -> Optional[str]:
        for key in ("og:title", "twitter:title"):
            value = meta_content(soup, key)
            if value:
                return value
        return node_text(soup.find("h1")) or node_text(soup.find("title")) or None

    def _description(self, soup: BeautifulSoup) -> Optional[str]:
        for key in ("og:description", "description", "twitter:description"):
            value = meta_content(soup, key)
            if value:
                return value
        return node_text(soup.select_one(".description, .product-description")) or None

    def _price(self, soup: BeautifulSoup) -> Optional[str]:
        for key in ("product:price:amount", "og:price:amount"):
            value = meta_content(soup, key)
            if value:
                currency = meta_content(soup, key.replace("amount", "currency"))
                return f"{value} {currency}".strip()
        text = node_text(soup.select_one(".price, [itemprop=price]"))
        if text:
            return text
        match = PRICE_PATTERN.search(soup.get_text(" "))
        return match.group(0) if match else None

    def _images(self, soup: BeautifulSoup, base_url: str) -> list[str]:
        sources = [meta_content(soup, "og:image"), meta_content(soup, "twitter:image")]
        sources.extend(str(img.get("src") or "") for img in soup.find_all("img"))

        images: list[str] = []
        for src in sources:
            src = clean_text(src)
            if not src or src.startswith("data:"):
                continue
            absolute = urljoin(base_url, src)
            lowered = absolute.lower()
            if any(noise in lowered for noise in IMAGE_NOISE) or absolute in images:
                continue
            images.append(absolute)
            if len(images) >= MAX_IMAGES:
                break
        return images

    def _features(self, soup: BeautifulSoup) -> list[str]:
        features: list[str] = []
        for li in soup.find_all("li"):
            text = node_text(li)
            if 10 < len(text) < 200 and text not in features:
                features.append(text)
            if len(features) >= MAX_FEATURES:
                break
        return features

    def _rating(self, soup: BeautifulSoup) -> Optional[float]:
        text = meta_content(soup, "product:rating") or node_text(soup.select_one(".rating, [itemprop=ratingValue]"))
        match = RATING_PATTERN.search(text)
        if not match:
            return None
        value = float(match.group(0))
        return value if 0 <= value <= 5 else None

    def _review_count(self, soup: BeautifulSoup) -> Optional[int]:
        text = meta_content(soup, "product:review_count") or node_text(
            soup.select_one(".review-count, [itemprop=reviewCount]")
        )
        match = COUNT_PATTERN.search(text)
        if not match:
            return None
        digits = match.group(0).replace(",", "")
        return int(digits) if digits else None

    def _headings(self, soup: BeautifulSoup) -> list[str]:
        headings = [node_text(h) for h in soup.find_all(["h1", "h2", "h3", "h4", "h5", "h6"])]
        return [h for h in headings if 3 < len(h) < 100][:MAX_HEADINGS]

    def _paragraphs(self, soup: BeautifulSoup) -> list[str]:
        paragraphs = [node_text(p) for p in soup.find_all("p")]
        return [p for p in paragraphs if 20 < len(p) < 300][:MAX_PARAGRAPHS]

    def _raw_content(self, soup: BeautifulSoup) -> Optional[str]:
        body = soup.body or soup
        text = clean_text(body.get_text(" "))
        return text[:RAW_CONTENT_LIMIT] or None
