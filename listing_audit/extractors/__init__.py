"""
Extractors module for the listing audit pipeline.

Scraping strategies that turn an external product page into
ScrapedProductData. Both strategies share one contract: `scrape` never raises
and returns ScrapeOk or ScrapeErr.

Components:
    - ProductScraper: Abstract base with HTTP client lifecycle
    - MarketplaceScraper: Identifier-based marketplace detail page scraper
    - SitePageScraper: URL-based generic product page scraper
"""

from listing_audit.extractors.base import (
    BROWSER_HEADERS,
    ProductScraper,
    clean_text,
)
from listing_audit.extractors.marketplace_scraper import MarketplaceScraper
from listing_audit.extractors.site_scraper import SitePageScraper

__all__ = [
    "BROWSER_HEADERS",
    "ProductScraper",
    "clean_text",
    "MarketplaceScraper",
    "SitePageScraper",
]
