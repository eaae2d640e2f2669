from unittest.mock import AsyncMock, MagicMock

import pytest

from listing_audit.models.schemas import ScrapeOk
from listing_audit.pipeline.orchestrator import LeadPipeline


def make_scraper(name, outcome):
    scraper = MagicMock()
    scraper.name = name
    scraper.timeout_seconds = 2.0
    scraper.scrape = AsyncMock(return_value=outcome)
    scraper.disconnect = AsyncMock()
    return scraper


@pytest.fixture
def marketplace(scraped_product):
    return make_scraper("marketplace", ScrapeOk(scraped_product))


@pytest.fixture
def site(scraped_product):
    return make_scraper("site", ScrapeOk(scraped_product))


@pytest.fixture
def pipeline(mock_settings, marketplace, site, mock_engine, store, mock_dispatcher, mock_observer):
    """LeadPipeline running its real graphs over mocked collaborators."""
    return LeadPipeline(
        settings=mock_settings,
        marketplace_scraper=marketplace,
        site_scraper=site,
        engine=mock_engine,
        store=store,
        dispatcher=mock_dispatcher,
        observer=mock_observer,
    )
