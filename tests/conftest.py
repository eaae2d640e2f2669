import pytest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

from listing_audit.models.schemas import (
    AnalysisResult,
    AuditMode,
    ClientMeta,
    DeliveryRecord,
    ExistingSellerInput,
    ImageSlots,
    KeywordTiers,
    ListingPack,
    NewSellerInput,
    QualityCheck,
    ScrapedProductData,
    SuggestionKind,
    SuggestionResult,
)
from listing_audit.services.report_store import InMemoryReportStore

BROWSER_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_4) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.4 Safari/605.1.15"
)

SETTINGS_LOOKUPS = (
    "listing_audit.config.settings.get_settings",
    "listing_audit.extractors.base.get_settings",
    "listing_audit.services.llm_service.get_settings",
    "listing_audit.services.email_service.get_settings",
    "listing_audit.services.auth_service.get_settings",
    "listing_audit.analyzers.analysis_engine.get_settings",
    "listing_audit.pipeline.orchestrator.get_settings",
    "listing_audit.api.container.get_settings",
    "listing_audit.api.app.get_settings",
    "listing_audit.main.get_settings",
)


@pytest.fixture
def mock_settings():
    """Create mock settings for testing."""
    settings = MagicMock()
    settings.anthropic_api_key.get_secret_value.return_value = "sk-ant-api-mock-key"
    settings.resend_api_key.get_secret_value.return_value = "re_mock_key"
    settings.jwt_secret.get_secret_value.return_value = "test-session-secret-0123456789abcdef"
    settings.smtp_password = None

    settings.app_env = "development"
    settings.debug = False
    settings.log_level = "INFO"
    settings.log_json = False
    settings.log_dir = Path("logs")

    settings.claude_model = "claude-sonnet-4-20250514"
    settings.claude_max_tokens = 4000
    settings.claude_max_retries = 2
    settings.claude_correction_attempts = 0
    settings.ai_timeout_seconds = 5.0

    settings.marketplace_base_url = "https://www.amazon.co.uk"
    settings.marketplace_timeout_seconds = 2.0
    settings.site_timeout_seconds = 2.0

    settings.email_provider = "resend"
    settings.email_from = "contact@e-ctrl.co.uk"
    settings.email_from_name = "E-Ctrl"
    settings.email_timeout_seconds = 5.0
    settings.smtp_host = None
    settings.smtp_port = 587
    settings.smtp_username = None

    settings.store_backend = "memory"
    settings.store_timeout_seconds = 2.0
    settings.jwt_expiry_days = 7
    settings.bcrypt_rounds = 4

    settings.configured_services.return_value = {
        "ai": True,
        "email": True,
        "store": True,
        "sessions": True,
    }
    return settings


@pytest.fixture(autouse=True)
def patch_get_settings(mock_settings):
    """Globally patch get_settings wherever it was imported by name."""
    patchers = [patch(target, return_value=mock_settings) for target in SETTINGS_LOOKUPS]
    for p in patchers:
        p.start()
    yield mock_settings
    for p in reversed(patchers):
        p.stop()


# =============================================================================
# Inputs
# =============================================================================

@pytest.fixture
def browser_meta():
    return ClientMeta(user_agent=BROWSER_UA, ip_address="203.0.113.7", referrer="https://e-ctrl.co.uk/")


@pytest.fixture
def existing_fields():
    return {
        "asin": "B08N5WRWNW",
        "name": "Sam Seller",
        "email": "Sam@Example.com ",
        "keywords": ["wireless earbuds", "bluetooth headphones"],
        "fulfilment": "FBA",
    }


@pytest.fixture
def new_fields():
    return {
        "websiteUrl": "https://shop.example.com/products/bamboo-board",
        "category": "Home & Kitchen",
        "description": "Organic bamboo chopping board with juice groove",
        "keywords": ["bamboo chopping board", "wooden cutting board"],
        "fulfilmentIntent": "FBA",
        "name": "Nia Maker",
        "email": "nia@example.com",
    }


@pytest.fixture
def existing_input(existing_fields):
    return ExistingSellerInput(**existing_fields)


@pytest.fixture
def new_input():
    return NewSellerInput(
        website_url="https://shop.example.com/products/bamboo-board",
        category="Home & Kitchen",
        description="Organic bamboo chopping board with juice groove",
        keywords=["bamboo chopping board", "wooden cutting board"],
        name="Nia Maker",
        email="nia@example.com",
    )


# =============================================================================
# Stage outputs
# =============================================================================

@pytest.fixture
def scraped_product():
    return ScrapedProductData(
        title="Acme Wireless Earbuds with Charging Case, 30h Playtime",
        description="Acme earbuds deliver rich sound. " * 10,
        price="£29.99",
        images=[f"https://m.media-amazon.com/images/I/img{i}.jpg" for i in range(7)],
        bullet_points=[
            "Acme sound tuned for deep bass and clear calls",
            "30 hours of playtime with the charging case",
            "IPX5 water resistance for workouts in the rain",
            "Touch controls for music, calls and voice assistant",
            "Secure fit with three sizes of silicone tips",
        ],
        category="Electronics > Headphones",
        brand="Acme",
        rating=4.4,
        review_count=1234,
        asin="B08N5WRWNW",
        url="https://www.amazon.co.uk/dp/B08N5WRWNW",
    )


@pytest.fixture
def listing_pack():
    return ListingPack(
        title="GreenCut Bamboo Chopping Board with Juice Groove, Large",
        bullets=[
            "GreenCut organic bamboo is gentle on knife edges",
            "Deep juice groove keeps counters clean",
            "Large 45 x 30 cm surface for meal prep",
            "Reversible design with serving side",
            "Easy to clean with warm soapy water",
        ],
        description="A sturdy bamboo board for everyday prep. " * 8,
        keywords=KeywordTiers(
            primary=["bamboo chopping board"],
            secondary=["wooden cutting board"],
            long_tail=["large bamboo chopping board with juice groove"],
        ),
        images=ImageSlots(main_image="Board on white background", lifestyle_image="Board in a kitchen"),
        compliance=["Avoid 'antibacterial' claims without evidence"],
        overall_readiness="Ready to list",
    )


@pytest.fixture
def existing_result():
    return AnalysisResult(
        mode=AuditMode.EXISTING,
        title="Acme Wireless Earbuds",
        score=72,
        highlights=["Strong review count", "Seven images"],
        recommendations=["Lead the title with the brand", "Add an A+ comparison chart"],
        detailed_analysis={
            "title_quality": "Clear but keyword-light.",
            "bullet_points": "Five bullets, benefit-led.",
        },
        quality_check=QualityCheck(
            score=8,
            max_possible=10,
            quality_percent=80,
            grade="A",
            checks={"has_brand": 1},
            notes=[],
        ),
    )


@pytest.fixture
def new_result(listing_pack):
    return AnalysisResult(
        mode=AuditMode.NEW,
        title=listing_pack.title,
        score=81,
        highlights=["Brand-led title"],
        recommendations=["Shoot a lifestyle image"],
        detailed_analysis={"overall_readiness": "Ready to list"},
        listing_pack=listing_pack,
    )


# =============================================================================
# Collaborators
# =============================================================================

@pytest.fixture
def mock_engine(existing_result, new_result):
    """Analysis engine whose analyze() answers by mode."""
    engine = MagicMock()

    async def analyze(mode, data, scraped=None, access_type=None):
        return existing_result if mode is AuditMode.EXISTING else new_result

    engine.analyze = AsyncMock(side_effect=analyze)
    engine.suggest = AsyncMock(return_value=SuggestionResult(
        kind=SuggestionKind.KEYWORDS,
        suggestions=["bamboo chopping board", "wooden cutting board"],
    ))
    engine.close = AsyncMock()
    return engine


@pytest.fixture
def mock_dispatcher():
    dispatcher = MagicMock()
    dispatcher.send = AsyncMock(return_value=DeliveryRecord(
        success=True,
        provider="resend",
        message_id="msg_123",
        has_attachment=True,
    ))
    dispatcher.close = AsyncMock()
    return dispatcher


@pytest.fixture
def mock_observer():
    return MagicMock()


@pytest.fixture
def store():
    return InMemoryReportStore()
