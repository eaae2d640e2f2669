"""Data models module for the listing audit pipeline."""

from listing_audit.models.schemas import (
    # Base Models
    BaseModel,
    TimestampMixin,

    # Enums
    AuditMode,
    DeliveryMode,
    AccessType,
    FulfilmentType,
    SuggestionKind,
    ReportStatus,
    ScrapeErrorCode,

    # Input Models
    ExistingSellerInput,
    NewSellerInput,
    NormalizedInput,
    ClientMeta,

    # Scrape Models
    ScrapedProductData,
    ScrapeOk,
    ScrapeErr,
    ScrapeResult,

    # Analysis Models
    KeywordTiers,
    ImageSlots,
    ListingPack,
    ContentQuality,
    QualityCheck,
    AnalysisResult,
    SuggestionResult,

    # Records
    Lead,
    Report,
    User,
    DeliveryRecord,
)

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "AuditMode",
    "DeliveryMode",
    "AccessType",
    "FulfilmentType",
    "SuggestionKind",
    "ReportStatus",
    "ScrapeErrorCode",
    "ExistingSellerInput",
    "NewSellerInput",
    "NormalizedInput",
    "ClientMeta",
    "ScrapedProductData",
    "ScrapeOk",
    "ScrapeErr",
    "ScrapeResult",
    "KeywordTiers",
    "ImageSlots",
    "ListingPack",
    "ContentQuality",
    "QualityCheck",
    "AnalysisResult",
    "SuggestionResult",
    "Lead",
    "Report",
    "User",
    "DeliveryRecord",
]
