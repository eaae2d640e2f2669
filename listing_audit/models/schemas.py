"""
Pydantic models and schemas for the listing audit pipeline.

This module defines all data structures used throughout the pipeline,
ensuring type safety, validation, and serialization consistency.

Models:
    - ExistingSellerInput / NewSellerInput: Normalized user input (discriminated by mode)
    - ScrapedProductData: Attributes extracted from an external product page
    - ScrapeOk / ScrapeErr: Tagged scrape result
    - AnalysisResult / ListingPack: AI audit and generated listing content
    - SuggestionResult: Keyword and title suggestions
    - Lead / Report / User: Persisted records
    - DeliveryRecord: Outcome of one e-mail send attempt
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Self, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel as PydanticBaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Base Configuration
# =============================================================================

class BaseModel(PydanticBaseModel):
    """Base model with common configuration for all schemas."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
        ser_json_timedelta="iso8601",
    )

    def to_json(self, **kwargs) -> str:
        """Serialize model to JSON string."""
        return self.model_dump_json(indent=2, **kwargs)

    def to_dict(self, **kwargs) -> dict[str, Any]:
        """Serialize model to a JSON-compatible dictionary."""
        return self.model_dump(mode="json", **kwargs)


class TimestampMixin(BaseModel):
    """Mixin for records that need timestamp tracking."""

    created_at: datetime = Field(
        default_factory=utcnow,
        description="Record creation timestamp in ISO 8601 format",
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        description="Last update timestamp in ISO 8601 format",
    )

    @field_serializer("created_at", "updated_at")
    def serialize_datetime(self, value: Optional[datetime]) -> Optional[str]:
        """Serialize datetime to ISO format string."""
        if not value:
            return None
        if value.tzinfo is None:
            return value.isoformat() + "Z"
        return value.isoformat()


# =============================================================================
# Enums
# =============================================================================

class AuditMode(str, Enum):
    """The two audit modes. Parsed once at the boundary."""
    EXISTING = "existing"
    NEW = "new"

    @property
    def delivery_mode(self) -> "DeliveryMode":
        return DeliveryMode.AUDIT if self is AuditMode.EXISTING else DeliveryMode.CREATE

    @property
    def lead_audit_type(self) -> str:
        return "existing_seller" if self is AuditMode.EXISTING else "new_seller"


class DeliveryMode(str, Enum):
    """Flavour of the outbound e-mail."""
    AUDIT = "audit"
    CREATE = "create"


class AccessType(str, Enum):
    GUEST = "guest"
    ACCOUNT = "account"


class FulfilmentType(str, Enum):
    FBA = "FBA"
    FBM = "FBM"
    UNSURE = "Unsure"


class SuggestionKind(str, Enum):
    KEYWORDS = "keywords"
    TITLE = "title"


class ReportStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class ScrapeErrorCode(str, Enum):
    """Scrape failure classes."""
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_ASIN = "INVALID_ASIN"
    PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
    FETCH_FAILED = "FETCH_FAILED"
    SCRAPING_FAILED = "SCRAPING_FAILED"
    TIMEOUT = "TIMEOUT"

    @property
    def is_terminal(self) -> bool:
        """Terminal classes abort the pipeline for every strategy."""
        return self in TERMINAL_SCRAPE_ERRORS


TERMINAL_SCRAPE_ERRORS = frozenset({
    ScrapeErrorCode.INVALID_INPUT,
    ScrapeErrorCode.INVALID_ASIN,
    ScrapeErrorCode.PRODUCT_NOT_FOUND,
})


# =============================================================================
# Validators (Reusable)
# =============================================================================

ASIN_PATTERN = re.compile(r"^[A-Z0-9]{10}$")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Markers that precede an embedded identifier in a product URL path.
ASIN_URL_PATTERNS = (
    re.compile(r"/dp/([A-Z0-9]{10})(?=[/?#]|$)", re.IGNORECASE),
    re.compile(r"/gp/product/([A-Z0-9]{10})(?=[/?#]|$)", re.IGNORECASE),
    re.compile(r"/gp/aw/d/([A-Z0-9]{10})(?=[/?#]|$)", re.IGNORECASE),
    re.compile(r"/product/([A-Z0-9]{10})(?=[/?#]|$)", re.IGNORECASE),
    re.compile(r"[?&]asin=([A-Z0-9]{10})(?=[&#]|$)", re.IGNORECASE),
)


def validate_asin(asin: str) -> str:
    """Validate ASIN format - 10 alphanumeric characters, upper-cased."""
    asin = asin.upper().strip()

    if not ASIN_PATTERN.match(asin):
        raise ValueError(
            f"Invalid ASIN format: '{asin}'. "
            "Must be 10 alphanumeric characters (e.g., 'B08N5WRWNW')"
        )

    return asin


def find_embedded_asin(url: str) -> Optional[str]:
    """Return the identifier that follows a known product-path marker, if any."""
    for pattern in ASIN_URL_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1).upper()
    return None


def validate_email_address(email: str) -> str:
    """Validate and normalize an e-mail address to trimmed lower case."""
    email = (email or "").strip()
    if not email:
        raise ValueError("Email is required")
    if not EMAIL_PATTERN.match(email):
        raise ValueError("Please enter a valid email address")
    return email.lower()


def sanitize_text(text: str) -> str:
    """
    Trim and strip angle brackets.

    A minimal defense against trivial markup injection in free-form fields.
    It is not escaping and not a security boundary.
    """
    return text.strip().replace("<", "").replace(">", "").strip()


# =============================================================================
# Input Models
# =============================================================================

class ContactFields(BaseModel):
    """Contact details shared by both input modes."""

    name: str = Field(..., min_length=2, max_length=100, description="Visitor display name")
    email: str = Field(..., description="Contact e-mail, trimmed and lower-cased")
    phone: Optional[str] = Field(default=None, max_length=40)

    @field_validator("email", mode="before")
    @classmethod
    def validate_email_format(cls, v: str) -> str:
        return validate_email_address(v)

    @field_validator("name", mode="before")
    @classmethod
    def sanitize_name(cls, v: str) -> str:
        return sanitize_text(v) if isinstance(v, str) else v


class ExistingSellerInput(ContactFields):
    """
    Normalized input for an audit of an existing marketplace listing.

    Example:
        >>> data = ExistingSellerInput(asin="B08N5WRWNW", name="Sam", email="sam@example.com")
        >>> data.mode
        <AuditMode.EXISTING: 'existing'>
    """

    mode: Literal[AuditMode.EXISTING] = AuditMode.EXISTING
    asin: str = Field(..., description="10-character uppercase marketplace identifier")
    keywords: list[str] = Field(default_factory=list, max_length=8)
    fulfilment: Optional[FulfilmentType] = None

    @field_validator("asin", mode="before")
    @classmethod
    def validate_asin_format(cls, v: str) -> str:
        return validate_asin(v)

    @field_validator("fulfilment")
    @classmethod
    def live_listing_fulfilment(cls, v: Optional[FulfilmentType]) -> Optional[FulfilmentType]:
        if v is FulfilmentType.UNSURE:
            raise ValueError("Fulfilment must be FBA or FBM for a live listing")
        return v

    @field_validator("keywords", mode="before")
    @classmethod
    def clean_keywords(cls, v: Optional[list[str]]) -> list[str]:
        if v is None:
            return []
        return [sanitize_text(k) for k in v if isinstance(k, str) and sanitize_text(k)]


class NewSellerInput(ContactFields):
    """
    Normalized input for generating a new listing.

    Either a product website URL or a short no-website description is
    required; manual product fields are always present.
    """

    mode: Literal[AuditMode.NEW] = AuditMode.NEW
    website_url: Optional[str] = Field(default=None, description="Absolute http(s) product page URL")
    no_website_desc: Optional[str] = Field(default=None, min_length=12, max_length=400)
    category: str = Field(..., min_length=2, max_length=100)
    description: str = Field(..., min_length=12, max_length=400)
    keywords: list[str] = Field(..., min_length=2, max_length=5)
    fulfilment_intent: FulfilmentType = FulfilmentType.UNSURE

    @field_validator("category", "description", "no_website_desc", mode="before")
    @classmethod
    def sanitize_free_text(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        cleaned = sanitize_text(v)
        return cleaned or None

    @field_validator("keywords", mode="before")
    @classmethod
    def clean_keywords(cls, v: Optional[list[str]]) -> list[str]:
        if v is None:
            return []
        return [sanitize_text(k) for k in v if isinstance(k, str) and sanitize_text(k)]

    @model_validator(mode="after")
    def require_url_or_description(self) -> Self:
        if not self.website_url and not self.no_website_desc:
            raise ValueError("Provide a website URL or a short description.")
        return self


NormalizedInput = Annotated[
    Union[ExistingSellerInput, NewSellerInput],
    Field(discriminator="mode"),
]


class ClientMeta(BaseModel):
    """Request metadata recorded on leads and used by the bot gate."""

    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    referrer: Optional[str] = None


# =============================================================================
# Scrape Models
# =============================================================================

class ScrapedProductData(BaseModel):
    """Attributes extracted from an external product page. Every field is optional."""

    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[str] = None
    images: list[str] = Field(default_factory=list)
    bullet_points: list[str] = Field(default_factory=list)
    category: Optional[str] = None
    brand: Optional[str] = None
    availability: Optional[str] = None
    rating: Optional[float] = Field(default=None, ge=0.0, le=5.0)
    review_count: Optional[int] = Field(default=None, ge=0)
    asin: Optional[str] = None
    url: Optional[str] = None
    headings: list[str] = Field(default_factory=list)
    paragraphs: list[str] = Field(default_factory=list)
    raw_content: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.title or self.description or self.raw_content)


@dataclass(frozen=True)
class ScrapeOk:
    data: ScrapedProductData


@dataclass(frozen=True)
class ScrapeErr:
    code: ScrapeErrorCode
    message: str


ScrapeResult = Union[ScrapeOk, ScrapeErr]


# =============================================================================
# Analysis Models
# =============================================================================

def coerce_list(v: Any) -> list:
    if v is None:
        return []
    if isinstance(v, str):
        return [v] if v.strip() else []
    return list(v)


class KeywordTiers(BaseModel):
    primary: list[str] = Field(default_factory=list)
    secondary: list[str] = Field(default_factory=list)
    long_tail: list[str] = Field(default_factory=list, alias="longTail")

    @field_validator("primary", "secondary", "long_tail", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> list:
        return coerce_list(v)


class ImageSlots(BaseModel):
    """The six image briefs of a listing pack."""

    main_image: Optional[str] = Field(default=None, alias="mainImage")
    lifestyle_image: Optional[str] = Field(default=None, alias="lifestyleImage")
    benefits_infographic: Optional[str] = Field(default=None, alias="benefitsInfographic")
    how_to_use: Optional[str] = Field(default=None, alias="howToUse")
    measurements: Optional[str] = None
    comparison: Optional[str] = None

    def filled(self) -> list[str]:
        return [v for v in self.model_dump().values() if v]


class ListingPack(BaseModel):
    """Generated listing content for create mode."""

    title: str = ""
    bullets: list[str] = Field(default_factory=list)
    description: str = ""
    keywords: KeywordTiers = Field(default_factory=KeywordTiers)
    images: ImageSlots = Field(default_factory=ImageSlots)
    compliance: list[str] = Field(default_factory=list)
    overall_readiness: Optional[str] = Field(default=None, alias="overallReadiness")

    @field_validator("bullets", "compliance", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> list:
        return coerce_list(v)


class ContentQuality(BaseModel):
    """Per-section sub-scores for an existing listing."""

    title_score: Optional[int] = Field(default=None, ge=0, le=100, alias="titleScore")
    bullets_score: Optional[int] = Field(default=None, ge=0, le=100, alias="bulletsScore")
    images_score: Optional[int] = Field(default=None, ge=0, le=100, alias="imagesScore")
    description_score: Optional[int] = Field(default=None, ge=0, le=100, alias="descriptionScore")
    information_score: Optional[int] = Field(default=None, ge=0, le=100, alias="informationScore")

    @field_validator("*", mode="before")
    @classmethod
    def round_and_clamp(cls, v: Any) -> Optional[int]:
        if v is None:
            return None
        return max(0, min(100, round(float(v))))


class QualityCheck(BaseModel):
    """Deterministic binary listing-quality evaluation."""

    score: int = Field(..., ge=0)
    max_possible: int = Field(..., ge=1)
    quality_percent: int = Field(..., ge=0, le=100)
    grade: Literal["A", "B", "C"]
    checks: dict[str, int] = Field(default_factory=dict)
    notes: list[str] = Field(default_factory=list)


class AnalysisResult(BaseModel):
    """
    Result of an audit or listing generation.

    The score is always within [0, 100] and highlights/recommendations are
    always lists, possibly empty. A low score is a valid result.
    """

    mode: AuditMode
    title: Optional[str] = None
    score: int = Field(default=0, ge=0, le=100)
    highlights: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    detailed_analysis: dict[str, Any] = Field(default_factory=dict, alias="detailedAnalysis")
    listing_pack: Optional[ListingPack] = Field(default=None, alias="listingPack")
    content_quality: Optional[ContentQuality] = Field(default=None, alias="contentQuality")
    quality_check: Optional[QualityCheck] = Field(default=None, alias="qualityCheck")

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, v: Any) -> int:
        if v is None:
            return 0
        if isinstance(v, str):
            v = v.strip().rstrip("%")
        number = float(v)
        if not math.isfinite(number):
            raise ValueError("score must be a finite number")
        return max(0, min(100, round(number)))

    @field_validator("highlights", "recommendations", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> list:
        return coerce_list(v)

    @field_validator("detailed_analysis", mode="before")
    @classmethod
    def none_to_empty_dict(cls, v: Any) -> dict:
        return v or {}


class SuggestionResult(BaseModel):
    kind: SuggestionKind
    suggestions: list[str] = Field(default_factory=list)


# =============================================================================
# Persisted Records
# =============================================================================

class Lead(TimestampMixin):
    """A prospective user and the audit request that created them."""

    id: UUID = Field(default_factory=uuid4)
    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    audit_type: AuditMode
    asin: Optional[str] = None
    keywords: list[str] = Field(default_factory=list)
    fulfilment: Optional[str] = None
    website_url: Optional[str] = None
    no_website_desc: Optional[str] = None
    category: Optional[str] = None
    product_desc: Optional[str] = None
    fulfilment_intent: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    user_id: Optional[UUID] = None

    @classmethod
    def from_input(cls, data: ExistingSellerInput | NewSellerInput, meta: ClientMeta) -> "Lead":
        common = {
            "email": data.email,
            "name": data.name,
            "phone": data.phone,
            "audit_type": data.mode,
            "keywords": list(data.keywords),
            "ip_address": meta.ip_address,
            "user_agent": meta.user_agent,
            "referrer": meta.referrer,
        }
        if isinstance(data, ExistingSellerInput):
            return cls(
                **common,
                asin=data.asin,
                fulfilment=data.fulfilment.value if data.fulfilment else None,
            )
        return cls(
            **common,
            website_url=data.website_url,
            no_website_desc=data.no_website_desc,
            category=data.category,
            product_desc=data.description,
            fulfilment_intent=data.fulfilment_intent.value,
        )


class Report(TimestampMixin):
    """One persisted analysis result. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    lead_id: UUID
    user_id: Optional[UUID] = None
    mode: AuditMode
    score: int = Field(..., ge=0, le=100)
    highlights: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    detailed_analysis: dict[str, Any] = Field(default_factory=dict)
    access_type: AccessType = AccessType.GUEST
    status: ReportStatus = ReportStatus.COMPLETED
    asin: Optional[str] = None

    @classmethod
    def from_result(
        cls,
        lead: Lead,
        result: AnalysisResult,
        access_type: AccessType,
    ) -> "Report":
        detailed = dict(result.detailed_analysis)
        if result.listing_pack is not None:
            detailed["listing_pack"] = result.listing_pack.model_dump()
        if result.quality_check is not None:
            detailed["quality_check"] = result.quality_check.model_dump()
        return cls(
            lead_id=lead.id,
            user_id=lead.user_id if access_type is AccessType.ACCOUNT else None,
            mode=result.mode,
            score=result.score,
            highlights=result.highlights,
            recommendations=result.recommendations,
            detailed_analysis=detailed,
            access_type=access_type,
            asin=lead.asin,
        )


class User(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    email: str
    password_hash: str = Field(..., repr=False)
    name: str
    is_active: bool = True
    email_verified: bool = False
    promotional_consent: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    last_login: Optional[datetime] = None

    def public_profile(self) -> dict[str, Any]:
        """Session identity payload (never includes the password hash)."""
        return {
            "id": str(self.id),
            "email": self.email,
            "name": self.name,
            "emailVerified": self.email_verified,
            "createdAt": self.created_at.isoformat(),
            "lastLogin": self.last_login.isoformat() if self.last_login else None,
        }


class DeliveryRecord(BaseModel):
    """Outcome of an e-mail send attempt. Not persisted."""

    success: bool
    provider: str = ""
    message_id: Optional[str] = None
    error: Optional[str] = None
    has_attachment: bool = False


# =============================================================================
# Export All Models
# =============================================================================

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
    "TERMINAL_SCRAPE_ERRORS",
    "ContactFields",
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
    "validate_asin",
    "find_embedded_asin",
    "validate_email_address",
    "sanitize_text",
    "coerce_list",
]
