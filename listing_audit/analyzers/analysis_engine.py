"""
AI analysis engine.

Turns normalized input plus optional scraped data into an AnalysisResult, and
generates keyword and title suggestions. The engine owns prompt selection,
reply validation and score fallbacks; transport retries belong to
ClaudeService.

Modes:
    - analyze_existing_seller: audit of a live marketplace listing
    - analyze_new_seller: a complete listing pack for a product not yet listed
    - suggest_keywords / suggest_titles: short ranked suggestion lists
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import Field, field_validator, model_validator

from listing_audit.analyzers.listing_quality import ListingQualityEvaluator
from listing_audit.analyzers.prompts import (
    PromptType,
    format_existing_seller_prompt,
    format_keyword_prompt,
    format_new_seller_prompt,
    format_title_prompt,
    get_prompt_config,
)
from listing_audit.config.settings import Settings, get_settings
from listing_audit.models.schemas import (
    AccessType,
    AnalysisResult,
    AuditMode,
    BaseModel,
    ContentQuality,
    ExistingSellerInput,
    ListingPack,
    NewSellerInput,
    ScrapedProductData,
    SuggestionKind,
    SuggestionResult,
    coerce_list,
)
from listing_audit.services.llm_service import ClaudeService, ClaudeServiceError, TaskType
from listing_audit.utils.errors import AnalysisError
from listing_audit.utils.logger import get_logger

logger = get_logger(__name__)

ANALYSIS_FAILED_MESSAGE = "AI analysis failed. Please try again later."
SUGGESTIONS_FAILED_MESSAGE = "Failed to generate suggestions"

KEYWORD_SUGGESTION_COUNT = 10
TITLE_SUGGESTION_COUNT = 3
MAX_TITLE_LENGTH = 200


# =============================================================================
# Reply Schemas
# =============================================================================

def parse_score(v: Any) -> Optional[float]:
    """Accept numbers, numeric strings and percentages; blank means absent."""
    if v is None:
        return None
    if isinstance(v, str):
        v = v.strip().rstrip("%").strip()
        if not v:
            return None
    try:
        number = float(v)
    except (TypeError, ValueError):
        raise ValueError(f"score is not a number: {v!r}")
    if not math.isfinite(number):
        raise ValueError("score must be a finite number")
    return number


class AuditSections(BaseModel):
    title_quality: str = Field(default="", alias="titleQuality")
    bullet_points: str = Field(default="", alias="bulletPoints")
    product_images: str = Field(default="", alias="productImages")
    product_description: str = Field(default="", alias="productDescription")
    product_information: str = Field(default="", alias="productInformation")

    @field_validator("*", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> str:
        return "" if v is None else str(v)


class ExistingAuditReply(BaseModel):
    title: Optional[str] = None
    score: Optional[float] = None
    highlights: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    detailed_analysis: AuditSections = Field(default_factory=AuditSections, alias="detailedAnalysis")
    content_quality: Optional[ContentQuality] = Field(default=None, alias="contentQuality")

    @field_validator("highlights", "recommendations", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> list:
        return coerce_list(v)

    @field_validator("score", mode="before")
    @classmethod
    def score_value(cls, v: Any) -> Optional[float]:
        return parse_score(v)

    def is_empty(self) -> bool:
        """No score and no findings at all. A score of 0 is not empty."""
        return (
            self.score is None
            and not self.highlights
            and not self.recommendations
            and not any(value.strip() for value in self.detailed_analysis.model_dump().values())
        )


class NewSellerReply(BaseModel):
    title: Optional[str] = None
    score: Optional[float] = None
    highlights: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    listing_pack: ListingPack = Field(..., alias="listingPack")

    @field_validator("highlights", "recommendations", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> list:
        return coerce_list(v)

    @field_validator("score", mode="before")
    @classmethod
    def score_value(cls, v: Any) -> Optional[float]:
        return parse_score(v)


class SuggestionReply(BaseModel):
    suggestions: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def accept_bare_list(cls, data: Any) -> Any:
        if isinstance(data, list):
            return {"suggestions": data}
        return data

    @field_validator("suggestions", mode="before")
    @classmethod
    def keep_strings(cls, v: Any) -> list[str]:
        return [str(s).strip() for s in coerce_list(v) if s is not None and str(s).strip()]


# =============================================================================
# Metrics
# =============================================================================

@dataclass
class EngineMetrics:
    """Counters for the engine's lifetime."""
    analyses: int = 0
    suggestions: int = 0
    failures: int = 0
    last_duration_ms: int = 0
    modes: list[str] = field(default_factory=list)


# =============================================================================
# Engine
# =============================================================================

class AnalysisEngine:
    """
    Runs the four content modes over ClaudeService.

    Example:
        >>> engine = AnalysisEngine(ClaudeService())
        >>> result = await engine.analyze(AuditMode.EXISTING, data, scraped)
        >>> result.score
        72
    """

    def __init__(
        self,
        llm_service: ClaudeService,
        settings: Optional[Settings] = None,
        evaluator: type[ListingQualityEvaluator] = ListingQualityEvaluator,
    ):
        self.llm_service = llm_service
        self.settings = settings or get_settings()
        self.evaluator = evaluator
        self._metrics = EngineMetrics()

    async def analyze(
        self,
        mode: AuditMode,
        data: ExistingSellerInput | NewSellerInput,
        scraped: Optional[ScrapedProductData] = None,
        access_type: AccessType = AccessType.GUEST,
    ) -> AnalysisResult:
        """Dispatch on the audit mode."""
        if mode is AuditMode.EXISTING:
            return await self.analyze_existing_seller(data, scraped, access_type)
        return await self.analyze_new_seller(data, scraped, access_type)

    async def analyze_existing_seller(
        self,
        data: ExistingSellerInput,
        scraped: Optional[ScrapedProductData] = None,
        access_type: AccessType = AccessType.GUEST,
    ) -> AnalysisResult:
        """
        Audit a live listing.

        The deterministic quality checks run first and are both fed to the
        model and attached to the result. If the model omits a score, the
        quality percentage is used.
        """
        quality = self.evaluator.evaluate_scraped(scraped) if scraped is not None else None
        system, prompt = format_existing_seller_prompt(data, scraped, quality, access_type)
        config = get_prompt_config(PromptType.EXISTING_SELLER_AUDIT)

        reply = await self._generate(
            prompt,
            ExistingAuditReply,
            system=system,
            task_type=TaskType.AUDIT,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            mode=AuditMode.EXISTING,
            access_type=access_type,
        )

        if reply.is_empty():
            self._metrics.failures += 1
            logger.warning("Audit reply was empty", asin=data.asin)
            raise AnalysisError(ANALYSIS_FAILED_MESSAGE)

        score = reply.score
        if score is None and quality is not None:
            score = quality.quality_percent

        sections = reply.detailed_analysis.model_dump()
        if reply.content_quality is not None:
            sections["content_quality"] = reply.content_quality.model_dump()

        return AnalysisResult(
            mode=AuditMode.EXISTING,
            title=reply.title or (scraped.title if scraped else None) or f"Listing audit for {data.asin}",
            score=score,
            highlights=reply.highlights,
            recommendations=reply.recommendations,
            detailed_analysis=sections,
            content_quality=reply.content_quality,
            quality_check=quality,
        )

    async def analyze_new_seller(
        self,
        data: NewSellerInput,
        scraped: Optional[ScrapedProductData] = None,
        access_type: AccessType = AccessType.GUEST,
    ) -> AnalysisResult:
        """
        Generate a listing pack.

        When the model omits a score, the score is the quality percentage of
        the generated pack.
        """
        system, prompt = format_new_seller_prompt(data, scraped, access_type)
        config = get_prompt_config(PromptType.NEW_SELLER_PACK)

        reply = await self._generate(
            prompt,
            NewSellerReply,
            system=system,
            task_type=TaskType.GENERATION,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            mode=AuditMode.NEW,
            access_type=access_type,
        )

        pack = reply.listing_pack
        if not pack.title and not pack.bullets and not pack.description:
            self._metrics.failures += 1
            logger.warning("Listing pack was empty", category=data.category)
            raise AnalysisError(ANALYSIS_FAILED_MESSAGE)

        quality = self.evaluator.evaluate_pack(pack, brand=scraped.brand if scraped else None)
        score = reply.score if reply.score is not None else quality.quality_percent

        detailed: dict[str, Any] = {}
        if pack.overall_readiness:
            detailed["overall_readiness"] = pack.overall_readiness

        return AnalysisResult(
            mode=AuditMode.NEW,
            title=reply.title or pack.title or f"Listing pack for {data.category}",
            score=score,
            highlights=reply.highlights,
            recommendations=reply.recommendations,
            detailed_analysis=detailed,
            listing_pack=pack,
            quality_check=quality,
        )

    async def suggest_keywords(self, category: str, description: str) -> SuggestionResult:
        """Ten ranked keyword suggestions."""
        system, prompt = format_keyword_prompt(category, description)
        suggestions = await self._suggest(
            prompt,
            system,
            PromptType.KEYWORD_SUGGESTIONS,
            TaskType.KEYWORDS,
        )
        return SuggestionResult(
            kind=SuggestionKind.KEYWORDS,
            suggestions=suggestions[:KEYWORD_SUGGESTION_COUNT],
        )

    async def suggest_titles(
        self,
        category: str,
        description: str,
        keywords: Optional[list[str]] = None,
    ) -> SuggestionResult:
        """Three title suggestions, each under 200 characters."""
        system, prompt = format_title_prompt(category, description, keywords or [])
        suggestions = await self._suggest(
            prompt,
            system,
            PromptType.TITLE_SUGGESTIONS,
            TaskType.TITLES,
        )
        titles = [t for t in suggestions if len(t) < MAX_TITLE_LENGTH]
        if not titles:
            self._metrics.failures += 1
            raise AnalysisError(SUGGESTIONS_FAILED_MESSAGE, code="SUGGESTIONS_FAILED")
        return SuggestionResult(
            kind=SuggestionKind.TITLE,
            suggestions=titles[:TITLE_SUGGESTION_COUNT],
        )

    async def suggest(
        self,
        kind: SuggestionKind,
        category: str,
        description: str,
        keywords: Optional[list[str]] = None,
    ) -> SuggestionResult:
        if kind is SuggestionKind.KEYWORDS:
            return await self.suggest_keywords(category, description)
        return await self.suggest_titles(category, description, keywords)

    # =========================================================================
    # Internals
    # =========================================================================

    async def _generate(self, prompt: str, schema: type, *, mode: AuditMode, access_type: AccessType, **kwargs):
        """One model call validated against `schema`; every failure is an AnalysisError."""
        start = time.perf_counter()
        try:
            reply = await self.llm_service.complete_json(prompt, schema, **kwargs)
        except ClaudeServiceError as e:
            self._metrics.failures += 1
            logger.error(
                "Analysis generation failed",
                mode=mode.value,
                access_type=access_type.value,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise AnalysisError(ANALYSIS_FAILED_MESSAGE) from e

        self._metrics.analyses += 1
        self._metrics.modes.append(mode.value)
        self._metrics.last_duration_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "Analysis generated",
            mode=mode.value,
            access_type=access_type.value,
            duration_ms=self._metrics.last_duration_ms,
        )
        return reply

    async def _suggest(
        self,
        prompt: str,
        system: str,
        prompt_type: PromptType,
        task_type: TaskType,
    ) -> list[str]:
        config = get_prompt_config(prompt_type)
        try:
            reply = await self.llm_service.complete_json(
                prompt,
                SuggestionReply,
                system=system,
                task_type=task_type,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
            )
        except ClaudeServiceError as e:
            self._metrics.failures += 1
            logger.error("Suggestion generation failed", kind=prompt_type.value, error=str(e))
            raise AnalysisError(SUGGESTIONS_FAILED_MESSAGE, code="SUGGESTIONS_FAILED") from e

        if not reply.suggestions:
            self._metrics.failures += 1
            raise AnalysisError(SUGGESTIONS_FAILED_MESSAGE, code="SUGGESTIONS_FAILED")

        self._metrics.suggestions += 1
        # De-duplicate, keeping rank order
        return list(dict.fromkeys(reply.suggestions))

    def get_metrics(self) -> EngineMetrics:
        return self._metrics

    async def close(self) -> None:
        """Close service connections."""
        await self.llm_service.close()


__all__ = [
    "AnalysisEngine",
    "EngineMetrics",
    "ExistingAuditReply",
    "NewSellerReply",
    "SuggestionReply",
    "ANALYSIS_FAILED_MESSAGE",
    "SUGGESTIONS_FAILED_MESSAGE",
]
