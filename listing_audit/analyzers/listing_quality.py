"""
Deterministic listing-quality checks.

Ten binary checks over what is visible on a listing: brand, title, bullets,
description, images and social proof. The evaluation is pure and needs no
network access, so it runs on scraped marketplace data as well as on a
generated listing pack.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from listing_audit.models.schemas import ListingPack, QualityCheck, ScrapedProductData


@dataclass
class ListingSnapshot:
    """The listing attributes the checks look at."""
    title: Optional[str] = None
    brand: Optional[str] = None
    bullets: list[str] = field(default_factory=list)
    description: Optional[str] = None
    image_count: int = 0
    review_count: Optional[int] = None
    rating: Optional[float] = None

    @classmethod
    def from_scraped(cls, data: ScrapedProductData) -> "ListingSnapshot":
        return cls(
            title=data.title,
            brand=data.brand,
            bullets=list(data.bullet_points),
            description=data.description,
            image_count=len(data.images),
            review_count=data.review_count,
            rating=data.rating,
        )

    @classmethod
    def from_pack(cls, pack: ListingPack, brand: Optional[str] = None) -> "ListingSnapshot":
        """A generated pack has image briefs instead of images and no reviews yet."""
        return cls(
            title=pack.title or None,
            brand=brand,
            bullets=list(pack.bullets),
            description=pack.description or None,
            image_count=len(pack.images.filled()),
        )


class ListingQualityEvaluator:
    """Scores a listing with binary checks and produces plain-language notes."""

    MIN_TITLE_LENGTH = 10
    MAX_TITLE_LENGTH = 200
    MIN_BULLETS = 5
    MIN_DESCRIPTION_CHARS = 200
    MIN_IMAGES = 6

    # Inclusive lower bounds on the raw score out of 10
    GRADE_BANDS = (("A", 8), ("B", 6))

    CHECKS = (
        "has_brand",
        "title_starts_with_brand",
        "title_correct_length",
        "has_bullets_5plus",
        "has_description_200plus",
        "has_main_image",
        "images_6plus",
        "brand_in_bullets_or_desc",
        "has_reviews",
        "has_star_rating",
    )

    @staticmethod
    def normalize(text: str) -> str:
        """Lower-case, collapse whitespace, drop trademark marks and punctuation."""
        text = re.sub(r"\s+", " ", text.lower().strip())
        text = text.replace("®", "").replace("™", "")
        return re.sub(r"[^\w\s]", "", text)

    @classmethod
    def grade_for(cls, score: int) -> str:
        for grade, lower in cls.GRADE_BANDS:
            if score >= lower:
                return grade
        return "C"

    @classmethod
    def evaluate(cls, listing: ListingSnapshot) -> QualityCheck:
        title = listing.title or ""
        brand = listing.brand or ""
        description = listing.description or ""
        norm_brand = cls.normalize(brand) if brand else ""

        mentions_brand = bool(norm_brand) and (
            any(norm_brand in cls.normalize(b) for b in listing.bullets)
            or norm_brand in cls.normalize(description)
        )

        checks = {
            "has_brand": int(bool(brand)),
            "title_starts_with_brand": int(
                bool(norm_brand) and bool(title) and cls.normalize(title).startswith(norm_brand)
            ),
            "title_correct_length": int(cls.MIN_TITLE_LENGTH <= len(title) <= cls.MAX_TITLE_LENGTH),
            "has_bullets_5plus": int(len(listing.bullets) >= cls.MIN_BULLETS),
            "has_description_200plus": int(len(description) >= cls.MIN_DESCRIPTION_CHARS),
            "has_main_image": int(listing.image_count > 0),
            "images_6plus": int(listing.image_count >= cls.MIN_IMAGES),
            "brand_in_bullets_or_desc": int(mentions_brand),
            "has_reviews": int((listing.review_count or 0) >= 1),
            "has_star_rating": int(listing.rating is not None and listing.rating > 0),
        }

        score = sum(checks.values())
        max_possible = len(cls.CHECKS)
        return QualityCheck(
            score=score,
            max_possible=max_possible,
            quality_percent=round(score / max_possible * 100),
            grade=cls.grade_for(score),
            checks=checks,
            notes=cls._notes(checks, listing),
        )

    @classmethod
    def evaluate_scraped(cls, data: ScrapedProductData) -> QualityCheck:
        return cls.evaluate(ListingSnapshot.from_scraped(data))

    @classmethod
    def evaluate_pack(cls, pack: ListingPack, brand: Optional[str] = None) -> QualityCheck:
        return cls.evaluate(ListingSnapshot.from_pack(pack, brand))

    @classmethod
    def _notes(cls, checks: dict[str, int], listing: ListingSnapshot) -> list[str]:
        notes = []
        title = listing.title or ""
        if not checks["has_brand"]:
            notes.append("Missing brand information - customers can't identify your product")
        if not checks["title_starts_with_brand"] and listing.brand and title:
            notes.append("Title doesn't start with your brand - missed branding opportunity")
        if not checks["title_correct_length"] and title:
            if len(title) > cls.MAX_TITLE_LENGTH:
                notes.append(f"Title is too long ({len(title)} characters) - Amazon may cut it off")
            else:
                notes.append(f"Title is too short ({len(title)} characters) - shoppers skip vague titles")
        if not checks["has_bullets_5plus"]:
            notes.append(
                f"Only {len(listing.bullets)} bullet points - you're missing key selling opportunities"
            )
        if not checks["has_description_200plus"] and listing.description:
            notes.append("Product description is too short - customers need more details to buy")
        if not checks["has_main_image"]:
            notes.append("Main product image missing - first impression is everything")
        if not checks["images_6plus"]:
            notes.append(
                f"Only {listing.image_count} images - customers need to see more to feel confident buying"
            )
        if not checks["brand_in_bullets_or_desc"] and listing.brand:
            notes.append("Brand not mentioned in product details - missed trust-building opportunity")
        if not checks["has_reviews"]:
            notes.append("No customer reviews - social proof is crucial for conversions")
        if not checks["has_star_rating"]:
            notes.append("No star rating visible - customers can't see your product quality")
        return notes


__all__ = ["ListingQualityEvaluator", "ListingSnapshot"]
