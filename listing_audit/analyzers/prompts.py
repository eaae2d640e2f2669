"""
Prompts for listing audits, listing-pack generation and suggestions.

Every prompt asks for raw JSON matching a fixed shape; the engine validates
the reply against a pydantic schema. Guest and account variants differ only
in the depth section appended to the user prompt.

Prompt Categories:
    1. Existing-seller listing audit
    2. New-seller listing pack
    3. Keyword suggestions
    4. Title suggestions
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from listing_audit.models.schemas import (
    AccessType,
    ExistingSellerInput,
    NewSellerInput,
    QualityCheck,
    ScrapedProductData,
)


# =============================================================================
# Configuration
# =============================================================================

class PromptType(str, Enum):
    EXISTING_SELLER_AUDIT = "existing_seller_audit"
    NEW_SELLER_PACK = "new_seller_pack"
    KEYWORD_SUGGESTIONS = "keyword_suggestions"
    TITLE_SUGGESTIONS = "title_suggestions"


@dataclass
class PromptConfig:
    """Sampling configuration for a prompt."""
    temperature: float = 0.3
    max_tokens: int = 2000


# =============================================================================
# System Prompts
# =============================================================================

LISTING_CONSULTANT_SYSTEM = """You are an expert Amazon marketplace consultant specialising in UK/EU listings. You audit product detail pages and write listing content that converts browsers into buyers while meeting Amazon's listing quality standards.

<principles>
- Be specific: reference the actual title, bullets, images and reviews you were given
- Be actionable: every recommendation is something the seller can change today
- Be honest: if data is missing, say so instead of inventing it
- A+ content and backend keywords cannot be seen from the public page; do not score them
</principles>

<output_format>
Respond ONLY with valid JSON matching the requested structure.
Never wrap the JSON in markdown code blocks.
</output_format>"""


SEO_SPECIALIST_SYSTEM = """You are an Amazon SEO specialist for the UK/EU marketplaces. You suggest search terms and titles that real shoppers type, following Amazon's title guidelines.

Respond ONLY with valid JSON. Do not include markdown code blocks."""


GUEST_DEPTH = """<depth>
STANDARD ANALYSIS: this is a guest visitor. Keep it focused: {highlight_range} highlights and 3-5 recommendations, each one sentence.
</depth>"""

ACCOUNT_DEPTH = """<depth>
ENHANCED ANALYSIS: this visitor has an account. Give the full version: {highlight_range} highlights and 5-7 recommendations, including
- keyword optimisation strategy with likely search intent
- conversion-rate improvements and the shopper objection each one answers
- competitor gap analysis from what the listing is missing
- the expected impact of each improvement, ranked
</depth>"""


# =============================================================================
# Prompt 1: Existing-Seller Listing Audit
# =============================================================================

EXISTING_SELLER_AUDIT_USER = """<task>
Audit this EXISTING marketplace listing and tell the seller what to fix first.
</task>

<listing>
{listing_block}
</listing>

<quality_checks>
{quality_block}
</quality_checks>

{depth}

<instructions>
1. Score the listing 0-100. Use the quality-check percentage as the foundation and adjust by at most 10 points for content quality (benefit focus, clarity, conversion potential).
2. Highlights: the biggest problems hurting sales right now.
3. Recommendations: the most impactful fixes, highest impact first.
4. Detailed analysis: one paragraph each for title, bullet points, images, description and product information.
5. Content quality: a 0-100 sub-score for each section.
</instructions>

<output_schema>
{{
  "title": "short headline for the audit",
  "score": 0,
  "highlights": ["..."],
  "recommendations": ["..."],
  "detailedAnalysis": {{
    "titleQuality": "...",
    "bulletPoints": "...",
    "productImages": "...",
    "productDescription": "...",
    "productInformation": "..."
  }},
  "contentQuality": {{
    "titleScore": 0,
    "bulletsScore": 0,
    "imagesScore": 0,
    "descriptionScore": 0,
    "informationScore": 0
  }}
}}
</output_schema>"""


# =============================================================================
# Prompt 2: New-Seller Listing Pack
# =============================================================================

NEW_SELLER_PACK_USER = """<task>
Create a complete Amazon listing pack for a NEW seller launching this product.
</task>

<product>
{product_block}
</product>

{source_block}

{depth}

<instructions>
1. If structured fields are missing, infer the product name, benefits, brand and category from the page content.
2. Title: under 200 characters, brand first, main keywords included naturally.
3. Bullets: exactly 5, benefit-led, each under 250 characters.
4. Description: at least 200 characters, answers buyer questions and builds trust.
5. Keywords: primary, secondary and long-tail terms.
6. Images: a one-line brief for each of the six image slots.
7. Compliance: the category requirements and policy points the seller must meet.
8. Score: how launch-ready the product information is, 0-100.
</instructions>

<output_schema>
{{
  "title": "short headline for the pack",
  "score": 0,
  "highlights": ["..."],
  "recommendations": ["..."],
  "listingPack": {{
    "title": "...",
    "bullets": ["...", "...", "...", "...", "..."],
    "description": "...",
    "keywords": {{"primary": ["..."], "secondary": ["..."], "longTail": ["..."]}},
    "images": {{
      "mainImage": "...",
      "lifestyleImage": "...",
      "benefitsInfographic": "...",
      "howToUse": "...",
      "measurements": "...",
      "comparison": "..."
    }},
    "compliance": ["..."],
    "overallReadiness": "..."
  }}
}}
</output_schema>"""


# =============================================================================
# Prompts 3 and 4: Suggestions
# =============================================================================

KEYWORD_SUGGESTIONS_USER = """Suggest 10 highly relevant, high-search-volume Amazon keywords for this product, ranked from most to least valuable.

Category: {category}
Description: {description}

Focus on:
- long-tail keywords with good conversion potential
- UK/EU market relevance
- a mix of primary, secondary and long-tail terms

Return JSON: {{"suggestions": ["keyword 1", "keyword 2", ...]}}"""

TITLE_SUGGESTIONS_USER = """Create 3 optimised Amazon product titles for this item.

Category: {category}
Description: {description}
Target Keywords: {keywords}

Requirements:
- follow the formula: [Brand] [Product] for [Target Use], [High-Intent Keywords] [Material/Size/Features]
- under 200 characters each
- include the main keywords naturally
- optimised for the UK/EU market

Return JSON: {{"suggestions": ["Title 1", "Title 2", "Title 3"]}}"""


# =============================================================================
# Prompt Formatters
# =============================================================================

def _line(label: str, value: object) -> Optional[str]:
    if value is None or value == "" or value == []:
        return None
    return f"- {label}: {value}"


def format_listing_block(data: ScrapedProductData) -> str:
    """Format scraped listing attributes for inclusion in prompts."""
    rating = f"{data.rating}/5" if data.rating is not None else None
    if rating and data.review_count is not None:
        rating = f"{rating} ({data.review_count:,} reviews)"
    lines = [
        _line("ASIN", data.asin),
        _line("Title", data.title),
        _line("Brand", data.brand),
        _line("Price", data.price),
        _line("Rating", rating),
        _line("Availability", data.availability),
        _line("Category", data.category),
        _line("Images", f"{len(data.images)} images" if data.images else "no images found"),
        _line("Description", data.description),
    ]
    if data.bullet_points:
        lines.append("- Bullet points:")
        lines.extend(f"  {i}. {b}" for i, b in enumerate(data.bullet_points, 1))
    else:
        lines.append("- Bullet points: none found")
    return "\n".join(line for line in lines if line)


def format_quality_block(quality: Optional[QualityCheck]) -> str:
    if quality is None:
        return "No quality checks available (listing data could not be fetched)."
    passed = ", ".join(k for k, v in quality.checks.items() if v) or "none"
    failed = "\n".join(f"- {note}" for note in quality.notes) or "- none"
    return (
        f"Score: {quality.score}/{quality.max_possible} ({quality.quality_percent}%), grade {quality.grade}\n"
        f"Passed: {passed}\n"
        f"Failed:\n{failed}"
    )


def _depth(access_type: AccessType) -> str:
    if access_type is AccessType.ACCOUNT:
        return ACCOUNT_DEPTH.format(highlight_range="5-7")
    return GUEST_DEPTH.format(highlight_range="3-5")


def format_existing_seller_prompt(
    data: ExistingSellerInput,
    scraped: Optional[ScrapedProductData],
    quality: Optional[QualityCheck],
    access_type: AccessType = AccessType.GUEST,
) -> tuple[str, str]:
    """
    Format the existing-seller audit prompt.

    Returns:
        Tuple of (system_prompt, user_prompt)
    """
    if scraped is not None:
        listing_block = format_listing_block(scraped)
    else:
        listing_block = "\n".join(
            line for line in (
                "No live listing data was available; audit from the seller's details.",
                _line("ASIN", data.asin),
                _line("Target keywords", ", ".join(data.keywords) or "none provided"),
                _line("Fulfilment", data.fulfilment.value if data.fulfilment else "not specified"),
            ) if line
        )
    if data.keywords and scraped is not None:
        listing_block += f"\n- Seller's target keywords: {', '.join(data.keywords)}"

    user_prompt = EXISTING_SELLER_AUDIT_USER.format(
        listing_block=listing_block,
        quality_block=format_quality_block(quality),
        depth=_depth(access_type),
    )
    return LISTING_CONSULTANT_SYSTEM, user_prompt


def format_new_seller_prompt(
    data: NewSellerInput,
    scraped: Optional[ScrapedProductData],
    access_type: AccessType = AccessType.GUEST,
) -> tuple[str, str]:
    """
    Format the new-seller listing-pack prompt.

    Returns:
        Tuple of (system_prompt, user_prompt)
    """
    product_lines = [
        _line("Category", data.category),
        _line("Description", data.description),
        _line("Keywords", ", ".join(data.keywords)),
        _line("Fulfilment intent", data.fulfilment_intent.value),
        _line("Website", data.website_url or "no website"),
        _line("Seller's summary", data.no_website_desc),
    ]
    product_block = "\n".join(line for line in product_lines if line)

    if scraped is not None:
        parts = ["<website_data>", format_listing_block(scraped)]
        if scraped.headings:
            parts.append("Page headings:\n" + "\n".join(scraped.headings))
        if scraped.paragraphs:
            parts.append("Key paragraphs:\n" + "\n\n".join(scraped.paragraphs))
        if scraped.raw_content:
            parts.append(f"Raw page content:\n{scraped.raw_content}")
        parts.append("</website_data>")
        source_block = "\n".join(parts)
    else:
        source_block = "<website_data>\nNo website content; rely on the seller's details.\n</website_data>"

    user_prompt = NEW_SELLER_PACK_USER.format(
        product_block=product_block,
        source_block=source_block,
        depth=_depth(access_type),
    )
    return LISTING_CONSULTANT_SYSTEM, user_prompt


def format_keyword_prompt(category: str, description: str) -> tuple[str, str]:
    return SEO_SPECIALIST_SYSTEM, KEYWORD_SUGGESTIONS_USER.format(
        category=category,
        description=description,
    )


def format_title_prompt(category: str, description: str, keywords: list[str]) -> tuple[str, str]:
    return SEO_SPECIALIST_SYSTEM, TITLE_SUGGESTIONS_USER.format(
        category=category,
        description=description,
        keywords=", ".join(keywords) if keywords else "none provided",
    )


# =============================================================================
# Prompt Registry
# =============================================================================

PROMPT_REGISTRY = {
    PromptType.EXISTING_SELLER_AUDIT: {
        "formatter": format_existing_seller_prompt,
        "config": PromptConfig(temperature=0.2, max_tokens=2500),
    },
    PromptType.NEW_SELLER_PACK: {
        "formatter": format_new_seller_prompt,
        "config": PromptConfig(temperature=0.4, max_tokens=3000),
    },
    PromptType.KEYWORD_SUGGESTIONS: {
        "formatter": format_keyword_prompt,
        "config": PromptConfig(temperature=0.5, max_tokens=500),
    },
    PromptType.TITLE_SUGGESTIONS: {
        "formatter": format_title_prompt,
        "config": PromptConfig(temperature=0.7, max_tokens=400),
    },
}


def get_prompt_config(prompt_type: PromptType) -> PromptConfig:
    """
    Get sampling configuration by prompt type.

    Raises:
        KeyError: If prompt type not found
    """
    if prompt_type not in PROMPT_REGISTRY:
        raise KeyError(f"Unknown prompt type: {prompt_type}")
    return PROMPT_REGISTRY[prompt_type]["config"]


__all__ = [
    "PromptType",
    "PromptConfig",
    "LISTING_CONSULTANT_SYSTEM",
    "SEO_SPECIALIST_SYSTEM",
    "EXISTING_SELLER_AUDIT_USER",
    "NEW_SELLER_PACK_USER",
    "KEYWORD_SUGGESTIONS_USER",
    "TITLE_SUGGESTIONS_USER",
    "format_listing_block",
    "format_quality_block",
    "format_existing_seller_prompt",
    "format_new_seller_prompt",
    "format_keyword_prompt",
    "format_title_prompt",
    "PROMPT_REGISTRY",
    "get_prompt_config",
]
