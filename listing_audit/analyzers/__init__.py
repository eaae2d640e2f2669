"""
Analyzers module for the listing audit pipeline.

Components:
    - AnalysisEngine: AI audits, listing packs and suggestions over ClaudeService
    - ListingQualityEvaluator: deterministic binary listing-quality checks
    - prompts: prompt templates, formatters and sampling configuration
"""

from listing_audit.analyzers.analysis_engine import (
    ANALYSIS_FAILED_MESSAGE,
    SUGGESTIONS_FAILED_MESSAGE,
    AnalysisEngine,
    EngineMetrics,
)
from listing_audit.analyzers.listing_quality import (
    ListingQualityEvaluator,
    ListingSnapshot,
)
from listing_audit.analyzers.prompts import (
    PROMPT_REGISTRY,
    PromptConfig,
    PromptType,
    get_prompt_config,
)

__all__ = [
    "AnalysisEngine",
    "EngineMetrics",
    "ANALYSIS_FAILED_MESSAGE",
    "SUGGESTIONS_FAILED_MESSAGE",
    "ListingQualityEvaluator",
    "ListingSnapshot",
    "PROMPT_REGISTRY",
    "PromptConfig",
    "PromptType",
    "get_prompt_config",
]
