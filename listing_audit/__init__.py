"""
Listing Audit.

Lead-to-report pipeline for Amazon listings: scrape a product page or a
marketplace listing, audit it or generate a listing pack with Claude, and
e-mail the result as a PDF report.
"""

__version__ = "1.0.0"
__author__ = "E-CTRL Engineering"


# Lazy imports to avoid circular dependencies
def get_pipeline():
    """Get the LeadPipeline class (lazy import)."""
    from listing_audit.pipeline.orchestrator import LeadPipeline
    return LeadPipeline


__all__ = ["get_pipeline", "__version__"]
