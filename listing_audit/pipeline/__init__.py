"""Pipeline module for the listing audit pipeline."""

from listing_audit.pipeline.orchestrator import (
    CaptureOutcome,
    LeadPipeline,
    PipelineOutcome,
    PipelineStatus,
    track_timing,
    with_timeout,
)

__all__ = [
    "LeadPipeline",
    "PipelineOutcome",
    "CaptureOutcome",
    "PipelineStatus",
    "track_timing",
    "with_timeout",
]
