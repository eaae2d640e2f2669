"""Utils module for the listing audit pipeline."""

from listing_audit.utils.errors import (
    AnalysisError,
    AppError,
    AppTimeoutError,
    AuthenticationError,
    BotSuspectedError,
    ConfigurationError,
    ErrorHandler,
    LeadUpdateError,
    NotFoundError,
    ScrapeFailedError,
    StoreError,
    ValidationError,
)
from listing_audit.utils.formatters import ReportDocumentBuilder
from listing_audit.utils.logger import LogContext, get_logger, setup_logging
from listing_audit.utils.observability import PipelineObserver, StructlogObserver

__all__ = [
    "get_logger",
    "setup_logging",
    "LogContext",
    "ReportDocumentBuilder",
    "PipelineObserver",
    "StructlogObserver",
    "ErrorHandler",
    "AppError",
    "ValidationError",
    "BotSuspectedError",
    "ScrapeFailedError",
    "AnalysisError",
    "StoreError",
    "LeadUpdateError",
    "ConfigurationError",
    "AuthenticationError",
    "NotFoundError",
    "AppTimeoutError",
]
