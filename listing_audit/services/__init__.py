"""
Services package for the listing audit pipeline.

Services:
    - ClaudeService: LLM-powered analysis using Anthropic Claude
    - InputValidator: boundary parsing and normalization of visitor input
    - ReportStore: leads, reports and users
    - EmailDispatcher: report e-mails with PDF attachments
    - AccountService / SessionVerifier: registration and JWT sessions

Providers:
    - ResendProvider: e-mail over the Resend HTTPS API
    - SMTPProvider: e-mail over SMTP
"""

from listing_audit.services.auth_service import (
    SESSION_COOKIE,
    AccountService,
    RegistrationOutcome,
    SessionVerifier,
    Unauthenticated,
    issue_token,
)
from listing_audit.services.email_service import (
    EmailDispatcher,
    EmailProvider,
    EmailProviderError,
    ResendProvider,
    SMTPProvider,
    create_email_provider,
)
from listing_audit.services.llm_service import (
    ClaudeService,
    ClaudeServiceError,
    EmptyResponseError,
    MaxRetriesExceededError,
    SchemaValidationError,
    TaskType,
    TokenUsage,
    create_claude_service,
)
from listing_audit.services.report_store import InMemoryReportStore, ReportStore
from listing_audit.services.validation_service import InputValidator, is_suspected_bot

__all__ = [
    # LLM Service
    "ClaudeService",
    "create_claude_service",
    "TaskType",
    "TokenUsage",
    "ClaudeServiceError",
    "EmptyResponseError",
    "SchemaValidationError",
    "MaxRetriesExceededError",
    # Validation
    "InputValidator",
    "is_suspected_bot",
    # Store
    "ReportStore",
    "InMemoryReportStore",
    # E-mail
    "EmailDispatcher",
    "EmailProvider",
    "EmailProviderError",
    "ResendProvider",
    "SMTPProvider",
    "create_email_provider",
    # Accounts
    "AccountService",
    "RegistrationOutcome",
    "SessionVerifier",
    "Unauthenticated",
    "SESSION_COOKIE",
    "issue_token",
]
