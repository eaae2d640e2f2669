"""
Input validation service.

Parses raw visitor input into the typed, constrained input models. The
service is pure: it performs no I/O, and validating an already-normalized
input yields the same value.
"""

import re
from typing import Any, Mapping, Optional
from urllib.parse import urlparse

from pydantic import ValidationError as PydanticValidationError

from listing_audit.models.schemas import (
    ASIN_PATTERN,
    AuditMode,
    ExistingSellerInput,
    NewSellerInput,
    SuggestionKind,
    find_embedded_asin,
    sanitize_text,
    validate_email_address,
)
from listing_audit.utils.errors import ValidationError
from listing_audit.utils.logger import get_logger

logger = get_logger(__name__)

# Raw request keys accepted for the snake_case model fields.
FIELD_ALIASES = {
    "websiteUrl": "website_url",
    "productUrl": "website_url",
    "noWebsiteDesc": "no_website_desc",
    "desc": "description",
    "productDesc": "description",
    "fulfilmentIntent": "fulfilment_intent",
}

BOT_MARKERS = ("bot", "crawler", "spider", "curl/", "python-requests", "wget/")


def is_suspected_bot(user_agent: Optional[str]) -> bool:
    """
    Advisory check on the client identification string.

    Missing or crawler-like user agents are turned away before any scrape or
    AI budget is spent. This is traffic filtering, not a security control.
    """
    if not user_agent or not user_agent.strip():
        return True
    lowered = user_agent.lower()
    return any(marker in lowered for marker in BOT_MARKERS)


class InputValidator:
    """Validates and normalizes every field that enters the pipeline."""

    URL_HINT = re.compile(r"(://|^www\.|amazon\.|/)", re.IGNORECASE)

    def parse_mode(self, raw: Any) -> AuditMode:
        """Parse the audit mode once at the boundary."""
        if isinstance(raw, AuditMode):
            return raw
        aliases = {"existing_seller": AuditMode.EXISTING, "new_seller": AuditMode.NEW}
        value = str(raw or "").strip().lower()
        if value in aliases:
            return aliases[value]
        try:
            return AuditMode(value)
        except ValueError:
            raise ValidationError(
                "Invalid audit type",
                code="INVALID_AUDIT_TYPE",
                details={"field": "type"},
            )

    def validate(self, mode: AuditMode | str, raw_fields: Mapping[str, Any]) -> ExistingSellerInput | NewSellerInput:
        """
        Validate raw form fields for the given mode.

        Raises:
            ValidationError: with field-level details on the first failing stage.
        """
        audit_mode = self.parse_mode(mode)
        if not isinstance(raw_fields, Mapping):
            raise ValidationError("Missing type or data", code="VALIDATION_ERROR")

        fields = {FIELD_ALIASES.get(k, k): v for k, v in raw_fields.items() if k != "mode"}

        if audit_mode is AuditMode.EXISTING:
            fields["asin"] = self.parse_identifier(fields.get("asin") or fields.get("identifier") or "")
            fields.pop("identifier", None)
            model = ExistingSellerInput
        else:
            if fields.get("website_url"):
                fields["website_url"] = self.normalize_url(fields["website_url"])
            else:
                fields["website_url"] = None
            model = NewSellerInput

        try:
            return model(**fields)
        except PydanticValidationError as e:
            details = [
                {
                    "field": ".".join(str(p) for p in err["loc"]) or "data",
                    "message": err["msg"].removeprefix("Value error, "),
                }
                for err in e.errors()
            ]
            logger.info("Input validation failed", mode=audit_mode.value, errors=len(details))
            raise ValidationError(
                "Validation failed",
                code="VALIDATION_ERROR",
                details={"details": details},
            )

    def validate_email(self, raw: Optional[str]) -> str:
        try:
            return validate_email_address(raw or "")
        except ValueError as e:
            raise ValidationError(str(e), code="INVALID_EMAIL", details={"field": "email"})

    def parse_identifier(self, raw: Optional[str]) -> str:
        """
        Extract the 10-character identifier from a bare value or a product URL.

        Malformed URLs and well-formed URLs without an identifier are reported
        separately so the visitor knows what to fix.
        """
        value = (raw or "").strip()
        if not value:
            raise ValidationError(
                "ASIN or URL is required",
                code="IDENTIFIER_REQUIRED",
                details={"field": "asin"},
            )

        if self.URL_HINT.search(value):
            url = value if "://" in value else f"https://{value}"
            parsed = urlparse(url)
            if (
                parsed.scheme not in ("http", "https")
                or not parsed.hostname
                or "." not in parsed.hostname
                or any(c.isspace() for c in value)
            ):
                raise ValidationError(
                    "Please enter a valid Amazon product URL",
                    code="MALFORMED_URL",
                    details={"field": "asin"},
                )
            asin = find_embedded_asin(url)
            if not asin:
                raise ValidationError(
                    "No product identifier (ASIN) found in this URL",
                    code="IDENTIFIER_NOT_FOUND",
                    details={"field": "asin"},
                )
            return asin

        candidate = value.upper()
        if ASIN_PATTERN.match(candidate):
            return candidate
        raise ValidationError(
            "Please enter a valid ASIN (10 characters) or Amazon product URL",
            code="INVALID_IDENTIFIER",
            details={"field": "asin"},
        )

    def normalize_url(self, raw: str) -> str:
        """Return an absolute http(s) URL; a bare host path gets https://."""
        value = (raw or "").strip()
        url = value if "://" in value else f"https://{value}"
        parsed = urlparse(url)
        if (
            not value
            or parsed.scheme not in ("http", "https")
            or not parsed.hostname
            or "." not in parsed.hostname
            or any(c.isspace() for c in value)
        ):
            raise ValidationError(
                "Enter a valid website/store URL.",
                code="INVALID_URL",
                details={"field": "websiteUrl"},
            )
        return url

    def validate_suggestion_request(
        self,
        kind: Any,
        data: Optional[Mapping[str, Any]],
    ) -> tuple[SuggestionKind, str, str, list[str]]:
        """Validate a suggestion request before any generator call is made."""
        if not kind or not isinstance(data, Mapping):
            raise ValidationError("Missing type or data", code="MISSING_FIELDS")
        try:
            suggestion_kind = SuggestionKind(str(kind).strip().lower())
        except ValueError:
            raise ValidationError("Invalid suggestion type", code="INVALID_SUGGESTION_TYPE")

        category = sanitize_text(str(data.get("category") or ""))
        description = sanitize_text(str(data.get("description") or ""))
        if not category or not description:
            target = "keyword" if suggestion_kind is SuggestionKind.KEYWORDS else "title"
            raise ValidationError(
                f"Category and description required for {target} suggestions",
                code="MISSING_FIELDS",
            )
        keywords = [sanitize_text(k) for k in (data.get("keywords") or []) if isinstance(k, str) and k.strip()]
        return suggestion_kind, category, description, keywords
