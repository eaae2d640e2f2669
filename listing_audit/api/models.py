"""
HTTP request bodies.

Field names are snake_case with the camelCase aliases the web form sends.
Form payloads (`data`) stay loosely typed here; InputValidator owns their
validation so the API and the CLI report the same errors.
"""

from typing import Any, Optional
from uuid import UUID

from pydantic import Field

from listing_audit.models.schemas import BaseModel, DeliveryMode


class AnalysisRequest(BaseModel):
    """Body of /api/preview and /api/report."""

    type: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)
    check_only: bool = Field(default=False, alias="checkOnly")


class EmailCaptureRequest(BaseModel):
    email: str
    name: str = Field(..., min_length=1)
    lead_id: UUID = Field(..., alias="leadId")
    mode: DeliveryMode = DeliveryMode.AUDIT


class SubmitEmailRequest(BaseModel):
    """Body of /api/submit-email: the preview funnel, where a lead may not exist yet."""

    email: str
    name: Optional[str] = None
    lead_id: Optional[UUID] = Field(default=None, alias="leadId")
    mode: DeliveryMode = DeliveryMode.AUDIT
    preview_data: Optional[dict[str, Any]] = Field(default=None, alias="previewData")


class SuggestionRequest(BaseModel):
    type: Optional[str] = None
    data: Optional[dict[str, Any]] = None


class RegisterRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    promotional_consent: bool = Field(default=False, alias="promotionalConsent")


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


__all__ = [
    "AnalysisRequest",
    "EmailCaptureRequest",
    "LoginRequest",
    "RegisterRequest",
    "SubmitEmailRequest",
    "SuggestionRequest",
]
