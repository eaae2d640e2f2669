"""
HTTP endpoints.

Handlers stay thin: they translate the request into a pipeline or service
call and shape the JSON response. Failures surface as AppError subclasses
and are rendered by the application's exception handler.
"""

from typing import Any, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from listing_audit import __version__
from listing_audit.api.container import ServiceContainer
from listing_audit.api.models import (
    AnalysisRequest,
    EmailCaptureRequest,
    LoginRequest,
    RegisterRequest,
    SubmitEmailRequest,
    SuggestionRequest,
)
from listing_audit.config.settings import Settings
from listing_audit.models.schemas import AnalysisResult, ClientMeta
from listing_audit.services.auth_service import SESSION_COOKIE, Unauthenticated
from listing_audit.utils.errors import (
    AuthenticationError,
    ConfigurationError,
    NotFoundError,
)

SUBMIT_EMAIL_SENT_MESSAGE = "Email submitted successfully and welcome email sent!"
SUBMIT_EMAIL_UNSENT_MESSAGE = "Email submitted, but the email could not be sent right now."
REGISTRATION_UNAVAILABLE_MESSAGE = "User registration service is temporarily unavailable. Please try again later."

router = APIRouter(prefix="/api")
health_router = APIRouter()


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def client_ip(request: Request) -> Optional[str]:
    """First forwarded address, then the proxy headers, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    for header in ("x-real-ip", "cf-connecting-ip"):
        value = request.headers.get(header)
        if value:
            return value.strip()
    return request.client.host if request.client else None


def client_meta(request: Request) -> ClientMeta:
    return ClientMeta(
        user_agent=request.headers.get("user-agent"),
        ip_address=client_ip(request),
        referrer=request.headers.get("referer"),
    )


def serialize_result(result: AnalysisResult) -> dict[str, Any]:
    return result.model_dump(mode="json", by_alias=True, exclude_none=True)


def set_session_cookie(response: JSONResponse, token: str, settings: Settings) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=settings.jwt_expiry_days * 24 * 3600,
        httponly=True,
        secure=settings.app_env == "production",
        samesite="lax",
        path="/",
    )


# =============================================================================
# Analysis
# =============================================================================

@router.post("/preview")
async def preview(body: AnalysisRequest, request: Request):
    pipeline = await get_container(request).get_pipeline()
    outcome = await pipeline.preview(body.type, body.data, client_meta(request), check_only=body.check_only)

    if outcome.scannable:
        return {"success": True, "scannable": True, "message": "URL is scannable"}
    return {"success": True, "aiResult": serialize_result(outcome.result)}


@router.post("/report")
async def report(body: AnalysisRequest, request: Request):
    container = get_container(request)
    await container.get_store()
    pipeline = await container.get_pipeline()
    outcome = await pipeline.generate_report(body.type, body.data, client_meta(request))

    return {
        "success": True,
        "reportId": str(outcome.report_id),
        "leadId": str(outcome.lead_id),
        "aiResult": serialize_result(outcome.result),
        "emailSent": outcome.email_sent,
    }


@router.post("/email")
async def capture_email(body: EmailCaptureRequest, request: Request):
    container = get_container(request)
    await container.get_store()
    pipeline = await container.get_pipeline()
    outcome = await pipeline.capture_email(body.email, body.name, body.lead_id, body.mode)

    return {
        "success": True,
        "messageId": outcome.message_id,
        "hasPdf": outcome.has_pdf,
    }


@router.post("/submit-email")
async def submit_email(body: SubmitEmailRequest, request: Request):
    """E-mail capture from the preview page; `leadId` is optional and `previewData` is the result shown."""
    container = get_container(request)
    if body.lead_id is not None or not body.preview_data:
        await container.get_store()
    pipeline = await container.get_pipeline()
    outcome = await pipeline.capture_email(
        body.email,
        body.name or "User",
        body.lead_id,
        body.mode,
        preview_data=body.preview_data,
    )

    return {
        "success": True,
        "message": SUBMIT_EMAIL_SENT_MESSAGE if outcome.delivery.success else SUBMIT_EMAIL_UNSENT_MESSAGE,
        "email": body.email,
        "mode": body.mode.value,
        "messageId": outcome.message_id,
        "hasPdf": outcome.has_pdf,
    }


@router.post("/suggestions")
async def suggestions(body: SuggestionRequest, request: Request):
    pipeline = await get_container(request).get_pipeline()
    result = await pipeline.suggest(body.type, body.data, client_meta(request))
    return {"success": True, "suggestions": result.suggestions}


# =============================================================================
# Accounts
# =============================================================================

@router.post("/register")
async def register(body: RegisterRequest, request: Request):
    try:
        accounts = await get_container(request).get_account_service()
    except ConfigurationError:
        raise ConfigurationError(REGISTRATION_UNAVAILABLE_MESSAGE, code="REGISTRATION_UNAVAILABLE")

    outcome = await accounts.register(body.email, body.password, body.name, body.promotional_consent)
    return JSONResponse(
        status_code=201,
        content={"success": True, "message": outcome.message, "userId": str(outcome.user_id)},
    )


@router.post("/login")
async def login(body: LoginRequest, request: Request):
    container = get_container(request)
    accounts = await container.get_account_service()
    user, token = await accounts.login(body.email, body.password)

    response = JSONResponse(content={"success": True, "user": user.public_profile()})
    set_session_cookie(response, token, container.settings)
    return response


@router.post("/logout")
async def logout():
    response = JSONResponse(content={"success": True})
    response.delete_cookie(SESSION_COOKIE, path="/")
    return response


@router.get("/me")
async def me(request: Request):
    verifier = await get_container(request).get_session_verifier()
    outcome = await verifier.verify(request.cookies.get(SESSION_COOKIE))

    if isinstance(outcome, Unauthenticated):
        if outcome.status_code == 404:
            raise NotFoundError(outcome.reason, code="USER_NOT_FOUND")
        raise AuthenticationError(outcome.reason)
    return {"success": True, "user": outcome.public_profile()}


# =============================================================================
# Health
# =============================================================================

@health_router.get("/health")
async def health():
    return {"status": "ok", "version": __version__}


__all__ = ["router", "health_router", "client_ip", "client_meta"]
