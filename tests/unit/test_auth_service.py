from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import jwt
import pytest

from listing_audit.models.schemas import AccessType, AuditMode, Lead, Report, User
from listing_audit.services.auth_service import (
    AccountService,
    SessionVerifier,
    Unauthenticated,
    decode_token,
    hash_password,
    issue_token,
    verify_password,
)
from listing_audit.utils.errors import AuthenticationError, ConfigurationError, StoreError, ValidationError

SECRET = "test-session-secret-0123456789abcdef"


@pytest.fixture
def user():
    return User(email="sam@example.com", password_hash=hash_password("correct horse", rounds=4), name="Sam")


def test_password_hash_roundtrip():
    hashed = hash_password("correct horse", rounds=4)
    assert hashed != "correct horse"
    assert verify_password("correct horse", hashed)
    assert not verify_password("wrong horse", hashed)


def test_verify_password_malformed_hash():
    assert verify_password("anything", "not-a-bcrypt-hash") is False


# =============================================================================
# Tokens
# =============================================================================

def test_issue_and_decode_token(mock_settings, user):
    token = issue_token(user, mock_settings)
    claims = decode_token(token, mock_settings)

    assert claims["userId"] == str(user.id)
    assert claims["email"] == "sam@example.com"
    assert claims["name"] == "Sam"
    assert claims["emailVerified"] is False
    assert claims["exp"] - claims["iat"] == 7 * 24 * 3600


def test_token_signed_with_other_secret_rejected(mock_settings, user):
    token = jwt.encode({"userId": str(user.id)}, "another-secret-that-is-long-enough", algorithm="HS256")
    with pytest.raises(jwt.InvalidTokenError):
        decode_token(token, mock_settings)


def test_missing_secret_is_configuration_error(mock_settings, user):
    mock_settings.jwt_secret = None
    with pytest.raises(ConfigurationError) as exc_info:
        issue_token(user, mock_settings)
    assert exc_info.value.code == "AUTH_NOT_CONFIGURED"


# =============================================================================
# Session Verification
# =============================================================================

@pytest.mark.asyncio
async def test_verify_valid_session(mock_settings, store, user):
    await store.create_user(user)
    outcome = await SessionVerifier(store, mock_settings).verify(issue_token(user, mock_settings))
    assert outcome == user


@pytest.mark.asyncio
@pytest.mark.parametrize("token,reason", [(None, "No authentication token"), ("", "No authentication token"), ("garbage", "Invalid token")])
async def test_verify_rejects_bad_tokens(mock_settings, store, token, reason):
    outcome = await SessionVerifier(store, mock_settings).verify(token)
    assert outcome == Unauthenticated(reason)
    assert outcome.status_code == 401


@pytest.mark.asyncio
async def test_verify_expired_token(mock_settings, store, user):
    await store.create_user(user)
    past = datetime.now(timezone.utc) - timedelta(days=8)
    token = jwt.encode(
        {"userId": str(user.id), "iat": past, "exp": past + timedelta(days=7)},
        SECRET,
        algorithm="HS256",
    )
    outcome = await SessionVerifier(store, mock_settings).verify(token)
    assert outcome.reason == "Invalid token"


@pytest.mark.asyncio
async def test_verify_token_without_user_id(mock_settings, store):
    token = jwt.encode({"email": "sam@example.com"}, SECRET, algorithm="HS256")
    outcome = await SessionVerifier(store, mock_settings).verify(token)
    assert outcome.reason == "Invalid token"


@pytest.mark.asyncio
async def test_verify_unknown_user(mock_settings, store, user):
    outcome = await SessionVerifier(store, mock_settings).verify(issue_token(user, mock_settings))
    assert outcome.reason == "User not found"
    assert outcome.status_code == 404


@pytest.mark.asyncio
async def test_verify_inactive_user(mock_settings, store, user):
    inactive = user.model_copy(update={"is_active": False})
    await store.create_user(inactive)
    outcome = await SessionVerifier(store, mock_settings).verify(issue_token(inactive, mock_settings))
    assert outcome.reason == "Account is disabled"


# =============================================================================
# Registration
# =============================================================================

@pytest.mark.asyncio
async def test_register_creates_account(mock_settings, store):
    outcome = await AccountService(store, mock_settings).register(" Sam@Example.com ", "s3cretpass", " Sam ", True)

    assert outcome.created is True
    assert outcome.message == "Account created successfully!"
    user = await store.get_user(outcome.user_id)
    assert user.email == "sam@example.com"
    assert user.name == "Sam"
    assert user.promotional_consent is True
    assert verify_password("s3cretpass", user.password_hash)


@pytest.mark.asyncio
async def test_register_links_guest_leads(mock_settings, store, existing_result):
    lead = await store.create_lead(Lead(audit_type=AuditMode.EXISTING, email="sam@example.com", asin="B08N5WRWNW"))
    report = await store.create_report(Report.from_result(lead, existing_result, AccessType.GUEST))

    outcome = await AccountService(store, mock_settings).register("sam@example.com", "s3cretpass", "Sam")

    assert outcome.linked_leads == [lead.id]
    assert (await store.get_lead(lead.id)).user_id == outcome.user_id
    linked_report = await store.get_report(report.id)
    assert linked_report.access_type == AccessType.ACCOUNT
    assert linked_report.user_id == outcome.user_id


@pytest.mark.asyncio
async def test_register_existing_account(mock_settings, store, user):
    await store.create_user(user)
    outcome = await AccountService(store, mock_settings).register("SAM@example.com", "s3cretpass", "Sam")

    assert outcome.created is False
    assert outcome.user_id == user.id
    assert outcome.message == "Account already exists for this email"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "email,password,name,code",
    [
        (None, "s3cretpass", "Sam", "MISSING_FIELDS"),
        ("sam@example.com", "", "Sam", "MISSING_FIELDS"),
        ("sam@example.com", "s3cretpass", "   ", "MISSING_FIELDS"),
        ("sam@example.com", "short", "Sam", "WEAK_PASSWORD"),
        ("not-an-email", "s3cretpass", "Sam", "INVALID_EMAIL"),
    ],
)
async def test_register_validation(mock_settings, store, email, password, name, code):
    with pytest.raises(ValidationError) as exc_info:
        await AccountService(store, mock_settings).register(email, password, name)
    assert exc_info.value.code == code
    assert store.stats()["users"] == 0


@pytest.mark.asyncio
async def test_register_store_failure(mock_settings, store):
    store.create_user = AsyncMock(side_effect=StoreError("disk full"))
    with pytest.raises(StoreError) as exc_info:
        await AccountService(store, mock_settings).register("sam@example.com", "s3cretpass", "Sam")
    assert exc_info.value.code == "ACCOUNT_CREATE_FAILED"
    assert exc_info.value.message == "Failed to create account. Please try again."


# =============================================================================
# Login
# =============================================================================

@pytest.mark.asyncio
async def test_login_opens_session(mock_settings, store, user):
    await store.create_user(user)
    logged_in, token = await AccountService(store, mock_settings).login(" SAM@example.com", "correct horse")

    assert logged_in.id == user.id
    assert logged_in.last_login is not None
    assert (await store.get_user(user.id)).last_login == logged_in.last_login
    assert decode_token(token, mock_settings)["userId"] == str(user.id)


@pytest.mark.asyncio
@pytest.mark.parametrize("email,password", [
    ("sam@example.com", "wrong horse"),
    ("nobody@example.com", "correct horse"),
])
async def test_login_bad_credentials(mock_settings, store, user, email, password):
    await store.create_user(user)
    with pytest.raises(AuthenticationError) as exc_info:
        await AccountService(store, mock_settings).login(email, password)
    assert exc_info.value.code == "INVALID_CREDENTIALS"
    assert exc_info.value.message == "Invalid email or password"
    assert (await store.get_user(user.id)).last_login is None


@pytest.mark.asyncio
async def test_login_disabled_account(mock_settings, store, user):
    await store.create_user(user.model_copy(update={"is_active": False}))
    with pytest.raises(AuthenticationError) as exc_info:
        await AccountService(store, mock_settings).login("sam@example.com", "correct horse")
    assert exc_info.value.code == "ACCOUNT_DISABLED"


@pytest.mark.asyncio
@pytest.mark.parametrize("email,password", [(None, "correct horse"), ("sam@example.com", "")])
async def test_login_missing_fields(mock_settings, store, email, password):
    with pytest.raises(ValidationError) as exc_info:
        await AccountService(store, mock_settings).login(email, password)
    assert exc_info.value.code == "MISSING_FIELDS"
