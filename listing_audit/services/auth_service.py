"""
Accounts and sessions.

Passwords are hashed with bcrypt; sessions are HS256 JWTs carried in the
``auth-token`` cookie. Registering an account links any guest leads that
used the same e-mail address; logging in refreshes `last_login` and issues
the session token.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union
from uuid import UUID

import bcrypt
import jwt

from listing_audit.config.settings import Settings, get_settings
from listing_audit.models.schemas import User, validate_email_address
from listing_audit.services.report_store import ReportStore
from listing_audit.utils.errors import AuthenticationError, ConfigurationError, StoreError, ValidationError
from listing_audit.utils.logger import get_logger

logger = get_logger(__name__)

SESSION_COOKIE = "auth-token"
JWT_ALGORITHM = "HS256"
MIN_PASSWORD_LENGTH = 8


# =============================================================================
# Passwords and Tokens
# =============================================================================

def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash
        return False


def _jwt_secret(settings: Settings) -> str:
    if not settings.jwt_secret:
        raise ConfigurationError("Session service is not configured", code="AUTH_NOT_CONFIGURED")
    return settings.jwt_secret.get_secret_value()


def issue_token(user: User, settings: Optional[Settings] = None) -> str:
    """Session token for a user, valid for JWT_EXPIRY_DAYS."""
    settings = settings or get_settings()
    now = datetime.now(timezone.utc)
    claims = {
        "userId": str(user.id),
        "email": user.email,
        "name": user.name,
        "emailVerified": user.email_verified,
        "iat": now,
        "exp": now + timedelta(days=settings.jwt_expiry_days),
    }
    return jwt.encode(claims, _jwt_secret(settings), algorithm=JWT_ALGORITHM)


def decode_token(token: str, settings: Optional[Settings] = None) -> dict[str, Any]:
    """Decode and verify a session token. Raises jwt.InvalidTokenError."""
    settings = settings or get_settings()
    return jwt.decode(token, _jwt_secret(settings), algorithms=[JWT_ALGORITHM])


# =============================================================================
# Session Verification
# =============================================================================

@dataclass(frozen=True)
class Unauthenticated:
    """Why a session was rejected, with the HTTP status to answer with."""
    reason: str
    status_code: int = 401


class SessionVerifier:
    """
    Resolves a session token to an active User.

    Example:
        >>> outcome = await SessionVerifier(store).verify(request.cookies.get("auth-token"))
        >>> isinstance(outcome, User)
        True
    """

    def __init__(self, store: ReportStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or get_settings()

    async def verify(self, token: Optional[str]) -> Union[User, Unauthenticated]:
        if not token:
            return Unauthenticated("No authentication token")

        try:
            claims = decode_token(token, self.settings)
            user_id = UUID(str(claims["userId"]))
        except (jwt.InvalidTokenError, KeyError, ValueError):
            return Unauthenticated("Invalid token")

        user = await self.store.get_user(user_id)
        if user is None:
            return Unauthenticated("User not found", status_code=404)
        if not user.is_active:
            return Unauthenticated("Account is disabled")
        return user


# =============================================================================
# Registration and Login
# =============================================================================

@dataclass
class RegistrationOutcome:
    user_id: UUID
    created: bool
    message: str
    linked_leads: list[UUID] = field(default_factory=list)


class AccountService:
    """Creates accounts, upgrades matching guest leads and opens sessions."""

    CREATED_MESSAGE = "Account created successfully!"
    EXISTS_MESSAGE = "Account already exists for this email"
    FAILED_MESSAGE = "Failed to create account. Please try again."
    BAD_CREDENTIALS_MESSAGE = "Invalid email or password"

    def __init__(self, store: ReportStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or get_settings()

    @staticmethod
    def _validate(email: Optional[str], password: Optional[str], name: Optional[str]) -> str:
        if not email or not password or not name or not name.strip():
            raise ValidationError("Email, password, and name are required", code="MISSING_FIELDS")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
                code="WEAK_PASSWORD",
            )
        try:
            return validate_email_address(email)
        except ValueError as e:
            raise ValidationError(str(e), code="INVALID_EMAIL", details={"field": "email"}) from e

    async def register(
        self,
        email: Optional[str],
        password: Optional[str],
        name: Optional[str],
        promotional_consent: bool = False,
    ) -> RegistrationOutcome:
        email = self._validate(email, password, name)

        existing = await self.store.get_user_by_email(email)
        if existing is not None:
            logger.info("Registration for existing account", user_id=str(existing.id))
            return RegistrationOutcome(user_id=existing.id, created=False, message=self.EXISTS_MESSAGE)

        password_hash = await asyncio.to_thread(hash_password, password, self.settings.bcrypt_rounds)
        user = User(
            email=email,
            password_hash=password_hash,
            name=name.strip(),
            promotional_consent=promotional_consent,
        )

        try:
            user = await self.store.create_user(user)
            linked = await self.store.link_guest_leads(email, user.id)
        except StoreError as e:
            logger.error("Account creation failed", error=e.message, code=e.code)
            raise StoreError(self.FAILED_MESSAGE, code="ACCOUNT_CREATE_FAILED") from e

        logger.info("Account created", user_id=str(user.id), linked_leads=len(linked))
        return RegistrationOutcome(
            user_id=user.id,
            created=True,
            message=self.CREATED_MESSAGE,
            linked_leads=linked,
        )

    async def login(self, email: Optional[str], password: Optional[str]) -> tuple[User, str]:
        """
        Check credentials and open a session.

        Returns:
            The user, with last_login refreshed, and a fresh session token

        Raises:
            ValidationError: email or password missing
            AuthenticationError: unknown address, wrong password or disabled account
        """
        if not email or not password:
            raise ValidationError("Please enter both email and password", code="MISSING_FIELDS")

        user = await self.store.get_user_by_email(email)
        # Unknown address and wrong password answer alike
        if user is None or not await asyncio.to_thread(verify_password, password, user.password_hash):
            logger.info("Login rejected", reason="bad_credentials")
            raise AuthenticationError(self.BAD_CREDENTIALS_MESSAGE, code="INVALID_CREDENTIALS")
        if not user.is_active:
            raise AuthenticationError("Account is disabled", code="ACCOUNT_DISABLED")

        user = await self.store.touch_last_login(user.id) or user
        logger.info("Login succeeded", user_id=str(user.id))
        return user, issue_token(user, self.settings)


__all__ = [
    "SESSION_COOKIE",
    "AccountService",
    "RegistrationOutcome",
    "SessionVerifier",
    "Unauthenticated",
    "decode_token",
    "hash_password",
    "issue_token",
    "verify_password",
]
