"""
Claude API service for listing analysis and generation.

The service owns the Anthropic client, the retry policy for transient API
failures and structured-output enforcement. It knows nothing about listings:
callers pass a prompt and a pydantic schema and get a validated model back.

Example:
    >>> service = ClaudeService()
    >>> pack = await service.complete_json(prompt, ListingPackPayload, system=SYSTEM)
"""

from __future__ import annotations

import asyncio
import json
import random
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Type, TypeVar

import anthropic
from anthropic import APIError, APIStatusError, RateLimitError
from pydantic import BaseModel, ValidationError
from tenacity import AsyncRetrying, RetryCallState, RetryError, retry_if_exception, stop_after_attempt

from listing_audit.config.settings import Settings, get_settings
from listing_audit.utils.errors import ConfigurationError
from listing_audit.utils.logger import get_logger

T = TypeVar("T", bound=BaseModel)

logger = get_logger(__name__)


# =============================================================================
# Constants and Enums
# =============================================================================

class TaskType(str, Enum):
    """What a model call is for; picks the default temperature."""
    AUDIT = "audit"
    GENERATION = "generation"
    KEYWORDS = "keywords"
    TITLES = "titles"
    VALIDATION = "validation"


TEMPERATURE_SETTINGS: dict[TaskType, float] = {
    TaskType.AUDIT: 0.3,
    TaskType.GENERATION: 0.7,
    TaskType.KEYWORDS: 0.5,
    TaskType.TITLES: 0.7,
    TaskType.VALIDATION: 0.1,
}

MAX_BACKOFF_SECONDS = 30.0
RATE_LIMIT_BACKOFF_BASE = 5.0

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")

REPAIR_SYSTEM_PROMPT = (
    "You repair JSON produced by another model. Keep every value the original "
    "carried, change only what the error requires, and reply with the JSON alone."
)


@dataclass
class TokenUsage:
    """Token counts reported for one model call."""
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


# =============================================================================
# Custom Exceptions
# =============================================================================

class ClaudeServiceError(Exception):
    """Base exception for Claude service errors."""


class EmptyResponseError(ClaudeServiceError):
    """The model replied with no text."""


class SchemaValidationError(ClaudeServiceError):
    """The reply could not be coerced into the requested schema."""

    def __init__(self, message: str, raw_response: str, errors: list[str]):
        super().__init__(message)
        self.raw_response = raw_response
        self.errors = errors


class MaxRetriesExceededError(ClaudeServiceError):
    """Every attempt failed with a transient error."""


def is_transient(error: BaseException) -> bool:
    """Rate limits, 5xx answers, timeouts and connection drops are worth another attempt."""
    if isinstance(error, APIStatusError):
        return error.status_code == 429 or error.status_code >= 500
    return isinstance(error, (APIError, asyncio.TimeoutError))


# =============================================================================
# Main Service Class
# =============================================================================

class ClaudeService:
    """
    Claude API client with bounded retries and schema enforcement.

    Attributes:
        settings: Application settings
        client: Anthropic async client, built from ANTHROPIC_API_KEY unless injected
        max_retries: Attempts per model call, the first included
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        api_key: Optional[str] = None,
        max_retries: Optional[int] = None,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ):
        self.settings = settings or get_settings()
        self.max_retries = max_retries or self.settings.claude_max_retries

        if client is None:
            key = api_key or (
                self.settings.anthropic_api_key.get_secret_value()
                if self.settings.anthropic_api_key
                else None
            )
            if not key:
                raise ConfigurationError("AI analysis is not configured", code="AI_NOT_CONFIGURED")
            # The SDK must not retry on its own; attempts are counted here
            client = anthropic.AsyncAnthropic(
                api_key=key,
                max_retries=0,
                timeout=self.settings.ai_timeout_seconds,
            )
        self.client = client

        self.calls = 0
        self.input_tokens = 0
        self.output_tokens = 0

        logger.info("ClaudeService ready", model=self.settings.claude_model, max_retries=self.max_retries)

    async def __aenter__(self) -> "ClaudeService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.client.close()
        logger.info("ClaudeService closed", **self.usage_summary())

    def usage_summary(self) -> dict[str, Any]:
        return {
            "calls": self.calls,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
        }

    # =========================================================================
    # Model Calls
    # =========================================================================

    async def _call_api(
        self,
        messages: list[dict[str, str]],
        system: str = "",
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        task_type: TaskType = TaskType.AUDIT,
    ) -> tuple[str, TokenUsage]:
        """
        Send one request, retrying transient failures.

        Returns:
            The concatenated text blocks and the usage reported for the call

        Raises:
            ClaudeServiceError: On a client error (4xx other than 429)
            MaxRetriesExceededError: When every attempt failed transiently
        """
        request = {
            "model": self.settings.claude_model,
            "max_tokens": max_tokens or self.settings.claude_max_tokens,
            "temperature": temperature,
            "system": system,
            "messages": messages,
        }
        retrying = AsyncRetrying(
            sleep=self._sleep_before_retry,
            stop=stop_after_attempt(self.max_retries),
            wait=self._backoff,
            retry=retry_if_exception(is_transient),
            before_sleep=self._log_retry,
        )

        started = time.perf_counter()
        try:
            response = await retrying(self.client.messages.create, **request)
        except RetryError as e:
            last_error = e.last_attempt.exception()
            logger.error(
                "Model call gave up",
                task_type=task_type.value,
                attempts=self.max_retries,
                error=str(last_error),
            )
            raise MaxRetriesExceededError(
                f"Failed after {self.max_retries} attempts: {last_error}"
            ) from last_error
        except APIStatusError as e:
            logger.error("Model call rejected", task_type=task_type.value, status_code=e.status_code, error=str(e))
            raise ClaudeServiceError(f"API error ({e.status_code}): {e}") from e

        text = "".join(getattr(block, "text", "") for block in (response.content or []))
        usage = TokenUsage(
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        self.calls += 1
        self.input_tokens += usage.input_tokens
        self.output_tokens += usage.output_tokens

        logger.info(
            "Model call complete",
            task_type=task_type.value,
            duration_ms=int((time.perf_counter() - started) * 1000),
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
        )
        return text, usage

    async def complete(
        self,
        prompt: str,
        system: str = "",
        task_type: TaskType = TaskType.AUDIT,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> tuple[str, TokenUsage]:
        """Single-turn completion returning the raw text."""
        return await self._call_api(
            messages=[{"role": "user", "content": prompt}],
            system=system,
            temperature=TEMPERATURE_SETTINGS[task_type] if temperature is None else temperature,
            max_tokens=max_tokens,
            task_type=task_type,
        )

    async def complete_json(
        self,
        prompt: str,
        schema: Type[T],
        system: str = "",
        task_type: TaskType = TaskType.AUDIT,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> T:
        """
        Single-turn completion validated against a pydantic schema.

        CLAUDE_CORRECTION_ATTEMPTS extra calls may be spent asking the model to
        repair a reply that does not validate.

        Raises:
            EmptyResponseError: If the model returned no text
            SchemaValidationError: If the reply never fits `schema`
        """
        text, _ = await self.complete(
            prompt,
            system=system,
            task_type=task_type,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        if not text or not text.strip():
            raise EmptyResponseError("Model returned an empty response")
        return await self.validate_and_retry(
            text,
            schema,
            max_retries=1 + self.settings.claude_correction_attempts,
        )

    # =========================================================================
    # Structured Output
    # =========================================================================

    async def validate_and_retry(
        self,
        response: str,
        expected_schema: Type[T],
        max_retries: int = 3,
    ) -> T:
        """Parse `response` into `expected_schema`, asking for repairs between attempts."""
        problem = ""
        candidate = response

        for attempt in range(1, max_retries + 1):
            try:
                parsed = expected_schema.model_validate(json.loads(self._extract_json(candidate)))
            except json.JSONDecodeError as e:
                problem = f"JSON parse error: {e}"
            except ValidationError as e:
                problem = "Validation errors: " + "; ".join(
                    f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
                )
            else:
                if attempt > 1:
                    logger.info("Reply repaired", schema=expected_schema.__name__, attempt=attempt)
                return parsed

            logger.warning("Reply does not fit schema", schema=expected_schema.__name__, attempt=attempt, problem=problem[:300])
            if attempt < max_retries:
                candidate = await self._request_correction(candidate, problem, expected_schema)

        raise SchemaValidationError(
            f"{expected_schema.__name__} not satisfied after {max_retries} attempts",
            raw_response=response,
            errors=[problem],
        )

    async def _request_correction(
        self,
        invalid_response: str,
        error_message: str,
        expected_schema: Type[BaseModel],
    ) -> str:
        schema_json = json.dumps(expected_schema.model_json_schema(), indent=2)
        prompt = (
            f"This reply was meant to be JSON matching the schema below.\n\n"
            f"Reply:\n{invalid_response[:2000]}\n\n"
            f"Problem:\n{error_message}\n\n"
            f"Schema:\n{schema_json}\n\n"
            f"Return the corrected JSON only."
        )
        text, _ = await self._call_api(
            messages=[{"role": "user", "content": prompt}],
            system=REPAIR_SYSTEM_PROMPT,
            temperature=TEMPERATURE_SETTINGS[TaskType.VALIDATION],
            task_type=TaskType.VALIDATION,
        )
        return text

    @staticmethod
    def _extract_json(text: str) -> str:
        """Pull the JSON payload out of a fenced block or surrounding prose."""
        fenced = _FENCED_BLOCK.search(text)
        if fenced:
            return fenced.group(1).strip()

        starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
        if starts:
            start = min(starts)
            closer = "}" if text[start] == "{" else "]"
            end = text.rfind(closer)
            if end > start:
                return text[start:end + 1]
        return text.strip()

    # =========================================================================
    # Retry Hooks
    # =========================================================================

    def _backoff(self, retry_state: RetryCallState) -> float:
        """Exponential backoff with 10% jitter; rate limits start from a longer base."""
        error = retry_state.outcome.exception() if retry_state.outcome else None
        base = RATE_LIMIT_BACKOFF_BASE if isinstance(error, RateLimitError) else 1.0
        delay = base * 2 ** (retry_state.attempt_number - 1)
        return min(delay + random.uniform(0, delay * 0.1), MAX_BACKOFF_SECONDS)

    async def _sleep_before_retry(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Transient model error, retrying",
            attempt=retry_state.attempt_number,
            error_type=type(error).__name__,
            wait_seconds=round(retry_state.next_action.sleep, 2) if retry_state.next_action else None,
        )


def create_claude_service(settings: Optional[Settings] = None) -> ClaudeService:
    """
    Build a ClaudeService from settings.

    Raises:
        ConfigurationError: If ANTHROPIC_API_KEY is not set
    """
    return ClaudeService(settings=settings)


__all__ = [
    "ClaudeService",
    "create_claude_service",
    "TaskType",
    "TokenUsage",
    "TEMPERATURE_SETTINGS",
    "ClaudeServiceError",
    "EmptyResponseError",
    "SchemaValidationError",
    "MaxRetriesExceededError",
    "is_transient",
]
