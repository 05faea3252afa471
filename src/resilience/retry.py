"""Retry helpers with exponential backoff and jitter."""

import asyncio
import errno
import inspect
import random
from typing import Any, Awaitable, Callable, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.monitoring.logger import StructuredLogger


RETRYABLE_DATABASE_CODES: FrozenSet[str] = frozenset({
    "SQLITE_BUSY",
    "SQLITE_LOCKED",
    "ETIMEDOUT",
    "ECONNRESET",
    "ECONNREFUSED",
})

RETRYABLE_MESSAGE_FRAGMENTS = ("timeout", "connection")


def _always_retry(error: BaseException) -> bool:
    return True


class RetryError(Exception):
    """Raised once every allowed attempt has failed."""

    def __init__(self, message: str, attempts: int, last_error: Optional[BaseException]):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class RetryPolicy(BaseModel):
    """Retry configuration validated at construction time."""

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    max_attempts: int = Field(default=3, description="Total attempts including the first call")
    base_delay: float = Field(default=1.0, description="Base delay in seconds")
    max_delay: float = Field(default=30.0, description="Ceiling on the pre-jitter delay")
    should_retry: Callable[[BaseException], bool] = Field(
        default=_always_retry,
        description="Predicate deciding whether an error is transient"
    )
    on_retry: Optional[Callable[[int, BaseException, float], Any]] = Field(
        default=None,
        description="Called with (attempt, error, delay) before each sleep"
    )

    @field_validator('max_attempts')
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"max_attempts must be positive, got: {v}")
        return v

    @field_validator('base_delay', 'max_delay')
    @classmethod
    def validate_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"delay must not be negative, got: {v}")
        return v

    def merged(self, **overrides: Any) -> "RetryPolicy":
        """Return a new policy with overrides shallow-merged over this one."""
        values = {name: getattr(self, name) for name in type(self).model_fields}
        values.update(overrides)
        return type(self)(**values)


def calculate_backoff_delay(attempt: int, base_delay: float = 1.0, max_delay: float = 30.0) -> float:
    """
    Calculate the pre-jitter delay for a 1-indexed attempt.

    Formula: min(base_delay * 2 ** (attempt - 1), max_delay)
    """
    return min(base_delay * (2 ** (attempt - 1)), max_delay)


def add_jitter(delay: float) -> float:
    """Add up to 10% of non-negative jitter to a delay."""
    return delay + random.uniform(0, 0.1 * delay)


async def retry_with_backoff(
    operation: Callable[[], Any],
    policy: Optional[RetryPolicy] = None,
    sleeper: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Any:
    """
    Execute operation with retry and exponential backoff.

    Args:
        operation: Niladic callable, sync or returning an awaitable
        policy: Retry policy (defaults to RetryPolicy())
        sleeper: Async sleep function (default: asyncio.sleep)

    Returns:
        Result from the first successful call

    Raises:
        RetryError: If all attempts failed with retryable errors
        Exception: The original error when should_retry rejects it
    """
    policy = policy or RetryPolicy()
    last_error: Optional[BaseException] = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as e:
            last_error = e

            if not policy.should_retry(e):
                raise

            if attempt == policy.max_attempts:
                break

            delay = add_jitter(
                calculate_backoff_delay(attempt, policy.base_delay, policy.max_delay)
            )

            if policy.on_retry is not None:
                policy.on_retry(attempt, e, delay)

            await sleeper(delay)

    raise RetryError(
        f"Function failed after {policy.max_attempts} attempts",
        policy.max_attempts,
        last_error,
    ) from last_error


def _error_code(error: BaseException) -> Optional[str]:
    code = getattr(error, "code", None)
    if isinstance(code, str):
        return code
    # sqlite3 exposes the symbolic result code since Python 3.11
    name = getattr(error, "sqlite_errorname", None)
    if name:
        return name
    if isinstance(error, OSError) and error.errno is not None:
        return errno.errorcode.get(error.errno)
    return None


def is_retryable_database_error(error: BaseException) -> bool:
    """
    Classify a database error as transient.

    Retryable: busy/locked database, connection resets and refusals,
    timeouts, or any message mentioning "timeout" or "connection".
    """
    if _error_code(error) in RETRYABLE_DATABASE_CODES:
        return True
    message = str(error)
    return any(fragment in message for fragment in RETRYABLE_MESSAGE_FRAGMENTS)


async def retry_database_operation(
    operation: Callable[[], Any],
    logger: Optional[StructuredLogger] = None,
    sleeper: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **overrides: Any,
) -> Any:
    """
    Retry a database operation on transient errors only.

    Defaults to 3 attempts with a 0.5s base delay. Keyword overrides are
    merged over these defaults, so callers can raise max_attempts or
    replace should_retry entirely.
    """
    logger = logger or StructuredLogger()
    operation_name = getattr(operation, "__name__", None) or "anonymous"

    def log_retry(attempt: int, error: BaseException, delay: float) -> None:
        logger.retry_attempt(
            attempt=attempt,
            error=str(error),
            delay=delay,
            operation=operation_name,
        )

    policy = RetryPolicy(
        max_attempts=3,
        base_delay=0.5,
        should_retry=is_retryable_database_error,
        on_retry=log_retry,
    ).merged(**overrides)

    return await retry_with_backoff(operation, policy, sleeper=sleeper)
