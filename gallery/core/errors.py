"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.

Expected runtime conditions (cache miss, forged visitor cookie, duplicate
view, failed cache write) are reported through return values instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    field: str
    post_id: int
    post_type: str
    limit: int
    remaining: int
    reset_at: int
    retry_after: int
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class AuthenticationAppError(AppError):
    """Raised when admin authentication fails."""


class NotFoundAppError(AppError):
    """Raised when a requested post or group post does not exist."""


class RateLimitAppError(AppError):
    """Raised by the HTTP layer when a caller exceeds its window budget."""

    @property
    def retry_after(self) -> int:
        return int((self.details or {}).get("retry_after", 0))


class CounterStoreError(AppError):
    """Raised when the counters store cannot complete an increment."""
