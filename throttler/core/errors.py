"""Application-level exception types.

Throttled requests are not errors and never appear here: they are ordinary
``RateLimitResult`` values. These types cover configuration mistakes, admin
authentication and lookups of limiters that do not exist.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    field: str
    actual_value: Any
    limiter: str
    available: list[str]
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when request input is invalid."""


class ConfigurationAppError(AppError):
    """Raised at construction time for invalid limiter configuration."""


class AuthenticationAppError(AppError):
    """Raised when admin authentication fails."""


class LimiterNotFoundAppError(AppError):
    """Raised when a limiter name is not registered."""
