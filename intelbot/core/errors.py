"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep the shape flexible across error kinds.
    """

    code: str
    message: str
    hint: str
    service: str
    endpoint: str
    upstream_status: int
    upstream_body: Any
    timeout_s: float
    event: str
    delivery_id: str
    task: str
    duration_ms: float
    error_type: str
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
    """Raised when an inbound webhook signature is missing or wrong."""


class ConfigurationAppError(AppError):
    """Raised when a required credential or URL is not configured."""


class HandlerAppError(AppError):
    """Raised when an event handler or scheduled task body fails."""


@dataclass
class UpstreamAppError(AppError):
    """Raised when an outbound call fails or returns a non-2xx status.

    Attributes:
        status_code: Upstream HTTP status, None for transport failures.
        body: Decoded upstream response body when one was received.
    """

    status_code: int | None = None
    body: Any = None


class UpstreamTimeoutError(UpstreamAppError):
    """Raised when an outbound call exceeds its deadline."""
