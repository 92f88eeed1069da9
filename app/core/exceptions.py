"""
Base exception classes for application-wide error handling.

Every domain error raised by the settlement pipeline derives from
BaseApplicationError so that cron endpoints and webhook views can turn it
into a consistent JSON body.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Missing or malformed input (webhook metadata, payloads)
    ├── ConfigurationError - Required secret or setting is missing
    └── ExternalServiceError - Third-party service failures (Novu, BetterStack)

Usage:
    from core.exceptions import ValidationError

    raise ValidationError(
        "Checkout session is missing booking metadata",
        error_code="MISSING_METADATA",
        details={"session_id": session["id"]},
    )

    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=400)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for log filtering and alerting
        details: Additional error context (ids, provider codes, etc.)
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Transfer not found",
                "error_code": "NOT_FOUND",
                "details": {"payment_intent_id": "pi_123"}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Use for webhook payloads or job parameters that are missing required
    values. These are permanent failures and are never retried.
    """

    default_error_code: str = "VALIDATION_ERROR"


class ConfigurationError(BaseApplicationError):
    """
    Raised when a required secret or setting is missing.

    Jobs and webhook endpoints raise this before doing any work, so the
    caller gets a top-level error response instead of a partial run.
    """

    default_error_code: str = "CONFIGURATION_ERROR"


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Use for notification workflow triggers and monitoring calls. Stripe
    failures have their own hierarchy in payments.exceptions.

    Example:
        try:
            response = client.post(url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ExternalServiceError(
                "Notification service unavailable",
                error_code="NOVU_ERROR",
                details={"service": "novu", "original_error": str(e)},
            )
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"


__all__ = [
    "BaseApplicationError",
    "ValidationError",
    "ConfigurationError",
    "ExternalServiceError",
]
