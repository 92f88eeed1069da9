"""
Notification dispatch service.

Every notification leaves the platform through a Novu workflow. Dispatch
is best-effort: a failed trigger is logged and reported as a failed
ServiceResult, never raised, so a notification outage cannot undo or
block a ledger write.

Design Principles:
    - Services are stateless (use class methods)
    - Call only after the ledger mutation has been committed
    - Idempotency comes from Novu's transactionId, so retried jobs pass the
      same id for the same logical notification

Usage:
    from notifications.services import NotificationService, Workflows

    result = NotificationService.notify_user(
        Workflows.PAYOUT_COMPLETED,
        user=expert,
        payload={"amount": "85.00", "currency": "EUR"},
        transaction_id=f"payout-completed-{transfer.id}",
    )
    if not result:
        logger.warning("Payout notification not sent: %s", result.error)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from core.exceptions import BaseApplicationError
from core.services import BaseService, ServiceResult

from notifications.adapters import NovuAdapter

if TYPE_CHECKING:
    from authentication.models import User

logger = logging.getLogger(__name__)

SUPPORTED_LOCALES = ("en", "pt", "es")
DEFAULT_LOCALE = "en"


class Workflows:
    """Novu workflow identifiers used by the settlement pipeline."""

    RESERVATION_EXPIRED = "reservation-expired"
    MULTIBANCO_PAYMENT_REMINDER = "multibanco-payment-reminder"
    PAYOUT_COMPLETED = "payout-completed"
    PAYOUT_FAILED = "payout-failed"
    IDENTITY_VERIFICATION = "identity-verification"
    CONNECT_ACCOUNT_UPDATE = "connect-account-update"
    PAYMENT_UNIVERSAL = "payment-universal"


def locale_from_email(email: str | None) -> str:
    """
    Guess a locale from the email's top-level domain.

    .pt, .com.br and .br map to Portuguese, .es to Spanish, everything
    else to English.
    """
    email = (email or "").strip().lower()
    if email.endswith((".pt", ".com.br", ".br")):
        return "pt"
    if email.endswith(".es"):
        return "es"
    return DEFAULT_LOCALE


def normalize_locale(value: str | None) -> str | None:
    """Reduce "pt-PT" / "pt_BR" / "ES" to a supported language code, else None."""
    if not value:
        return None
    language = str(value).replace("_", "-").split("-")[0].lower()
    return language if language in SUPPORTED_LOCALES else None


def subscriber_for_user(user: User, **extra: Any) -> dict[str, Any]:
    """Build a Novu subscriber dict for a platform user."""
    subscriber = {
        "subscriberId": user.notification_subscriber_id,
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
    }
    subscriber.update(extra)
    return subscriber


class NotificationService(BaseService):
    """
    Best-effort notification dispatch through Novu.

    Methods:
        trigger_workflow: Trigger a workflow for an arbitrary subscriber
        notify_user: Trigger a workflow for a platform user
    """

    @classmethod
    def trigger_workflow(
        cls,
        workflow_id: str,
        subscriber: dict[str, Any],
        payload: dict[str, Any] | None = None,
        transaction_id: str | None = None,
    ) -> ServiceResult[dict]:
        """
        Trigger a Novu workflow without raising.

        Args:
            workflow_id: One of the Workflows identifiers
            subscriber: Novu subscriber dict; must carry subscriberId
            payload: Template variables
            transaction_id: Idempotency key for the trigger

        Returns:
            ServiceResult with the Novu response data on success, or a
            failure with error_code NOTIFICATION_FAILED
        """
        log = cls.get_logger()

        if not subscriber.get("subscriberId"):
            log.warning(
                f"Skipping workflow {workflow_id}: subscriber has no id",
                extra={"workflow_id": workflow_id},
            )
            return ServiceResult.failure(
                "Subscriber id is required", error_code="INVALID_SUBSCRIBER"
            )

        try:
            data = NovuAdapter.trigger(
                workflow_id=workflow_id,
                to=subscriber,
                payload=payload,
                transaction_id=transaction_id,
            )
        except BaseApplicationError as e:
            log.error(
                f"Failed to trigger workflow {workflow_id}: {e.message}",
                extra={
                    "workflow_id": workflow_id,
                    "transaction_id": transaction_id,
                    "error_code": e.error_code,
                },
            )
            return ServiceResult.from_exception(e, error_code="NOTIFICATION_FAILED")

        log.info(
            f"Successfully triggered workflow: {workflow_id}",
            extra={"workflow_id": workflow_id, "transaction_id": transaction_id},
        )
        return ServiceResult.success(data)

    @classmethod
    def notify_user(
        cls,
        workflow_id: str,
        user: User,
        payload: dict[str, Any] | None = None,
        transaction_id: str | None = None,
    ) -> ServiceResult[dict]:
        return cls.trigger_workflow(
            workflow_id,
            subscriber_for_user(user),
            payload=payload,
            transaction_id=transaction_id,
        )


__all__ = [
    "NotificationService",
    "Workflows",
    "locale_from_email",
    "normalize_locale",
    "subscriber_for_user",
]
