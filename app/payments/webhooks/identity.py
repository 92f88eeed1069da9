"""
Stripe Identity webhook handlers.

Every identity.verification_session.* event updates the user's
verification fields. The update runs in one transaction inside
retry_with_backoff; when the retries run out the event is left for manual
intervention and nobody is notified.

User resolution order:
    1. client_reference_id
    2. metadata userId (identity-provider id, then primary key)
    3. the verification session id stored on the user
"""

from __future__ import annotations

import logging

from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from core.retry import retry_with_backoff
from core.services import ServiceResult

from authentication.models import IdentityVerificationStatus
from notifications.services import NotificationService, Workflows
from payments.models import WebhookEvent
from payments.webhooks.registry import register_handler

logger = logging.getLogger(__name__)

IDENTITY_UPDATE_MAX_ATTEMPTS = 3
IDENTITY_UPDATE_BASE_DELAY_MS = 1000

VERIFICATION_SESSION_EVENTS = (
    "identity.verification_session.created",
    "identity.verification_session.processing",
    "identity.verification_session.requires_input",
    "identity.verification_session.verified",
    "identity.verification_session.canceled",
    "identity.verification_session.redacted",
)


def resolve_verification_user(session: dict):
    User = get_user_model()
    metadata = session.get("metadata") or {}

    for identifier in (
        session.get("client_reference_id"),
        metadata.get("userId"),
        metadata.get("clerkUserId"),
    ):
        user = User.objects.get_by_identifier(identifier)
        if user is not None:
            return user

    if session.get("id"):
        return User.objects.filter(identity_verification_id=session["id"]).first()
    return None


def apply_verification_status(user_id, session: dict):
    """
    Store the session status on the user.

    Returns:
        (user, changed) where changed is False when the stored status
        already matched
    """
    status = session.get("status")
    with transaction.atomic():
        user = get_user_model().objects.select_for_update().get(pk=user_id)
        changed = user.identity_verification_status != status

        user.identity_verification_id = session.get("id")
        user.identity_verification_status = status
        user.identity_verified = status == IdentityVerificationStatus.VERIFIED
        user.identity_verification_last_checked = timezone.now()
        if user.identity_verified:
            user.mark_setup_step_complete("identity")
        user.save()
    return user, changed


@register_handler(*VERIFICATION_SESSION_EVENTS)
def handle_verification_session(webhook_event: WebhookEvent) -> ServiceResult:
    session = webhook_event.get_object()
    session_id = session.get("id")
    status = session.get("status")

    user = resolve_verification_user(session)
    if user is None:
        logger.error(
            f"No user found for verification session {session_id}",
            extra={"verification_session_id": session_id, "metadata": session.get("metadata")},
        )
        return ServiceResult.failure(
            "No user matches verification session", error_code="USER_NOT_FOUND"
        )

    result = retry_with_backoff(
        lambda: apply_verification_status(user.pk, session),
        max_attempts=IDENTITY_UPDATE_MAX_ATTEMPTS,
        base_delay_ms=IDENTITY_UPDATE_BASE_DELAY_MS,
        operation_name="identity_verification_update",
    )
    if not result:
        logger.critical(
            f"Identity verification update for user {user.pk} needs manual intervention",
            extra={
                "user_id": str(user.pk),
                "verification_session_id": session_id,
                "status": status,
                "error": result.error,
            },
        )
        return result

    user, changed = result.data
    logger.info(
        "Updated user verification status",
        extra={"user_id": str(user.pk), "status": status, "changed": changed},
    )

    if changed and status == IdentityVerificationStatus.VERIFIED:
        NotificationService.notify_user(
            Workflows.IDENTITY_VERIFICATION,
            user,
            payload={
                "title": "Identity Verification Complete",
                "message": "Your identity has been successfully verified.",
                "status": status,
            },
            transaction_id=f"identity-verified-{session_id}",
        )
    elif changed and status == IdentityVerificationStatus.REQUIRES_INPUT:
        error = session.get("last_error") or {}
        NotificationService.notify_user(
            Workflows.IDENTITY_VERIFICATION,
            user,
            payload={
                "title": "Identity Verification Needs Attention",
                "message": error.get("reason")
                or "We need more information to verify your identity.",
                "status": status,
            },
            transaction_id=f"identity-requires-input-{session_id}-{webhook_event.stripe_event_id}",
        )
    return ServiceResult.success(user)
