"""
Stripe Connect webhook handlers.

Events on connected accounts carry the account id at the top level of the
event (``account``); the local ConnectedAccount row mirrors what Stripe
reports.
"""

from __future__ import annotations

import logging

from django.contrib.auth import get_user_model

from core.services import ServiceResult

from notifications.services import NotificationService, Workflows
from payments.models import ConnectedAccount, WebhookEvent
from payments.state_machines import OnboardingStatus
from payments.webhooks.registry import register_handler

logger = logging.getLogger(__name__)


def _account_id(webhook_event: WebhookEvent) -> str | None:
    """Connected account the event belongs to."""
    account_id = webhook_event.payload.get("account")
    if account_id:
        return account_id
    obj = webhook_event.get_object()
    if obj.get("object") == "account":
        return obj.get("id")
    account = obj.get("account") or obj.get("destination")
    if isinstance(account, str) and account.startswith("acct_"):
        return account
    return None


@register_handler("account.updated")
def handle_account_updated(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Mirror the account flags.

    The local row is created when the account metadata names a known user.
    The expert is told once onboarding becomes complete.
    """
    account = webhook_event.get_object()
    account_id = account.get("id")

    connected = ConnectedAccount.objects.filter(stripe_account_id=account_id).first()
    if connected is None:
        user_id = (account.get("metadata") or {}).get("userId")
        user = get_user_model().objects.get_by_identifier(user_id)
        if user is None:
            logger.warning(
                f"No local account or user for Connect account {account_id}",
                extra={"account_id": account_id, "user_id": user_id},
            )
            return ServiceResult.success(None)

        connected = ConnectedAccount.objects.filter(user=user).first() or ConnectedAccount(
            user=user
        )
        connected.stripe_account_id = account_id

    was_complete = connected.onboarding_status == OnboardingStatus.COMPLETE
    connected.apply_stripe_flags(
        charges_enabled=account.get("charges_enabled"),
        payouts_enabled=account.get("payouts_enabled"),
        details_submitted=account.get("details_submitted"),
    )
    connected.save()

    logger.info(
        "Updated Connect account status",
        extra={
            "account_id": account_id,
            "details_submitted": connected.details_submitted,
            "charges_enabled": connected.charges_enabled,
            "payouts_enabled": connected.payouts_enabled,
        },
    )

    if connected.onboarding_status == OnboardingStatus.COMPLETE and not was_complete:
        NotificationService.notify_user(
            Workflows.CONNECT_ACCOUNT_UPDATE,
            connected.user,
            payload={"status": "complete", "accountId": account_id},
            transaction_id=f"connect-complete-{account_id}",
        )
    return ServiceResult.success(connected)


@register_handler("account.application.deauthorized")
def handle_account_deauthorized(webhook_event: WebhookEvent) -> ServiceResult:
    account_id = _account_id(webhook_event)
    deleted, _ = ConnectedAccount.objects.filter(stripe_account_id=account_id).delete()
    logger.info(
        f"Deauthorized Connect account {account_id}",
        extra={"account_id": account_id, "deleted": deleted},
    )
    return ServiceResult.success(None)


@register_handler(
    "account.external_account.created",
    "account.external_account.updated",
    "account.external_account.deleted",
)
def handle_external_account(webhook_event: WebhookEvent) -> ServiceResult:
    external_account = webhook_event.get_object()
    account_id = _account_id(webhook_event)
    action = webhook_event.event_type.rsplit(".", 1)[-1]

    connected = ConnectedAccount.objects.filter(stripe_account_id=account_id).first()
    if connected is None:
        logger.warning(f"Bank account {action} for unknown Connect account {account_id}")
        return ServiceResult.success(None)

    if action == "deleted":
        connected.set_bank_account(None, None)
    elif external_account.get("object") == "bank_account":
        connected.set_bank_account(
            external_account.get("last4"), external_account.get("bank_name")
        )
    else:
        return ServiceResult.success(None)

    connected.save(update_fields=["bank_last4", "bank_name", "updated_at"])
    logger.info(
        f"Bank account {action} for Connect account {account_id}",
        extra={"account_id": account_id, "last4": external_account.get("last4")},
    )
    return ServiceResult.success(connected)


def _payout_payload(payout: dict) -> dict:
    return {
        "amount": f"{(payout.get('amount') or 0) / 100:.2f}",
        "currency": (payout.get("currency") or "eur").upper(),
        "payoutId": payout.get("id"),
        "arrivalDate": payout.get("arrival_date"),
    }


@register_handler("payout.paid")
def handle_payout_paid(webhook_event: WebhookEvent) -> ServiceResult:
    payout = webhook_event.get_object()
    account_id = _account_id(webhook_event)
    logger.info(
        f"Payout paid: {payout.get('id')}",
        extra={"payout_id": payout.get("id"), "account_id": account_id},
    )

    connected = (
        ConnectedAccount.objects.select_related("user")
        .filter(stripe_account_id=account_id)
        .first()
    )
    if connected is None:
        logger.warning(f"No expert found for Connect account {account_id}")
        return ServiceResult.success(None)

    NotificationService.notify_user(
        Workflows.PAYOUT_COMPLETED,
        connected.user,
        payload={**_payout_payload(payout), "status": "paid"},
        transaction_id=f"payout-paid-{payout.get('id')}",
    )
    return ServiceResult.success(None)


@register_handler("payout.failed")
def handle_payout_failed(webhook_event: WebhookEvent) -> ServiceResult:
    """Disable payouts on the account and tell the expert why."""
    payout = webhook_event.get_object()
    account_id = _account_id(webhook_event)
    failure_reason = payout.get("failure_message") or "Unknown reason"

    logger.error(
        f"Payout failed: {payout.get('id')}",
        extra={
            "payout_id": payout.get("id"),
            "account_id": account_id,
            "failure_code": payout.get("failure_code"),
            "failure_message": failure_reason,
        },
    )

    connected = (
        ConnectedAccount.objects.select_related("user")
        .filter(stripe_account_id=account_id)
        .first()
    )
    if connected is None:
        logger.warning(f"No expert found for Connect account {account_id}")
        return ServiceResult.success(None)

    connected.payouts_enabled = False
    connected.save(update_fields=["payouts_enabled", "updated_at"])

    NotificationService.notify_user(
        Workflows.PAYOUT_FAILED,
        connected.user,
        payload={**_payout_payload(payout), "errorMessage": failure_reason},
        transaction_id=f"payout-failed-{payout.get('id')}",
    )
    return ServiceResult.success(None)
