"""
ConnectedAccount model for Stripe Connect integration.

This model represents an expert's Stripe Connect account. Transfers land
in it and payouts leave from it to the expert's bank account. The flags
mirror what Stripe reports in ``account.updated`` webhooks.

Usage:
    from payments.models import ConnectedAccount

    account = ConnectedAccount.objects.filter(user=expert).first()
    if account is None:
        # expert cannot be paid out yet
        ...

    # Update after Stripe webhook
    account.apply_stripe_flags(
        charges_enabled=True,
        payouts_enabled=True,
        details_submitted=True,
    )
    account.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import OnboardingStatus


class ConnectedAccount(UUIDPrimaryKeyMixin, BaseModel):
    """
    An expert's Stripe Connected Account.

    Fields:
        user: OneToOne link to the expert
        stripe_account_id: Unique Stripe Account ID (acct_xxx)
        onboarding_status: Derived from the three Stripe flags
        charges_enabled / payouts_enabled / details_submitted: Stripe flags
        bank_last4 / bank_name: Default external account, for display
        metadata: Flexible JSON storage for additional data

    Lifecycle:
        1. Created when the expert starts onboarding, or by the Connect
           webhook when the account metadata names a known user
        2. Flags mirrored on every account.updated event
        3. COMPLETE once charges, payouts and details are all enabled
        4. Deleted on account.application.deauthorized
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="connected_account",
        help_text="Expert this connected account belongs to",
    )

    stripe_account_id = models.CharField(
        max_length=255,
        unique=True,
        db_index=True,
        help_text="Stripe Account ID (acct_xxx)",
    )

    onboarding_status = models.CharField(
        max_length=20,
        choices=OnboardingStatus.choices,
        default=OnboardingStatus.NOT_STARTED,
        db_index=True,
        help_text="Current Stripe Connect onboarding status",
    )

    charges_enabled = models.BooleanField(default=False)
    payouts_enabled = models.BooleanField(default=False)
    details_submitted = models.BooleanField(default=False)

    bank_last4 = models.CharField(max_length=4, blank=True, default="")
    bank_name = models.CharField(max_length=255, blank=True, default="")

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary JSON metadata (e.g., business type, country)",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Connected Account"
        verbose_name_plural = "Connected Accounts"

    def __str__(self) -> str:
        return f"ConnectedAccount({self.stripe_account_id}, {self.onboarding_status})"

    def apply_stripe_flags(
        self,
        charges_enabled: bool,
        payouts_enabled: bool,
        details_submitted: bool,
    ) -> None:
        """
        Mirror the Stripe account flags and derive the onboarding status.

        Note: Does not save - caller must save after calling.
        """
        self.charges_enabled = bool(charges_enabled)
        self.payouts_enabled = bool(payouts_enabled)
        self.details_submitted = bool(details_submitted)

        if self.charges_enabled and self.payouts_enabled and self.details_submitted:
            self.onboarding_status = OnboardingStatus.COMPLETE
        elif self.details_submitted or self.charges_enabled:
            self.onboarding_status = OnboardingStatus.IN_PROGRESS

    def set_bank_account(self, last4: str | None, bank_name: str | None) -> None:
        """Note: Does not save - caller must save after calling."""
        self.bank_last4 = last4 or ""
        self.bank_name = bank_name or ""

    @property
    def is_ready_for_payouts(self) -> bool:
        return (
            self.onboarding_status == OnboardingStatus.COMPLETE and self.payouts_enabled
        )
