"""
Authentication models.

User is the local record of an expert, guest-facing admin or staff member.
Sign-in itself happens at the external identity provider; this model keeps
what the settlement pipeline reads and writes:

- country: drives the payout delay policy
- timezone: the expert's schedule timezone for appointment times
- external_id: identity-provider user id carried in Stripe metadata
- identity verification fields updated by the Stripe Identity webhook
- setup_progress: expert onboarding checklist

Related files:
    - managers.py: Custom user manager for email-based creation
    - payments.models.ConnectedAccount: the user's Stripe Connect account
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from authentication.managers import UserManager
from core.model_mixins import UUIDPrimaryKeyMixin


class IdentityVerificationStatus(models.TextChoices):
    """Stripe Identity verification session statuses."""

    REQUIRES_INPUT = "requires_input", "Requires Input"
    PROCESSING = "processing", "Processing"
    VERIFIED = "verified", "Verified"
    CANCELED = "canceled", "Canceled"


class User(UUIDPrimaryKeyMixin, AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Fields:
        email: Primary identifier, unique
        external_id: Identity-provider user id (unique when set)
        first_name / last_name: Display name used in notifications
        country: ISO 3166-1 alpha-2 code, used for payout delay policy
        timezone: Schedule timezone, used for appointment times in notifications
        identity_verification_*: Mirror of the latest Stripe Identity session
        setup_progress: Onboarding steps completed, e.g. {"identity": true}
        is_active / is_staff: Django account flags
        date_joined / updated_at: Timestamps
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )
    external_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Identity provider user ID",
    )
    first_name = models.CharField(max_length=150, blank=True, default="")
    last_name = models.CharField(max_length=150, blank=True, default="")
    country = models.CharField(
        max_length=2,
        blank=True,
        default="",
        help_text="ISO country code used to pick the payout delay",
    )
    timezone = models.CharField(
        max_length=64,
        blank=True,
        default="",
        help_text="IANA timezone of the expert's schedule",
    )

    # ==========================================================================
    # Identity Verification
    # ==========================================================================

    identity_verification_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Stripe Identity VerificationSession ID (vs_xxx)",
    )
    identity_verification_status = models.CharField(
        max_length=20,
        choices=IdentityVerificationStatus.choices,
        null=True,
        blank=True,
    )
    identity_verified = models.BooleanField(default=False)
    identity_verification_last_checked = models.DateTimeField(null=True, blank=True)

    setup_progress = models.JSONField(
        default=dict,
        blank=True,
        help_text="Expert onboarding steps, e.g. {'identity': true, 'payment': false}",
    )

    # ==========================================================================
    # Account Flags & Timestamps
    # ==========================================================================

    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )
    date_joined = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        return self.email

    def get_full_name(self):
        full_name = f"{self.first_name} {self.last_name}".strip()
        return full_name or self.email

    def get_short_name(self):
        return self.first_name or self.email.split("@")[0]

    @property
    def notification_subscriber_id(self) -> str:
        """Subscriber id used with the notification provider."""
        return self.external_id or str(self.pk)

    def mark_setup_step_complete(self, step: str) -> None:
        """
        Flag an onboarding step as done.

        Note: Does not save - caller must save after calling.
        """
        progress = dict(self.setup_progress or {})
        progress[step] = True
        self.setup_progress = progress
