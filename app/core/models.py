"""
Abstract base models shared by the ledger apps.

Base Classes:
    BaseModel: Abstract model with created_at / updated_at timestamps

The payout eligibility rules read ``updated_at`` (time of the last ledger
transition), so every ledger table inherits from BaseModel. For a UUID
primary key see core.model_mixins.

Usage:
    from core.models import BaseModel
    from core.model_mixins import UUIDPrimaryKeyMixin

    class PaymentTransfer(UUIDPrimaryKeyMixin, BaseModel):
        amount = models.PositiveIntegerField()
"""

from __future__ import annotations

from django.db import models


class BaseModel(models.Model):
    """
    Abstract base model providing creation and modification timestamps.

    Fields:
        created_at: Set once when the row is inserted
        updated_at: Refreshed on every save(); queryset.update() leaves it alone
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this record was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="Timestamp when this record was last modified",
    )

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(id={self.pk})"
