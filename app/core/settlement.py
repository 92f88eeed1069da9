"""
Settlement policy configuration.

SettlementConfig is a snapshot of the settlement-related Django settings,
built once per process with ``SettlementConfig.from_settings()`` and passed
to the job services. Tests construct their own instance instead of
overriding settings.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from functools import lru_cache

from django.conf import settings

DEFAULT_COUNTRY_KEY = "DEFAULT"


@dataclass(frozen=True)
class SettlementConfig:
    """
    Policy values shared by the settlement jobs.

    Attributes:
        payout_delay_days: Country code -> days to hold funds before payout.
            Must contain a DEFAULT entry.
        platform_fee_percent: Platform share of each payment, in percent
        transfer_approval_threshold: Transfers of at least this amount
            (minor units) require admin approval. 0 disables the check.
        max_transfer_retries: Failed transfer attempts before FAILED is terminal
        payout_max_workers: Concurrent provider calls in the payout job
        reminder_provider_delay_ms: Pause after each provider call in the
            reminder job
        heartbeats: Job name -> monitoring heartbeat URL
    """

    payout_delay_days: dict[str, int] = field(
        default_factory=lambda: {DEFAULT_COUNTRY_KEY: 7}
    )
    platform_fee_percent: Decimal = Decimal("15")
    transfer_approval_threshold: int = 0
    max_transfer_retries: int = 3
    payout_max_workers: int = 5
    reminder_provider_delay_ms: int = 25
    heartbeats: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls) -> SettlementConfig:
        delays = {
            str(k).upper(): int(v) for k, v in settings.PAYOUT_DELAY_DAYS.items()
        }
        delays.setdefault(DEFAULT_COUNTRY_KEY, 7)
        return cls(
            payout_delay_days=delays,
            platform_fee_percent=Decimal(str(settings.PLATFORM_FEE_PERCENT)),
            transfer_approval_threshold=settings.TRANSFER_APPROVAL_THRESHOLD,
            max_transfer_retries=settings.TRANSFER_MAX_RETRIES,
            payout_max_workers=settings.PAYOUT_MAX_WORKERS,
            reminder_provider_delay_ms=settings.REMINDER_PROVIDER_DELAY_MS,
            heartbeats=dict(settings.BETTERSTACK_HEARTBEATS),
        )

    def payout_delay_days_for(self, country: str | None) -> int:
        """Required holding period for a country, falling back to DEFAULT."""
        if country and country.upper() in self.payout_delay_days:
            return self.payout_delay_days[country.upper()]
        return self.payout_delay_days[DEFAULT_COUNTRY_KEY]

    def payout_delay_for(self, country: str | None) -> timedelta:
        return timedelta(days=self.payout_delay_days_for(country))

    def platform_fee(self, amount: int) -> int:
        """Platform fee in minor units, rounded half-up (15% of 10000 -> 1500)."""
        fee = Decimal(amount) * self.platform_fee_percent / Decimal(100)
        return int(fee.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def expert_amount(self, amount: int) -> int:
        return amount - self.platform_fee(amount)

    def requires_approval(self, amount: int) -> bool:
        return 0 < self.transfer_approval_threshold <= amount

    def heartbeat_url(self, job_name: str) -> str:
        return self.heartbeats.get(job_name, "")


def days_between(start, end) -> int:
    """Whole days elapsed from ``start`` to ``end`` (floor)."""
    return math.floor((end - start) / timedelta(days=1))


@lru_cache(maxsize=1)
def get_settlement_config() -> SettlementConfig:
    """Process-wide config, built on first use."""
    return SettlementConfig.from_settings()


__all__ = [
    "DEFAULT_COUNTRY_KEY",
    "SettlementConfig",
    "days_between",
    "get_settlement_config",
]
