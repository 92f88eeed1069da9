"""
Core Application - Infrastructure & Base Classes

Shared building blocks used by the booking, payments and notifications apps.

Models (import from core.models / core.model_mixins):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)
    - UUIDPrimaryKeyMixin: UUID as primary key

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError and its subclasses

Settlement infrastructure:
    - core.retry: retry_with_backoff for critical writes
    - core.settlement: SettlementConfig policy snapshot
    - core.scheduler_auth: cron request authentication (IsScheduler)
    - core.monitoring: BetterStack job heartbeats

Note:
    Models and model mixins are NOT imported here to avoid
    AppRegistryNotReady errors. Import them directly from their modules.
"""

from .exceptions import (
    BaseApplicationError,
    ConfigurationError,
    ExternalServiceError,
    ValidationError,
)
from .services import BaseService, ServiceResult

__all__ = [
    # Services
    "BaseService",
    "ServiceResult",
    # Exceptions
    "BaseApplicationError",
    "ValidationError",
    "ConfigurationError",
    "ExternalServiceError",
]
