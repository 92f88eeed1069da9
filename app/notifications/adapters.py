"""
Novu REST adapter.

Thin httpx wrapper around ``POST /v1/events/trigger``. It raises
ExternalServiceError on any transport or HTTP failure; deciding whether a
failed notification matters is the caller's job (see NotificationService).
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx
from django.conf import settings

from core.exceptions import ConfigurationError, ExternalServiceError

logger = logging.getLogger(__name__)

NOVU_TIMEOUT_SECONDS = 5.0


class NovuAdapter:
    """
    Adapter for the Novu notification API.

    Configuration:
        NOVU_SECRET_KEY: API key sent as ``Authorization: ApiKey <key>``
        NOVU_API_URL: Base URL (defaults to https://api.novu.co)
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    def _headers(cls) -> dict[str, str]:
        secret_key = getattr(settings, "NOVU_SECRET_KEY", "")
        if not secret_key:
            raise ConfigurationError(
                message="NOVU_SECRET_KEY is not configured",
                details={"setting": "NOVU_SECRET_KEY"},
            )
        return {
            "Authorization": f"ApiKey {secret_key}",
            "Content-Type": "application/json",
        }

    @classmethod
    def trigger(
        cls,
        workflow_id: str,
        to: dict[str, Any],
        payload: dict[str, Any] | None = None,
        transaction_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Trigger a Novu workflow.

        Args:
            workflow_id: Novu workflow identifier (e.g. "payout-completed")
            to: Subscriber dict (subscriberId, email, firstName, lastName, data)
            payload: Template variables
            transaction_id: Idempotency key; Novu drops repeated triggers
                carrying the same id

        Returns:
            The ``data`` object of the Novu response

        Raises:
            ConfigurationError: If the secret key is missing
            ExternalServiceError: On timeout, transport error or non-2xx status
        """
        log = cls.get_logger()
        body: dict[str, Any] = {
            "name": workflow_id,
            "to": {k: v for k, v in to.items() if v not in (None, "")},
            "payload": payload or {},
        }
        if transaction_id:
            body["transactionId"] = transaction_id

        url = f"{settings.NOVU_API_URL.rstrip('/')}/v1/events/trigger"
        start_time = time.time()
        try:
            response = httpx.post(
                url,
                headers=cls._headers(),
                json=body,
                timeout=NOVU_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ExternalServiceError(
                message=f"Novu rejected workflow {workflow_id}: {e.response.status_code}",
                details={
                    "workflow_id": workflow_id,
                    "status_code": e.response.status_code,
                },
            ) from e
        except httpx.HTTPError as e:
            raise ExternalServiceError(
                message=f"Novu request failed for workflow {workflow_id}: {e}",
                details={"workflow_id": workflow_id},
            ) from e

        duration_ms = (time.time() - start_time) * 1000
        log.debug(
            f"Triggered Novu workflow {workflow_id} in {duration_ms:.0f}ms",
            extra={
                "workflow_id": workflow_id,
                "transaction_id": transaction_id,
                "duration_ms": duration_ms,
            },
        )
        try:
            return response.json().get("data", {}) or {}
        except ValueError:
            return {}


__all__ = ["NovuAdapter", "NOVU_TIMEOUT_SECONDS"]
