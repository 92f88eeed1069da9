"""
Authentication of scheduler-triggered requests.

Cron endpoints are invoked by an external push scheduler (Upstash QStash)
rather than by users. A request is accepted when any ONE of these checks
passes, evaluated in order:

1. ``qstash_signature``: the Upstash-Signature JWT verifies against the
   current or next QStash signing key
2. ``api_key``: ``x-api-key`` matches CRON_API_KEY
3. ``cron_secret``: ``x-cron-secret`` or ``Authorization: Bearer`` matches
   CRON_SECRET
4. ``signature_user_agent``: a QStash signature header is present and the
   User-Agent identifies QStash
5. ``user_agent_fallback``: only with ENABLE_CRON_FALLBACK in production,
   the User-Agent alone

Usage:
    from core.scheduler_auth import IsScheduler

    @api_view(["GET", "POST"])
    @authentication_classes([])
    @permission_classes([IsScheduler])
    def cleanup_expired_reservations(request):
        ...
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import jwt
from django.conf import settings
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.permissions import BasePermission

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

QSTASH_ISSUER = "Upstash"
QSTASH_CLOCK_TOLERANCE_SECONDS = 5
SIGNATURE_HEADERS = ("upstash-signature", "x-upstash-signature")
SCHEDULER_USER_AGENT_MARKERS = ("upstash", "qstash")


@dataclass(frozen=True)
class SchedulerAuthResult:
    authorized: bool
    method: str | None = None

    def __bool__(self) -> bool:
        return self.authorized


class SchedulerAuthenticator:
    """
    Decide whether an inbound request comes from the scheduler.

    All secrets are injected so tests can build an authenticator without
    touching settings; ``from_settings()`` wires the production values.
    """

    def __init__(
        self,
        current_signing_key: str = "",
        next_signing_key: str = "",
        api_key: str = "",
        cron_secret: str = "",
        allow_fallback: bool = False,
        environment: str = "development",
    ):
        self.signing_keys = [k for k in (current_signing_key, next_signing_key) if k]
        self.api_key = api_key
        self.cron_secret = cron_secret
        self.allow_fallback = allow_fallback
        self.environment = environment

    @classmethod
    def from_settings(cls) -> SchedulerAuthenticator:
        return cls(
            current_signing_key=settings.QSTASH_CURRENT_SIGNING_KEY,
            next_signing_key=settings.QSTASH_NEXT_SIGNING_KEY,
            api_key=settings.CRON_API_KEY,
            cron_secret=settings.CRON_SECRET,
            allow_fallback=settings.ENABLE_CRON_FALLBACK,
            environment=settings.APP_ENV,
        )

    def authenticate(
        self,
        headers: Mapping[str, str],
        url: str | None = None,
        body: bytes | None = None,
    ) -> SchedulerAuthResult:
        """
        Evaluate the header checks and report which one passed.

        Args:
            headers: Request headers (any casing)
            url: Public URL the scheduler called, checked against the JWT
                subject when given
            body: Raw request body, checked against the JWT body hash when given
        """
        normalized = {k.lower(): v for k, v in headers.items()}
        signature = next(
            (normalized[h] for h in SIGNATURE_HEADERS if normalized.get(h)), None
        )
        user_agent = normalized.get("user-agent", "").lower()
        is_scheduler_agent = any(m in user_agent for m in SCHEDULER_USER_AGENT_MARKERS)

        method = None
        if signature and self._verify_signature(signature, url, body):
            method = "qstash_signature"
        elif self.api_key and _matches(normalized.get("x-api-key"), self.api_key):
            method = "api_key"
        elif self.cron_secret and self._has_cron_secret(normalized):
            method = "cron_secret"
        elif signature and is_scheduler_agent:
            method = "signature_user_agent"
        elif (
            self.allow_fallback
            and self.environment == "production"
            and is_scheduler_agent
        ):
            method = "user_agent_fallback"

        if method:
            logger.info(
                f"Scheduler request authorized via {method}",
                extra={"auth_method": method},
            )
            return SchedulerAuthResult(authorized=True, method=method)

        logger.warning(
            "Unauthorized scheduler request",
            extra={
                "has_signature": bool(signature),
                "has_api_key": "x-api-key" in normalized,
                "scheduler_user_agent": is_scheduler_agent,
                "allow_fallback": self.allow_fallback,
                "environment": self.environment,
            },
        )
        return SchedulerAuthResult(authorized=False)

    def authenticate_request(self, request) -> SchedulerAuthResult:
        base_url = getattr(settings, "SCHEDULER_PUBLIC_BASE_URL", "")
        url = f"{base_url.rstrip('/')}{request.path}" if base_url else None
        return self.authenticate(request.headers, url=url, body=request.body)

    def _has_cron_secret(self, headers: dict[str, str]) -> bool:
        if _matches(headers.get("x-cron-secret"), self.cron_secret):
            return True
        authorization = headers.get("authorization", "")
        if authorization.startswith("Bearer "):
            return _matches(authorization[len("Bearer "):], self.cron_secret)
        return False

    def _verify_signature(
        self, token: str, url: str | None, body: bytes | None
    ) -> bool:
        for key in self.signing_keys:
            try:
                claims = jwt.decode(
                    token,
                    key,
                    algorithms=["HS256"],
                    issuer=QSTASH_ISSUER,
                    leeway=QSTASH_CLOCK_TOLERANCE_SECONDS,
                    options={"require": ["iss", "exp", "nbf"]},
                )
            except jwt.InvalidTokenError as e:
                logger.debug(f"QStash signature rejected by key: {e}")
                continue

            if url is not None and claims.get("sub") != url:
                logger.warning(
                    "QStash signature subject mismatch",
                    extra={"expected_url": url, "subject": claims.get("sub")},
                )
                return False
            if body is not None and not _body_hash_matches(claims.get("body"), body):
                logger.warning("QStash signature body hash mismatch")
                return False
            return True
        return False


def _matches(candidate: str | None, secret: str) -> bool:
    if not candidate:
        return False
    return hmac.compare_digest(candidate.encode(), secret.encode())


def _body_hash_matches(claimed: str | None, body: bytes) -> bool:
    if claimed is None:
        return False
    digest = base64.urlsafe_b64encode(hashlib.sha256(body).digest()).decode()
    return hmac.compare_digest(claimed.rstrip("="), digest.rstrip("="))


# =============================================================================
# DRF Integration
# =============================================================================


class SchedulerAuthError(APIException):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = {"error": "Unauthorized"}
    default_code = "unauthorized"


class IsScheduler(BasePermission):
    """Allow only requests that pass SchedulerAuthenticator."""

    def has_permission(self, request, view) -> bool:
        result = SchedulerAuthenticator.from_settings().authenticate_request(request)
        if not result:
            raise SchedulerAuthError()
        request.scheduler_auth_method = result.method
        return True


__all__ = [
    "SchedulerAuthResult",
    "SchedulerAuthenticator",
    "SchedulerAuthError",
    "IsScheduler",
]
