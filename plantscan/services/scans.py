"""Scan request pipeline.

One call to :meth:`ScanService.run` walks a request through
profile bootstrap, entitlement check, detection, persistence and debit.
Failures before the scan is stored raise a :class:`ScanError` subclass that
the HTTP layer turns into a response; a failed debit is only logged.
"""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, NamedTuple

from plantscan.metrics import (
    debit_fail_total,
    quota_reject_total,
    scan_latency_seconds,
    scan_requests_total,
)
from plantscan.models import ErrorCode
from plantscan.services.detection import Classifier, DetectionError
from plantscan.services.entitlements import (
    DAILY_LIMIT,
    DebitResult,
    DebitStatus,
    ScanDecision,
    can_scan,
    debit,
)
from plantscan.services.storage import StorageError
from plantscan.services.usage_store import NewScan, ProfileRecord, ScanRecord, UsageStore

logger = logging.getLogger(__name__)

Uploader = Callable[[str, bytes, str | None], Awaitable[str]]

DEFAULT_NAME = "User"


class Identity(NamedTuple):
    """Caller as asserted by the auth provider's token."""

    user_id: str
    email: str | None = None
    full_name: str | None = None

    def display_name(self) -> str:
        if self.full_name and self.full_name.strip():
            return self.full_name.strip()
        if self.email and self.email.split("@")[0]:
            return self.email.split("@")[0]
        return DEFAULT_NAME


class ScanImage(NamedTuple):
    data: bytes
    content_type: str | None = None


class ScanOutcome(NamedTuple):
    scan: ScanRecord
    decision: ScanDecision
    debit: DebitResult


class ScanError(Exception):
    status_code = 500
    code = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ProfileError(ScanError):
    pass


class QuotaExceededError(ScanError):
    status_code = 403
    code = ErrorCode.QUOTA_EXCEEDED


class MissingImageError(ScanError):
    status_code = 400
    code = ErrorCode.BAD_REQUEST


class DetectionFailedError(ScanError):
    status_code = 502
    code = ErrorCode.SERVICE_UNAVAILABLE


class ScanPersistError(ScanError):
    pass


class ScanService:
    def __init__(
        self,
        store: UsageStore,
        classifier: Classifier,
        uploader: Uploader,
        *,
        daily_limit: int = DAILY_LIMIT,
    ) -> None:
        self.store = store
        self.classifier = classifier
        self.uploader = uploader
        self.daily_limit = daily_limit

    async def resolve_profile(self, identity: Identity) -> ProfileRecord:
        """Fetch the caller's profile, creating it on first contact."""
        try:
            profile = await asyncio.to_thread(self.store.get_profile, identity.user_id)
        except Exception as exc:
            logger.exception("Error fetching profile for %s", identity.user_id)
            raise ProfileError("Error fetching user profile") from exc
        if profile is not None:
            return profile

        logger.info("profile for %s not found, creating", identity.user_id)
        try:
            profile, created = await asyncio.to_thread(
                lambda: self.store.create_profile(
                    identity.user_id,
                    full_name=identity.display_name(),
                    email=identity.email,
                )
            )
        except Exception as exc:
            logger.exception("Error creating profile for %s", identity.user_id)
            raise ProfileError("Error creating user profile") from exc
        if created:
            await self.record_event(identity.user_id, "profile_created")
        return profile

    async def evaluate(self, profile: ProfileRecord) -> ScanDecision:
        return await asyncio.to_thread(
            lambda: can_scan(
                self.store,
                profile.id,
                profile.is_admin,
                daily_limit=self.daily_limit,
            )
        )

    async def run(self, identity: Identity, image: ScanImage | None) -> ScanOutcome:
        profile = await self.resolve_profile(identity)

        decision = await self.evaluate(profile)
        if not decision.allowed:
            logger.info("user %s cannot scan: %s", profile.id, decision.reason)
            quota_reject_total.inc()
            await self.record_event(profile.id, "quota_denied")
            raise QuotaExceededError(decision.reason)

        if image is None or not image.data:
            raise MissingImageError("No image file provided")

        scan_requests_total.inc()
        start = time.perf_counter()
        try:
            image_ref = await self.uploader(profile.id, image.data, image.content_type)
        except StorageError as exc:
            raise ScanPersistError("Error saving scan image") from exc
        try:
            result = await self.classifier.classify(image.data)
        except DetectionError as exc:
            raise DetectionFailedError("Plant analysis is unavailable") from exc
        finally:
            scan_latency_seconds.observe(time.perf_counter() - start)

        new_scan = NewScan(
            user_id=profile.id,
            image_url=image_ref,
            disease_name=result.name,
            confidence_score=result.confidence,
            remedies=list(result.remedies),
        )
        try:
            record = await asyncio.to_thread(self.store.add_scan, new_scan)
        except Exception as exc:
            logger.exception("Error creating scan record for %s", profile.id)
            raise ScanPersistError("Error saving scan results") from exc

        charged = await asyncio.to_thread(
            lambda: debit(
                self.store,
                profile.id,
                profile.is_admin,
                now=datetime.now(timezone.utc),
            )
        )
        if charged.status is DebitStatus.FAILED:
            # the stored scan stands; an uncharged scan is accepted
            debit_fail_total.inc()
            logger.error(
                "usage debit failed for user %s scan %s: %s",
                profile.id,
                record.id,
                charged.error,
            )
        return ScanOutcome(record, decision, charged)

    async def record_event(self, user_id: str, event: str) -> None:
        """Best-effort audit event; failures are logged, never raised."""
        try:
            await asyncio.to_thread(self.store.record_event, user_id, event)
        except Exception:
            logger.warning("could not record %s event for %s", event, user_id, exc_info=True)


__all__ = [
    "DetectionFailedError",
    "Identity",
    "MissingImageError",
    "ProfileError",
    "QuotaExceededError",
    "ScanError",
    "ScanImage",
    "ScanOutcome",
    "ScanPersistError",
    "ScanService",
]
