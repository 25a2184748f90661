"""Scan entitlement rules.

Order of precedence, first match wins:

1. admins scan for free and are never metered;
2. a usable subscription (active, unexpired, credits left) pays;
3. otherwise the free daily quota pays, up to ``daily_limit`` per UTC day.

:func:`can_scan` only reads. :func:`debit` charges exactly one source after a
scan was persisted. The two run as separate round trips, so a user with one
credit left can get two concurrent scans approved; the conditional decrement
keeps ``scans_remaining`` from going negative and the loser is charged to
the daily counter instead.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import NamedTuple

from plantscan.services.usage_store import SubscriptionRecord, UsageStore, day_key

logger = logging.getLogger(__name__)

DAILY_LIMIT = 5
DECREMENT_ATTEMPTS = 3

REASON_ADMIN = "Admin user"
REASON_SUBSCRIPTION = "Active subscription"
REASON_WITHIN_LIMIT = "Within daily limit"
REASON_LIMIT_REACHED = "Daily scan limit reached. Please subscribe for unlimited scans."


class FundingSource(str, Enum):
    ADMIN = "admin"
    SUBSCRIPTION = "subscription"
    DAILY_QUOTA = "daily_quota"


class ScanDecision(NamedTuple):
    allowed: bool
    reason: str
    source: FundingSource | None = None
    subscription: SubscriptionRecord | None = None
    daily_used: int | None = None


class DebitStatus(str, Enum):
    SKIPPED = "skipped"
    SUBSCRIPTION = "subscription"
    DAILY_QUOTA = "daily_quota"
    FAILED = "failed"


class DebitResult(NamedTuple):
    status: DebitStatus
    subscription_id: int | None = None
    daily_used: int | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.status is not DebitStatus.FAILED


def can_scan(
    store: UsageStore,
    user_id: str,
    is_admin: bool,
    *,
    now: datetime | None = None,
    daily_limit: int = DAILY_LIMIT,
) -> ScanDecision:
    """Decide whether ``user_id`` may run one more scan right now."""
    if is_admin:
        return ScanDecision(True, REASON_ADMIN, FundingSource.ADMIN)

    now = now or datetime.now(timezone.utc)
    subscription = store.find_usable_subscription(user_id, now)
    if subscription is not None and subscription.scans_remaining > 0:
        logger.debug(
            "user %s has subscription %s with %s scans remaining",
            user_id,
            subscription.id,
            subscription.scans_remaining,
        )
        return ScanDecision(
            True, REASON_SUBSCRIPTION, FundingSource.SUBSCRIPTION, subscription
        )

    used = store.get_daily_usage(user_id, day_key(now))
    if used >= daily_limit:
        return ScanDecision(False, REASON_LIMIT_REACHED, daily_used=used)
    logger.debug("user %s daily usage %s/%s", user_id, used, daily_limit)
    return ScanDecision(
        True, REASON_WITHIN_LIMIT, FundingSource.DAILY_QUOTA, daily_used=used
    )


def debit(
    store: UsageStore,
    user_id: str,
    is_admin: bool,
    *,
    now: datetime | None = None,
) -> DebitResult:
    """Charge one completed scan to the subscription or the daily counter.

    Storage errors are returned as ``DebitStatus.FAILED`` instead of raised;
    the caller decides what an uncharged scan means.
    """
    if is_admin:
        return DebitResult(DebitStatus.SKIPPED)

    now = now or datetime.now(timezone.utc)
    try:
        for _ in range(DECREMENT_ATTEMPTS):
            subscription = store.find_usable_subscription(user_id, now)
            if subscription is None:
                break
            if store.decrement_subscription(subscription.id, now):
                logger.info(
                    "debited subscription %s for user %s, %s left",
                    subscription.id,
                    user_id,
                    subscription.scans_remaining - 1,
                )
                return DebitResult(DebitStatus.SUBSCRIPTION, subscription_id=subscription.id)
            logger.info("subscription %s drained concurrently, re-checking", subscription.id)

        used = store.increment_daily_usage(user_id, day_key(now))
    except Exception as exc:
        return DebitResult(DebitStatus.FAILED, error=exc)
    logger.info("daily usage for user %s is now %s", user_id, used)
    return DebitResult(DebitStatus.DAILY_QUOTA, daily_used=used)


__all__ = [
    "DAILY_LIMIT",
    "DebitResult",
    "DebitStatus",
    "FundingSource",
    "ScanDecision",
    "can_scan",
    "debit",
]
