"""Persistence accessors for profiles, entitlements and scan records.

The entitlement logic only talks to a :class:`UsageStore`. Production wires
in :class:`SqlUsageStore`; tests may pass any object with the same methods.
Every method opens its own short-lived session and returns detached
snapshots, so no row object outlives the call.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

from sqlalchemy import select, text, update
from sqlalchemy.orm import Session

from plantscan import db as db_module
from plantscan.models import Event, Profile, Scan, Subscription


@dataclass(frozen=True)
class ProfileRecord:
    id: str
    full_name: str | None
    email: str | None
    is_admin: bool = False


@dataclass(frozen=True)
class SubscriptionRecord:
    id: int
    user_id: str
    status: str
    plan_type: str
    scans_remaining: int
    expires_at: datetime
    created_at: datetime | None = None


@dataclass(frozen=True)
class NewScan:
    user_id: str
    image_url: str
    disease_name: str
    confidence_score: float
    remedies: list[str] = field(default_factory=list)
    status: str = "completed"


@dataclass(frozen=True)
class ScanRecord:
    id: int
    user_id: str
    image_url: str
    disease_name: str
    confidence_score: float
    remedies: list[str]
    status: str
    created_at: datetime


def day_key(now: datetime | None = None) -> str:
    """Return the UTC calendar date used to key daily usage (YYYY-MM-DD)."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).date().isoformat()


def as_utc(value: datetime | str | None) -> datetime | None:
    """Normalize database datetimes (SQLite returns naive values) to UTC."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UsageStore(Protocol):
    def get_profile(self, user_id: str) -> ProfileRecord | None: ...

    def create_profile(
        self, user_id: str, *, full_name: str, email: str | None
    ) -> tuple[ProfileRecord, bool]: ...

    def find_usable_subscription(
        self, user_id: str, now: datetime
    ) -> SubscriptionRecord | None: ...

    def find_current_subscription(
        self, user_id: str, now: datetime
    ) -> SubscriptionRecord | None: ...

    def decrement_subscription(self, subscription_id: int, now: datetime) -> bool: ...

    def get_daily_usage(self, user_id: str, day: str) -> int: ...

    def increment_daily_usage(self, user_id: str, day: str) -> int: ...

    def add_scan(self, scan: NewScan) -> ScanRecord: ...

    def list_scans(self, user_id: str, *, limit: int, offset: int) -> list[ScanRecord]: ...

    def record_event(self, user_id: str, event: str) -> None: ...


def _profile_record(row: Any) -> ProfileRecord:
    return ProfileRecord(
        id=row.id,
        full_name=row.full_name,
        email=row.email,
        is_admin=bool(row.is_admin),
    )


def _subscription_record(row: Subscription) -> SubscriptionRecord:
    return SubscriptionRecord(
        id=row.id,
        user_id=row.user_id,
        status=row.status,
        plan_type=row.plan_type,
        scans_remaining=row.scans_remaining,
        expires_at=as_utc(row.expires_at),
        created_at=as_utc(row.created_at),
    )


def _scan_record(row: Scan) -> ScanRecord:
    return ScanRecord(
        id=row.id,
        user_id=row.user_id,
        image_url=row.image_url,
        disease_name=row.disease_name,
        confidence_score=float(row.confidence_score),
        remedies=list(row.remedies or []),
        status=row.status,
        created_at=as_utc(row.created_at),
    )


class SqlUsageStore:
    """SQLAlchemy-backed :class:`UsageStore`."""

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        self._session_factory = session_factory or db_module.SessionLocal

    def get_profile(self, user_id: str) -> ProfileRecord | None:
        with self._session_factory() as db:
            row = db.get(Profile, user_id)
            return _profile_record(row) if row else None

    def create_profile(
        self, user_id: str, *, full_name: str, email: str | None
    ) -> tuple[ProfileRecord, bool]:
        """Insert the profile unless it exists. Returns ``(profile, created)``."""
        with self._session_factory() as db:
            result = db.execute(
                text(
                    "INSERT INTO profiles (id, full_name, email, is_admin, created_at) "
                    "VALUES (:uid, :name, :email, false, CURRENT_TIMESTAMP) "
                    "ON CONFLICT (id) DO NOTHING"
                ),
                {"uid": user_id, "name": full_name, "email": email},
            )
            db.commit()
            row = db.get(Profile, user_id)
            if row is None:
                raise RuntimeError(f"profile {user_id} missing after insert")
            return _profile_record(row), result.rowcount == 1

    def _subscriptions(self, user_id: str, now: datetime, *criteria: Any):
        return (
            select(Subscription)
            .where(
                Subscription.user_id == user_id,
                Subscription.status == "active",
                Subscription.expires_at > now,
                *criteria,
            )
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .limit(1)
        )

    def find_usable_subscription(
        self, user_id: str, now: datetime
    ) -> SubscriptionRecord | None:
        stmt = self._subscriptions(user_id, now, Subscription.scans_remaining > 0)
        with self._session_factory() as db:
            row = db.execute(stmt).scalars().first()
            return _subscription_record(row) if row else None

    def find_current_subscription(
        self, user_id: str, now: datetime
    ) -> SubscriptionRecord | None:
        """Newest active, unexpired subscription regardless of credits left."""
        with self._session_factory() as db:
            row = db.execute(self._subscriptions(user_id, now)).scalars().first()
            return _subscription_record(row) if row else None

    def decrement_subscription(self, subscription_id: int, now: datetime) -> bool:
        """Take one credit if the subscription still has one. Atomic."""
        stmt = (
            update(Subscription)
            .where(
                Subscription.id == subscription_id,
                Subscription.status == "active",
                Subscription.expires_at > now,
                Subscription.scans_remaining > 0,
            )
            .values(
                scans_remaining=Subscription.scans_remaining - 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        with self._session_factory() as db:
            result = db.execute(stmt)
            db.commit()
            return result.rowcount == 1

    def get_daily_usage(self, user_id: str, day: str) -> int:
        with self._session_factory() as db:
            used = db.execute(
                text("SELECT scans_used FROM daily_usage WHERE user_id=:uid AND date=:day"),
                {"uid": user_id, "day": day},
            ).scalar()
            return int(used or 0)

    def increment_daily_usage(self, user_id: str, day: str) -> int:
        """Upsert today's counter by one and return the new value."""
        params = {"uid": user_id, "day": day}
        with self._session_factory() as db:
            db.execute(
                text(
                    "INSERT INTO daily_usage (user_id, date, scans_used, created_at, updated_at) "
                    "VALUES (:uid, :day, 1, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP) "
                    "ON CONFLICT (user_id, date) DO UPDATE "
                    "SET scans_used = daily_usage.scans_used + 1, "
                    "updated_at = CURRENT_TIMESTAMP"
                ),
                params,
            )
            db.commit()
            return db.execute(
                text("SELECT scans_used FROM daily_usage WHERE user_id=:uid AND date=:day"),
                params,
            ).scalar_one()

    def add_scan(self, scan: NewScan) -> ScanRecord:
        with self._session_factory() as db:
            row = Scan(
                user_id=scan.user_id,
                image_url=scan.image_url,
                disease_name=scan.disease_name,
                confidence_score=scan.confidence_score,
                remedies=list(scan.remedies),
                status=scan.status,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return _scan_record(row)

    def list_scans(self, user_id: str, *, limit: int, offset: int) -> list[ScanRecord]:
        with self._session_factory() as db:
            rows = (
                db.query(Scan)
                .filter(Scan.user_id == user_id)
                .order_by(Scan.created_at.desc(), Scan.id.desc())
                .limit(limit)
                .offset(offset)
                .all()
            )
            return [_scan_record(r) for r in rows]

    def record_event(self, user_id: str, event: str) -> None:
        with self._session_factory() as db:
            db.add(Event(user_id=user_id, event=event))
            db.commit()


__all__ = [
    "NewScan",
    "ProfileRecord",
    "ScanRecord",
    "SqlUsageStore",
    "SubscriptionRecord",
    "UsageStore",
    "as_utc",
    "day_key",
]
