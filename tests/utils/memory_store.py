"""In-memory UsageStore used to exercise the entitlement rules without a DB."""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from itertools import count

from plantscan.services.usage_store import (
    NewScan,
    ProfileRecord,
    ScanRecord,
    SubscriptionRecord,
)


class StoreError(RuntimeError):
    pass


class MemoryStore:
    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime.now(timezone.utc)
        self.profiles: dict[str, ProfileRecord] = {}
        self.subscriptions: dict[int, SubscriptionRecord] = {}
        self.daily: dict[tuple[str, str], int] = {}
        self.scans: list[ScanRecord] = []
        self.events: list[tuple[str, str]] = []
        self.calls: list[str] = []
        self.fail_on: set[str] = set()
        self.drain_before_decrement = False
        self._ids = count(1)

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise StoreError(f"{name} failed")

    # seeding helpers
    def add_subscription(
        self,
        user_id: str,
        *,
        scans_remaining: int = 10,
        status: str = "active",
        expires_in: timedelta = timedelta(days=28),
        created_at: datetime | None = None,
        plan_type: str = "premium_monthly",
    ) -> SubscriptionRecord:
        now = self.now
        sub = SubscriptionRecord(
            id=next(self._ids),
            user_id=user_id,
            status=status,
            plan_type=plan_type,
            scans_remaining=scans_remaining,
            expires_at=now + expires_in,
            created_at=created_at or now,
        )
        self.subscriptions[sub.id] = sub
        return sub

    def remaining(self, subscription_id: int) -> int:
        return self.subscriptions[subscription_id].scans_remaining

    # UsageStore
    def get_profile(self, user_id):
        self._call("get_profile")
        return self.profiles.get(user_id)

    def create_profile(self, user_id, *, full_name, email):
        self._call("create_profile")
        if user_id in self.profiles:
            return self.profiles[user_id], False
        profile = ProfileRecord(id=user_id, full_name=full_name, email=email)
        self.profiles[user_id] = profile
        return profile, True

    def _active(self, user_id, now):
        rows = [
            s
            for s in self.subscriptions.values()
            if s.user_id == user_id and s.status == "active" and s.expires_at > now
        ]
        return sorted(rows, key=lambda s: (s.created_at, s.id), reverse=True)

    def find_usable_subscription(self, user_id, now):
        self._call("find_usable_subscription")
        rows = [s for s in self._active(user_id, now) if s.scans_remaining > 0]
        return rows[0] if rows else None

    def find_current_subscription(self, user_id, now):
        self._call("find_current_subscription")
        rows = self._active(user_id, now)
        return rows[0] if rows else None

    def decrement_subscription(self, subscription_id, now):
        self._call("decrement_subscription")
        sub = self.subscriptions[subscription_id]
        if self.drain_before_decrement:
            # another request took the last credit between read and write
            self.drain_before_decrement = False
            sub = self.subscriptions[subscription_id] = replace(sub, scans_remaining=0)
        if sub.status != "active" or sub.expires_at <= now or sub.scans_remaining <= 0:
            return False
        self.subscriptions[subscription_id] = replace(
            sub, scans_remaining=sub.scans_remaining - 1
        )
        return True

    def get_daily_usage(self, user_id, day):
        self._call("get_daily_usage")
        return self.daily.get((user_id, day), 0)

    def increment_daily_usage(self, user_id, day):
        self._call("increment_daily_usage")
        self.daily[(user_id, day)] = self.daily.get((user_id, day), 0) + 1
        return self.daily[(user_id, day)]

    def add_scan(self, scan: NewScan):
        self._call("add_scan")
        record = ScanRecord(
            id=len(self.scans) + 1,
            user_id=scan.user_id,
            image_url=scan.image_url,
            disease_name=scan.disease_name,
            confidence_score=scan.confidence_score,
            remedies=list(scan.remedies),
            status=scan.status,
            created_at=datetime.now(timezone.utc),
        )
        self.scans.append(record)
        return record

    def list_scans(self, user_id, *, limit, offset):
        self._call("list_scans")
        rows = [s for s in reversed(self.scans) if s.user_id == user_id]
        return rows[offset : offset + limit]

    def record_event(self, user_id, event):
        self._call("record_event")
        self.events.append((user_id, event))
