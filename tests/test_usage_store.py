from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from plantscan import db as db_module
from plantscan.models import DailyUsage, Event, Profile, Subscription
from plantscan.services.usage_store import NewScan, SqlUsageStore, as_utc

NOW = datetime.now(timezone.utc)
DAY = "2026-10-19"


@pytest.fixture
def store():
    return SqlUsageStore()


def _add_subscription(user_id="u1", **overrides):
    values = {
        "user_id": user_id,
        "status": "active",
        "plan_type": "premium_monthly",
        "scans_remaining": 10,
        "expires_at": NOW + timedelta(days=28),
        "created_at": NOW,
        "updated_at": NOW,
    }
    values.update(overrides)
    with db_module.SessionLocal() as db:
        sub = Subscription(**values)
        db.add(sub)
        db.commit()
        return sub.id


def test_as_utc_normalizes_naive_values():
    naive = datetime(2026, 10, 19, 12, 0)
    assert as_utc(naive).tzinfo is timezone.utc
    assert as_utc("2026-10-19T12:00:00") == naive.replace(tzinfo=timezone.utc)
    assert as_utc(None) is None


def test_create_profile_is_idempotent(store):
    profile, created = store.create_profile("u1", full_name="Jo", email="jo@x.io")
    assert created
    assert profile.full_name == "Jo"
    assert not profile.is_admin

    again, created = store.create_profile("u1", full_name="Other", email=None)
    assert not created
    assert again.full_name == "Jo"
    with db_module.SessionLocal() as db:
        assert db.scalar(select(func.count()).select_from(Profile)) == 1


def test_get_profile_missing(store):
    assert store.get_profile("nobody") is None


def test_daily_usage_upsert(store):
    assert store.get_daily_usage("u1", DAY) == 0
    assert store.increment_daily_usage("u1", DAY) == 1
    assert store.increment_daily_usage("u1", DAY) == 2
    assert store.get_daily_usage("u1", DAY) == 2
    assert store.get_daily_usage("u1", "2026-10-20") == 0
    with db_module.SessionLocal() as db:
        assert db.scalar(select(func.count()).select_from(DailyUsage)) == 1


def test_decrement_stops_at_zero(store):
    sub_id = _add_subscription(scans_remaining=1)
    assert store.decrement_subscription(sub_id, NOW)
    assert not store.decrement_subscription(sub_id, NOW)
    with db_module.SessionLocal() as db:
        assert db.get(Subscription, sub_id).scans_remaining == 0


def test_decrement_refuses_expired(store):
    sub_id = _add_subscription(expires_at=NOW - timedelta(minutes=1))
    assert not store.decrement_subscription(sub_id, NOW)


def test_usable_subscription_filters_and_orders(store):
    _add_subscription(scans_remaining=0, created_at=NOW)
    _add_subscription(status="expired", created_at=NOW)
    _add_subscription(expires_at=NOW - timedelta(days=1))
    _add_subscription(user_id="someone-else")
    older = _add_subscription(created_at=NOW - timedelta(days=2))
    newer = _add_subscription(created_at=NOW - timedelta(days=1))

    usable = store.find_usable_subscription("u1", NOW)
    assert usable.id == newer
    assert usable.id != older
    assert usable.expires_at.tzinfo is not None


def test_current_subscription_includes_exhausted(store):
    empty = _add_subscription(scans_remaining=0)
    assert store.find_usable_subscription("u1", NOW) is None
    assert store.find_current_subscription("u1", NOW).id == empty


def test_scans_listed_newest_first(store):
    for name in ("Leaf Spot", "Powdery Mildew", "Healthy Plant"):
        store.add_scan(
            NewScan(
                user_id="u1",
                image_url="placeholder_1.jpg",
                disease_name=name,
                confidence_score=0.9,
                remedies=["Water less"],
            )
        )
    store.add_scan(NewScan("u2", "placeholder_2.jpg", "Leaf Spot", 0.92))

    rows = store.list_scans("u1", limit=2, offset=0)
    assert [r.disease_name for r in rows] == ["Healthy Plant", "Powdery Mildew"]
    assert rows[0].remedies == ["Water less"]
    assert rows[0].status == "completed"
    assert [r.disease_name for r in store.list_scans("u1", limit=10, offset=2)] == [
        "Leaf Spot"
    ]


def test_record_event(store):
    store.record_event("u1", "quota_denied")
    with db_module.SessionLocal() as db:
        assert db.scalars(select(Event.event)).all() == ["quota_denied"]
