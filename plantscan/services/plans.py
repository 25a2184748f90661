"""Scan packs sold through checkout."""
from __future__ import annotations

from typing import NamedTuple


class Plan(NamedTuple):
    id: str
    name: str
    description: str
    amount: int  # minor currency units
    currency: str
    scans: int
    duration_days: int


PLANS: dict[str, Plan] = {
    "premium_monthly": Plan(
        id="premium_monthly",
        name="Premium Monthly Plan",
        description="100 scans valid for 28 days",
        amount=20000,
        currency="inr",
        scans=100,
        duration_days=28,
    ),
}


def get_plan(plan_id: str | None) -> Plan | None:
    if not plan_id:
        return None
    return PLANS.get(plan_id)


__all__ = ["PLANS", "Plan", "get_plan"]
