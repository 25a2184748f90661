"""Stripe Checkout integration: session creation and paid-session fulfillment."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, NamedTuple

import stripe
from sqlalchemy.exc import IntegrityError

from plantscan import db as db_module
from plantscan.config import Settings
from plantscan.models import Event, Subscription
from plantscan.services.plans import Plan, get_plan

logger = logging.getLogger(__name__)


class CheckoutError(Exception):
    """Payment provider rejected or failed the request."""


class FulfillmentError(ValueError):
    """Completed session carries metadata we cannot turn into credits."""


class CheckoutSession(NamedTuple):
    session_id: str
    url: str | None


def _redirect_urls(cfg: Settings) -> tuple[str, str]:
    base = cfg.site_url.rstrip("/")
    return (
        f"{base}/payment-success?session_id={{CHECKOUT_SESSION_ID}}",
        f"{base}/dashboard",
    )


def _session_params(
    plan: Plan, user_id: str, email: str | None, cfg: Settings
) -> dict[str, Any]:
    success_url, cancel_url = _redirect_urls(cfg)
    params: dict[str, Any] = {
        "payment_method_types": ["card"],
        "line_items": [
            {
                "price_data": {
                    "currency": plan.currency,
                    "product_data": {
                        "name": plan.name,
                        "description": plan.description,
                    },
                    "unit_amount": plan.amount,
                },
                "quantity": 1,
            }
        ],
        "mode": "payment",
        "success_url": success_url,
        "cancel_url": cancel_url,
        "metadata": {
            "user_id": user_id,
            "plan_type": plan.id,
            "scans": str(plan.scans),
            "duration_days": str(plan.duration_days),
        },
    }
    if email:
        params["customer_email"] = email
    return params


async def create_checkout_session(
    plan: Plan, user_id: str, email: str | None, cfg: Settings
) -> CheckoutSession:
    """Create a Stripe Checkout Session for ``plan`` on behalf of ``user_id``."""
    params = _session_params(plan, user_id, email, cfg)
    try:
        session = await asyncio.to_thread(
            lambda: stripe.checkout.Session.create(api_key=cfg.stripe_secret_key, **params)
        )
    except stripe.StripeError as exc:
        logger.error("Stripe checkout creation failed: %s", exc)
        raise CheckoutError("Payment provider error") from exc
    logger.info("Stripe checkout session %s created for %s", session.id, user_id)
    return CheckoutSession(session_id=session.id, url=session.url)


def construct_event(payload: bytes, sig_header: str | None, cfg: Settings) -> Any:
    """Verify the webhook signature and parse the event.

    Raises ``ValueError`` for malformed payloads and
    ``stripe.SignatureVerificationError`` for bad signatures.
    """
    return stripe.Webhook.construct_event(
        payload, sig_header or "", cfg.stripe_webhook_secret
    )


def _parse_metadata(metadata: Any) -> tuple[str, Plan, int, int]:
    if not metadata:
        raise FulfillmentError("session has no metadata")
    user_id = metadata.get("user_id")
    plan = get_plan(metadata.get("plan_type"))
    if not user_id or plan is None:
        raise FulfillmentError("session metadata lacks user or plan")
    try:
        scans = int(metadata.get("scans", plan.scans))
        days = int(metadata.get("duration_days", plan.duration_days))
    except (TypeError, ValueError) as exc:
        raise FulfillmentError("session metadata has invalid numbers") from exc
    if scans <= 0 or days <= 0:
        raise FulfillmentError("session metadata has non-positive values")
    return user_id, plan, scans, days


def fulfill_checkout_session(
    session: Any, now: datetime | None = None
) -> Subscription | None:
    """Turn a paid checkout session into an active subscription.

    Returns the new subscription, or ``None`` when the session is unpaid or
    was already fulfilled.
    """
    session_id = session["id"]
    if session.get("payment_status") != "paid":
        logger.info("checkout %s not paid yet, skipping", session_id)
        return None

    user_id, plan, scans, days = _parse_metadata(session.get("metadata"))
    now = now or datetime.now(timezone.utc)

    with db_module.SessionLocal() as db:
        existing = db.query(Subscription).filter_by(stripe_session_id=session_id).first()
        if existing:
            logger.info("checkout %s already fulfilled", session_id)
            return None
        subscription = Subscription(
            user_id=user_id,
            status="active",
            plan_type=plan.id,
            scans_remaining=scans,
            expires_at=now + timedelta(days=days),
            stripe_session_id=session_id,
            created_at=now,
            updated_at=now,
        )
        db.add(subscription)
        db.add(Event(user_id=user_id, event="subscription_activated"))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info("checkout %s fulfilled concurrently", session_id)
            return None
        db.refresh(subscription)
        logger.info(
            "subscription %s activated for %s: %s scans until %s",
            subscription.id,
            user_id,
            scans,
            subscription.expires_at,
        )
        return subscription


__all__ = [
    "CheckoutError",
    "CheckoutSession",
    "FulfillmentError",
    "construct_event",
    "create_checkout_session",
    "fulfill_checkout_session",
]
