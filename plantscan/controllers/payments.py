import asyncio
import json
import logging

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from plantscan.dependencies import ErrorResponse, get_scan_service, rate_limit, settings
from plantscan.metrics import (
    checkout_sessions_total,
    payment_fail_total,
    subscriptions_activated_total,
)
from plantscan.models import ErrorCode
from plantscan.services.checkout import (
    CheckoutError,
    FulfillmentError,
    construct_event,
    create_checkout_session,
    fulfill_checkout_session,
)
from plantscan.services.plans import get_plan
from plantscan.services.scans import Identity, ScanError, ScanService

logger = logging.getLogger(__name__)

router = APIRouter()


class CheckoutRequest(BaseModel):
    # web client sends camelCase
    price_id: str = Field(alias="priceId")

    model_config = ConfigDict(populate_by_name=True)


class CheckoutResponse(BaseModel):
    session_id: str
    url: str | None = None


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def create_checkout(
    request: Request,
    user: Identity = Depends(rate_limit),
    service: ScanService = Depends(get_scan_service),
):
    try:
        payload = await request.json()
    except json.JSONDecodeError as exc:
        err = ErrorResponse(code=ErrorCode.BAD_REQUEST, message="Invalid JSON payload")
        raise HTTPException(status_code=400, detail=err.model_dump()) from exc

    try:
        body = CheckoutRequest.model_validate(payload)
    except ValidationError as exc:
        err = ErrorResponse(code=ErrorCode.BAD_REQUEST, message="Invalid price ID")
        raise HTTPException(status_code=400, detail=err.model_dump()) from exc

    plan = get_plan(body.price_id)
    if plan is None:
        err = ErrorResponse(code=ErrorCode.BAD_REQUEST, message="Invalid price ID")
        raise HTTPException(status_code=400, detail=err.model_dump())

    email = user.email
    if not email:
        try:
            profile = await service.resolve_profile(user)
        except ScanError as err:
            raise HTTPException(
                status_code=err.status_code,
                detail=ErrorResponse(code=err.code, message=err.message).model_dump(),
            ) from err
        email = profile.email

    try:
        session = await create_checkout_session(plan, user.user_id, email, settings)
    except CheckoutError as exc:
        payment_fail_total.inc()
        err = ErrorResponse(
            code=ErrorCode.SERVICE_UNAVAILABLE, message="Payment provider error"
        )
        raise HTTPException(status_code=502, detail=err.model_dump()) from exc

    await service.record_event(user.user_id, "checkout_created")
    checkout_sessions_total.labels(plan=plan.id).inc()
    return CheckoutResponse(session_id=session.session_id, url=session.url)


@router.post(
    "/payments/stripe/webhook",
    status_code=200,
    responses={400: {"model": ErrorResponse}},
)
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
):
    raw_body = await request.body()
    try:
        event = construct_event(raw_body, stripe_signature, settings)
    except ValueError as exc:
        logger.warning("audit: malformed stripe webhook payload")
        err = ErrorResponse(code=ErrorCode.BAD_REQUEST, message="Malformed payload")
        raise HTTPException(status_code=400, detail=err.model_dump()) from exc
    except stripe.SignatureVerificationError as exc:
        logger.warning("audit: invalid stripe webhook signature")
        err = ErrorResponse(code=ErrorCode.BAD_REQUEST, message="Invalid signature")
        raise HTTPException(status_code=400, detail=err.model_dump()) from exc

    if event["type"] != "checkout.session.completed":
        logger.info("ignoring stripe event %s", event["type"])
        return {}

    session = event["data"]["object"]
    try:
        created = await asyncio.to_thread(fulfill_checkout_session, session)
    except FulfillmentError as exc:
        logger.error("cannot fulfill checkout %s: %s", session["id"], exc)
        err = ErrorResponse(code=ErrorCode.BAD_REQUEST, message=str(exc))
        raise HTTPException(status_code=400, detail=err.model_dump()) from exc

    if created is not None:
        subscriptions_activated_total.inc()
    return {}
