from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Literal

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from plantscan.dependencies import ErrorResponse, get_scan_service, rate_limit, settings
from plantscan.models import ErrorCode
from plantscan.services.entitlements import FundingSource
from plantscan.services.scans import Identity, ScanError, ScanImage, ScanService
from plantscan.services.storage import get_public_url
from plantscan.services.usage_store import ScanRecord, day_key

logger = logging.getLogger(__name__)

OPTIONAL_FILE = File(None)

router = APIRouter()


class ScanResult(BaseModel):
    id: int
    disease_name: str
    confidence_score: float
    remedies: list[str]
    created_at: datetime


class ScanResponse(BaseModel):
    success: bool = True
    scan: ScanResult


class ScanHistoryItem(ScanResult):
    image_url: str
    status: str


class UsageUser(BaseModel):
    full_name: str | None = None
    is_admin: bool


class UsageData(BaseModel):
    daily_scans_used: int
    daily_limit: int
    can_scan: bool
    total_scans_available: int | Literal["unlimited"]


class UsageSubscription(BaseModel):
    scans_remaining: int
    expires_at: datetime
    status: str
    plan_type: str


class UsageResponse(BaseModel):
    user: UsageUser
    usage: UsageData
    subscription: UsageSubscription | None = None


def _error(status_code: int, code: ErrorCode, message: str) -> JSONResponse:
    err = ErrorResponse(code=code, message=message)
    return JSONResponse(status_code=status_code, content=err.model_dump(mode="json"))


def _scan_result(record: ScanRecord) -> ScanResult:
    return ScanResult(
        id=record.id,
        disease_name=record.disease_name,
        confidence_score=record.confidence_score,
        remedies=record.remedies,
        created_at=record.created_at,
    )


@router.post(
    "/scan",
    response_model=ScanResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def create_scan(
    user: Identity = Depends(rate_limit),
    image: UploadFile | None = OPTIONAL_FILE,
    service: ScanService = Depends(get_scan_service),
):
    logger.info("scan request from user %s", user.user_id)
    limit = settings.max_image_bytes
    payload: ScanImage | None = None
    if image is not None:
        contents = await image.read(limit + 1)
        if len(contents) > limit:
            return _error(413, ErrorCode.BAD_REQUEST, "image too large")
        payload = ScanImage(contents, image.content_type)

    try:
        outcome = await service.run(user, payload)
    except ScanError as err:
        return _error(err.status_code, err.code, err.message)
    except Exception:
        logger.exception("Scan API error")
        return _error(500, ErrorCode.INTERNAL_ERROR, "Internal server error")

    return ScanResponse(scan=_scan_result(outcome.scan))


@router.get(
    "/scans",
    response_model=list[ScanHistoryItem],
    responses={401: {"model": ErrorResponse}},
)
async def list_scans(
    limit: int = 10,
    offset: int = 0,
    user: Identity = Depends(rate_limit),
    service: ScanService = Depends(get_scan_service),
):
    limit = max(0, min(limit, 50))
    offset = max(0, offset)
    if limit == 0:
        return []
    rows = await asyncio.to_thread(
        lambda: service.store.list_scans(user.user_id, limit=limit, offset=offset)
    )
    return [
        ScanHistoryItem(
            **_scan_result(r).model_dump(),
            image_url=get_public_url(r.image_url),
            status=r.status,
        )
        for r in rows
    ]


@router.get(
    "/usage",
    response_model=UsageResponse,
    responses={401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def get_usage(
    user: Identity = Depends(rate_limit),
    service: ScanService = Depends(get_scan_service),
):
    try:
        profile = await service.resolve_profile(user)
    except ScanError as err:
        return _error(err.status_code, err.code, err.message)

    def _db_call():
        now = datetime.now(timezone.utc)
        used = service.store.get_daily_usage(profile.id, day_key(now))
        current = service.store.find_current_subscription(profile.id, now)
        return used, current

    try:
        decision = await service.evaluate(profile)
        used, current = await asyncio.to_thread(_db_call)
    except Exception:
        logger.exception("Usage API error")
        return _error(500, ErrorCode.INTERNAL_ERROR, "Error loading usage data")

    if decision.source is FundingSource.ADMIN:
        available: int | str = "unlimited"
    elif decision.source is FundingSource.SUBSCRIPTION:
        available = decision.subscription.scans_remaining
    else:
        available = max(0, service.daily_limit - used)

    subscription = None
    if current is not None:
        subscription = UsageSubscription(
            scans_remaining=current.scans_remaining,
            expires_at=current.expires_at,
            status=current.status,
            plan_type=current.plan_type,
        )
    return UsageResponse(
        user=UsageUser(full_name=profile.full_name, is_admin=profile.is_admin),
        usage=UsageData(
            daily_scans_used=used,
            daily_limit=service.daily_limit,
            can_scan=decision.allowed,
            total_scans_available=available,
        ),
        subscription=subscription,
    )
