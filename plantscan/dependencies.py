from __future__ import annotations

import logging
from functools import lru_cache

import jwt
import redis.asyncio as redis
from fastapi import Depends, Header, HTTPException, Request
from pydantic import BaseModel
from redis.exceptions import RedisError

from plantscan.config import Settings
from plantscan.models import ErrorCode
from plantscan.services.detection import build_classifier
from plantscan.services.scans import Identity, ScanService
from plantscan.services.storage import upload_scan_image
from plantscan.services.usage_store import SqlUsageStore

settings = Settings()
redis_client = redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)


logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    code: str
    message: str


def _unauthorized(message: str) -> HTTPException:
    err = ErrorResponse(code=ErrorCode.UNAUTHORIZED, message=message)
    return HTTPException(status_code=401, detail=err.model_dump())


async def get_current_user(
    authorization: str | None = Header(None, alias="Authorization"),
) -> Identity:
    """Resolve the caller from the auth provider's bearer token."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise _unauthorized("Unauthorized")
    token = authorization.split(" ", 1)[1].strip()
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            options={"verify_exp": True, "require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise _unauthorized("Expired token") from exc
    except jwt.PyJWTError as exc:
        logger.warning("audit: rejected token: %s", exc)
        raise _unauthorized("Invalid token") from exc

    metadata = claims.get("user_metadata") or {}
    full_name = metadata.get("full_name") if isinstance(metadata, dict) else None
    return Identity(
        user_id=str(claims["sub"]),
        email=claims.get("email"),
        full_name=full_name,
    )


async def rate_limit(
    request: Request, user: Identity = Depends(get_current_user)
) -> Identity:
    """Throttle requests by IP and user via Redis."""
    client_host = request.client.host if request.client else ""
    ip = client_host
    xff = request.headers.get("X-Forwarded-For")
    if xff and client_host in settings.trusted_proxies:
        forwarded = [h.strip() for h in xff.split(",") if h.strip()]
        proxies = forwarded[1:] + [client_host]
        if all(p in settings.trusted_proxies for p in proxies):
            ip = forwarded[0]
    ip_key = f"rate:ip:{ip}"
    user_key = f"rate:user:{user.user_id}"

    try:
        pipe = redis_client.pipeline()
        pipe.incr(ip_key)
        pipe.expire(ip_key, 60)
        pipe.incr(user_key)
        pipe.expire(user_key, 60)
        ip_count, _, user_count, _ = await pipe.execute()
    except RedisError as exc:
        logger.exception("Redis unavailable for rate limiting: %s", exc)
        err = ErrorResponse(
            code=ErrorCode.SERVICE_UNAVAILABLE, message="Rate limiter unavailable"
        )
        raise HTTPException(status_code=503, detail=err.model_dump()) from exc
    if (
        ip_count > settings.rate_limit_ip_per_minute
        or user_count > settings.rate_limit_user_per_minute
    ):
        err = ErrorResponse(code=ErrorCode.TOO_MANY_REQUESTS, message="Rate limit exceeded")
        raise HTTPException(status_code=429, detail=err.model_dump())

    return user


@lru_cache(maxsize=1)
def get_scan_service() -> ScanService:
    return ScanService(
        SqlUsageStore(),
        build_classifier(settings),
        upload_scan_image,
        daily_limit=settings.daily_free_limit,
    )


__all__ = [
    "ErrorResponse",
    "get_current_user",
    "get_scan_service",
    "rate_limit",
    "settings",
]
