"""Scan image storage on S3-compatible object storage."""
from __future__ import annotations

import logging
import time
from asyncio import Lock
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from plantscan.config import Settings

logger = logging.getLogger("s3")


class StorageError(Exception):
    """Upload to object storage failed."""


_settings: Settings = Settings()
_client_ctx: AbstractAsyncContextManager[Any] | None = None
_client: Any | None = None
_client_lock: Lock = Lock()


async def _make_client() -> Any:
    global _client_ctx
    session = aioboto3.Session()
    client_ctx = session.client(
        "s3",
        endpoint_url=_settings.s3_endpoint,
        region_name=_settings.s3_region,
        aws_access_key_id=_settings.s3_access_key,
        aws_secret_access_key=_settings.s3_secret_key,
    )
    try:
        client = await client_ctx.__aenter__()
    except (BotoCoreError, ClientError):
        logger.exception("Failed to create S3 client")
        await client_ctx.__aexit__(None, None, None)
        raise
    _client_ctx = client_ctx
    return client


async def get_client() -> Any:
    """Return a cached aioboto3 client, creating it if needed."""
    global _client
    if _client is not None:
        return _client

    async with _client_lock:
        if _client is None:
            _client = await _make_client()
        return _client


async def close_client() -> None:
    """Close the cached S3 client if it exists."""
    global _client, _client_ctx
    if _client_ctx is not None:
        try:
            await _client_ctx.__aexit__(None, None, None)
        except (BotoCoreError, ClientError):  # pragma: no cover - best effort cleanup
            logger.exception("Failed to close S3 client")
    _client = None
    _client_ctx = None


async def init_storage(cfg: Settings) -> None:
    """Store settings and drop any client built from older ones."""
    global _settings
    _settings = cfg
    await close_client()


def _guess_extension(content_type: str | None) -> str:
    return {
        "image/png": "png",
        "image/webp": "webp",
        "image/gif": "gif",
    }.get(content_type or "", "jpg")


async def upload_scan_image(
    user_id: str, data: bytes, content_type: str | None = None
) -> str:
    """Upload the scanned image and return its object key.

    With storage disabled the image is not kept and a placeholder
    reference is returned instead.
    """
    if not _settings.s3_enabled:
        return f"placeholder_{int(time.time() * 1000)}.jpg"

    ts = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    key = f"scans/{user_id}/{ts}-{uuid4().hex}.{_guess_extension(content_type)}"
    try:
        client = await get_client()
        await client.put_object(
            Bucket=_settings.s3_bucket,
            Key=key,
            Body=data,
            ContentType=content_type or "image/jpeg",
        )
    except (BotoCoreError, ClientError) as exc:
        logger.exception("S3 upload failed for user %s", user_id)
        raise StorageError("S3 upload failed") from exc
    return key


def get_public_url(key: str) -> str:
    """Return a public URL for a stored key; placeholders pass through."""
    if key.startswith("placeholder_"):
        return key
    if _settings.s3_public_url:
        return f"{_settings.s3_public_url.rstrip('/')}/{key}"
    if _settings.s3_endpoint:
        return f"{_settings.s3_endpoint.rstrip('/')}/{_settings.s3_bucket}/{key}"
    return f"https://{_settings.s3_bucket}.s3.{_settings.s3_region}.amazonaws.com/{key}"


__all__ = [
    "StorageError",
    "close_client",
    "get_client",
    "get_public_url",
    "init_storage",
    "upload_scan_image",
]
