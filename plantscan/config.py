from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    site_url: str = Field("http://localhost:3000", alias="SITE_URL")

    jwt_secret: str = Field("test-jwt-secret", alias="JWT_SECRET")
    jwt_audience: str = Field("authenticated", alias="JWT_AUDIENCE")

    trusted_proxies: list[str] = Field(
        default_factory=lambda: ["127.0.0.1", "testclient"]
    )
    rate_limit_ip_per_minute: int = 30
    rate_limit_user_per_minute: int = 120

    daily_free_limit: int = Field(5, alias="DAILY_FREE_LIMIT")
    max_image_bytes: int = 5 * 1024 * 1024

    database_url: str = Field("sqlite:////tmp/plantscan_test.db", alias="DATABASE_URL")
    db_create_all: bool = Field(False, alias="DB_CREATE_ALL")

    redis_url: str = Field("redis://localhost:6379", alias="REDIS_URL")

    stripe_secret_key: str = Field("sk_test_placeholder", alias="STRIPE_SECRET_KEY")
    stripe_webhook_secret: str = Field(
        "whsec_test_placeholder", alias="STRIPE_WEBHOOK_SECRET"
    )

    detection_backend: Literal["mock", "http"] = Field(
        "mock", alias="DETECTION_BACKEND"
    )
    detection_url: str | None = Field(None, alias="DETECTION_URL")
    detection_token: str | None = Field(None, alias="DETECTION_TOKEN")
    detection_timeout_s: float = Field(30.0, alias="DETECTION_TIMEOUT_S")
    detection_delay_s: float = Field(
        2.0,
        alias="DETECTION_DELAY_S",
        description="Simulated inference latency of the mock classifier",
    )

    s3_enabled: bool = Field(False, alias="S3_ENABLED")
    s3_bucket: str = "plantscan"
    s3_endpoint: str | None = None
    s3_region: str = "us-east-1"
    s3_access_key: str | None = None
    s3_secret_key: str | None = None
    s3_public_url: str | None = None

    model_config = ConfigDict(
        extra="ignore",
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
    )
