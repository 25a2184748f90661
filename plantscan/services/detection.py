"""Plant disease classifiers.

Any object with an async ``classify(image: bytes) -> DetectionResult`` can be
plugged into the scan pipeline. Two backends ship here: a fixed lookup table
used until a real model is deployed, and an HTTP client for a remote
inference service.
"""
from __future__ import annotations

import asyncio
import logging
import random
from typing import Protocol

import httpx
from pydantic import BaseModel, Field, ValidationError

from plantscan.config import Settings

logger = logging.getLogger(__name__)


class DetectionResult(BaseModel):
    name: str
    confidence: float = Field(ge=0.0, le=1.0)
    remedies: list[str] = Field(default_factory=list)


class DetectionError(Exception):
    """Classifier could not produce a result."""


class Classifier(Protocol):
    async def classify(self, image: bytes) -> DetectionResult: ...


MOCK_DISEASES: tuple[DetectionResult, ...] = (
    DetectionResult(
        name="Leaf Spot",
        confidence=0.92,
        remedies=[
            "Remove affected leaves immediately",
            "Apply copper-based fungicide spray",
            "Improve air circulation around plants",
            "Water at soil level to avoid wetting leaves",
        ],
    ),
    DetectionResult(
        name="Powdery Mildew",
        confidence=0.88,
        remedies=[
            "Spray with baking soda solution (1 tsp per quart water)",
            "Apply neem oil in early morning or evening",
            "Increase spacing between plants for better airflow",
            "Remove infected plant parts",
        ],
    ),
    DetectionResult(
        name="Bacterial Blight",
        confidence=0.85,
        remedies=[
            "Apply copper sulfate spray",
            "Remove and destroy infected plant material",
            "Avoid overhead watering",
            "Use disease-resistant varieties in future plantings",
        ],
    ),
    DetectionResult(
        name="Healthy Plant",
        confidence=0.95,
        remedies=[
            "Continue current care routine",
            "Monitor regularly for any changes",
            "Maintain proper watering schedule",
            "Ensure adequate nutrition",
        ],
    ),
)


class MockClassifier:
    """Pick a random entry from :data:`MOCK_DISEASES` after a fake delay."""

    def __init__(
        self,
        delay_s: float = 2.0,
        table: tuple[DetectionResult, ...] = MOCK_DISEASES,
        rng: random.Random | None = None,
    ) -> None:
        self.delay_s = delay_s
        self.table = table
        self._rng = rng or random.Random()

    async def classify(self, image: bytes) -> DetectionResult:
        result = self._rng.choice(self.table)
        if self.delay_s > 0:
            await asyncio.sleep(self.delay_s)
        return result.model_copy(deep=True)


class HttpClassifier:
    """Post the image to a remote inference endpoint.

    The endpoint receives the raw bytes as ``multipart/form-data`` (field
    ``image``) and must answer with JSON matching :class:`DetectionResult`.
    """

    def __init__(self, url: str, token: str | None = None, timeout: float = 30.0) -> None:
        self.url = url
        self.token = token
        self.timeout = timeout

    async def classify(self, image: bytes) -> DetectionResult:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else None
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    self.url,
                    files={"image": ("scan.jpg", image, "image/jpeg")},
                    headers=headers,
                )
                resp.raise_for_status()
                payload = resp.json()
        except httpx.TimeoutException as exc:
            logger.error("inference request timed out: %s", exc)
            raise DetectionError("inference timeout") from exc
        except httpx.HTTPError as exc:
            logger.error("inference request failed: %s", exc)
            raise DetectionError("inference request failed") from exc
        except ValueError as exc:
            logger.error("inference response is not JSON: %s", exc)
            raise DetectionError("malformed inference response") from exc

        try:
            return DetectionResult.model_validate(payload)
        except ValidationError as exc:
            logger.error("inference response rejected: %s", exc)
            raise DetectionError("malformed inference response") from exc


def build_classifier(cfg: Settings) -> Classifier:
    if cfg.detection_backend == "http":
        if not cfg.detection_url:
            raise RuntimeError("DETECTION_URL must be set for the http backend")
        return HttpClassifier(
            cfg.detection_url, cfg.detection_token, timeout=cfg.detection_timeout_s
        )
    return MockClassifier(delay_s=cfg.detection_delay_s)


__all__ = [
    "Classifier",
    "DetectionError",
    "DetectionResult",
    "HttpClassifier",
    "MOCK_DISEASES",
    "MockClassifier",
    "build_classifier",
]
