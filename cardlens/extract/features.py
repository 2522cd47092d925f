"""
Feature extraction adapters.

Both adapters hand back a ``FeatureEnvelope`` for one image ref. Content the
analysis service refuses surfaces as ``ContentRejected``; transport problems
surface as ``TransientExternalError`` so the stage retry policy can act.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union

import aiohttp

from ..core.constants import TRANSIENT_HTTP_STATUSES
from ..core.types import FeatureEnvelope
from ..utils.error_handler import (
    ContentRejected,
    ErrorContext,
    SchemaValidationError,
    TransientExternalError,
    validate_required_fields,
)
from ..utils.log import LoggerMixin
from ..utils.retry import is_content_rejection
from ..utils.validation import validate_image_ref

REQUIRED_FIELDS = ["ocr", "borders", "quality"]


class FeatureExtractor(Protocol):
    async def extract_features(self, image_ref: str) -> FeatureEnvelope:
        ...


def envelope_from_payload(payload: Dict[str, Any], image_ref: str) -> FeatureEnvelope:
    """Validate a raw payload and build the envelope, honouring rejection markers."""
    if payload.get("rejected"):
        raise ContentRejected(str(payload["rejected"]), details={"image_ref": image_ref})
    if payload.get("error"):
        message = str(payload["error"])
        if is_content_rejection(message):
            raise ContentRejected(message, details={"image_ref": image_ref})
        raise SchemaValidationError(message, details={"image_ref": image_ref})

    context = ErrorContext("extract_features", __name__, "envelope_from_payload", {"image_ref": image_ref})
    validate_required_fields(payload, REQUIRED_FIELDS, context)
    try:
        return FeatureEnvelope.from_dict(payload)
    except (KeyError, TypeError, ValueError) as e:
        raise SchemaValidationError(
            "Malformed feature payload", details={"image_ref": image_ref, "error": str(e)}
        ) from e


class JsonFeatureExtractor(LoggerMixin):
    """
    Reads pre-computed features from ``<root>/<image_ref>.features.json``.

    A ref that already ends in ``.json`` is read as-is.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def path_for(self, image_ref: str) -> Path:
        ref = validate_image_ref(image_ref)
        if ref.endswith(".json"):
            return self.root / ref
        return self.root / f"{ref}.features.json"

    async def extract_features(self, image_ref: str) -> FeatureEnvelope:
        path = self.path_for(image_ref)
        ctx = self.log_start("feature_extraction", image_ref=image_ref, path=str(path))
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            self.log_error(ctx, e)
            raise SchemaValidationError(
                "Feature file is not valid JSON", details={"path": str(path), "error": e.msg}
            ) from e

        envelope = envelope_from_payload(payload, image_ref)
        self.log_success(ctx, ocr_blocks=len(envelope.ocr))
        return envelope


class HttpFeatureExtractor(LoggerMixin):
    """Requests features from an image analysis service."""

    def __init__(self, url: str, timeout_s: float = 20.0, api_key: Optional[str] = None):
        self.url = url
        self.timeout = aiohttp.ClientTimeout(total=timeout_s)
        self.api_key = api_key

    async def extract_features(self, image_ref: str) -> FeatureEnvelope:
        ref = validate_image_ref(image_ref)
        ctx = self.log_start("feature_extraction", image_ref=ref)
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        try:
            async with aiohttp.ClientSession(headers=headers, timeout=self.timeout) as session:
                async with session.post(self.url, json={"image_ref": ref}) as response:
                    if response.status in TRANSIENT_HTTP_STATUSES:
                        raise TransientExternalError(
                            f"Feature service returned {response.status}",
                            details={"status": response.status, "image_ref": ref},
                        )
                    payload = await response.json(content_type=None)
                    if response.status >= 400:
                        message = str(payload.get("error") or payload.get("message") or response.status)
                        if is_content_rejection(message):
                            raise ContentRejected(message, details={"image_ref": ref})
                        response.raise_for_status()
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
            self.log_error(ctx, e)
            raise TransientExternalError(
                f"Feature service unreachable: {e}", details={"image_ref": ref}
            ) from e

        envelope = envelope_from_payload(payload, ref)
        self.log_success(ctx, ocr_blocks=len(envelope.ocr))
        return envelope
