"""Client for the image moderate-and-upload endpoint.

The endpoint answers ``{"status": "success" | "pending_review" | "error",
"message": ..., "error_code": ..., "details": ..., "data": {...}}`` with a 400
for rejections. ``property_id=0`` together with ``validate_only=true`` asks
for a verdict without persisting anything.
"""

from __future__ import annotations

import json
import logging
import re

from listing_desk.domain.errors import TransportError
from listing_desk.domain.media import MediaFile
from listing_desk.domain.schemas import ModerationResponse
from listing_desk.services.api_client import EMPTY_RESPONSE_MESSAGE, ApiClient

logger = logging.getLogger(__name__)

GENERIC_REJECTION = "Image was rejected"

# error_code -> short label shown under the thumbnail
REJECTION_LABELS: dict[str, str] = {
    "human_detected": "Human detected",
    "blur_detected": "Image is too blurry",
    "blurry": "Image is too blurry",
    "low_quality": "Image quality too low",
    "invalid_type": "Unsupported image type",
    "invalid_image": "Not a valid image",
    "file_too_large": "File is too large",
    "adult_content": "Inappropriate content",
    "violence_content": "Violent content",
}

_PARENTHESIZED = re.compile(r"\(([^)]+)\)")


def classify_rejection(message: str | None) -> str:
    """Shorten a free-text rejection message by known phrases.

    Falls back to the message itself when no phrase matches.
    """
    reason = message or GENERIC_REJECTION
    if "animal appearance" in reason:
        match = _PARENTHESIZED.search(reason)
        return f"{match.group(1)} detected" if match else "Animal detected"
    if "human appearance" in reason:
        return "Human detected"
    if "blurry" in reason:
        return "Image is too blurry"
    if "low quality" in reason:
        return "Image quality too low"
    return reason


def describe_rejection(response: ModerationResponse) -> str:
    """Short reason for a rejected verdict. Structured codes win over text."""
    code = response.error_code
    if code == "animal_detected":
        detected = (response.details or {}).get("detected")
        if detected:
            return f"{detected} detected"
        return classify_rejection(response.message) if response.message else "Animal detected"
    if code in REJECTION_LABELS:
        return REJECTION_LABELS[code]
    return classify_rejection(response.message)


class ModerationClient:
    """Submits one image per call to the moderation pipeline."""

    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def check_image(
        self,
        file: MediaFile,
        property_id: int | str = 0,
        *,
        validate_only: bool | None = None,
    ) -> ModerationResponse:
        """Return the moderation verdict for *file*.

        Raises ``TransportError`` when the service is unreachable or the body
        is not JSON; a JSON error body is a verdict, not a transport failure.
        """
        if validate_only is None:
            validate_only = _as_int(property_id) <= 0

        form = {"property_id": str(property_id)}
        if validate_only:
            form["validate_only"] = "true"

        response = await self.api.post_multipart(
            self.api.settings.moderate_and_upload_path,
            files={"image": (file.filename, file.content, file.content_type)},
            data=form,
        )

        text = response.text
        if not text or not text.strip():
            raise TransportError(response.status_code or 500, EMPTY_RESPONSE_MESSAGE)
        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning(
                "Moderation returned non-JSON (HTTP %s): %s", response.status_code, text[:200]
            )
            raise TransportError(
                response.status_code or 500,
                text[:200] if not response.is_success else "Invalid JSON response from server",
            ) from exc

        if not isinstance(body, dict):
            raise TransportError(response.status_code or 500, "Invalid response from server")

        message = body.get("message") or ""
        if not message and not response.is_success:
            message = f"HTTP {response.status_code} Error"
        details = body.get("details")
        data = body.get("data")
        return ModerationResponse(
            status=str(body.get("status") or "error"),
            message=str(message),
            error_code=body.get("error_code"),
            # PHP encodes an empty details array as []
            details=details if isinstance(details, dict) else None,
            data=data if isinstance(data, dict) else None,
            http_status=response.status_code,
        )


def _as_int(value: int | str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
