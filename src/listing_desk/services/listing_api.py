"""Property / project endpoints of the listing backend."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from listing_desk.domain.errors import TransportError
from listing_desk.domain.media import MediaFile
from listing_desk.services.api_client import ApiClient, unwrap
from listing_desk.services.moderation_client import ModerationClient, describe_rejection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadedImage:
    url: str
    image_id: str | None = None
    pending: bool = False


class PropertyApi:
    """Create, update and attach images to listings.

    Projects are listings with ``project_type="upcoming"``; they go through
    the same endpoints.
    """

    def __init__(self, api: ApiClient, moderation: ModerationClient | None = None) -> None:
        self.api = api
        self.moderation = moderation or ModerationClient(api)

    async def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Create a listing and return the stored record (including its ``id``)."""
        body = await self.api.request(
            "POST", self.api.settings.add_property_path, json_body=payload
        )
        _raise_if_unsuccessful(body)
        record = unwrap(body, "property")
        return record if isinstance(record, dict) else {}

    async def update(self, property_id: int | str, changes: dict[str, Any]) -> dict[str, Any]:
        body = await self.api.request(
            "PUT",
            self.api.settings.update_property_path,
            params={"id": property_id},
            json_body=changes,
        )
        _raise_if_unsuccessful(body)
        record = unwrap(body, "property")
        return record if isinstance(record, dict) else {}

    async def upload_image(self, file: MediaFile, property_id: int | str) -> UploadedImage:
        """Moderate and persist *file* against an existing listing.

        Raises ``TransportError`` with a readable message for anything other
        than a stored image.
        """
        try:
            parent = int(property_id)
        except (TypeError, ValueError):
            parent = 0
        if parent <= 0:
            raise TransportError(
                400,
                "Property ID is required for image upload",
                errors=["Property ID is required"],
            )

        verdict = await self.moderation.check_image(file, parent, validate_only=False)
        data = verdict.data or {}
        url = data.get("image_url") or data.get("url")

        if verdict.status in ("success", "pending_review") and url:
            image_id = data.get("image_id")
            return UploadedImage(
                url=url,
                image_id=str(image_id) if image_id is not None else None,
                pending=verdict.status == "pending_review",
            )

        if verdict.status == "error":
            raise TransportError(
                verdict.http_status if verdict.http_status >= 400 else 400,
                verdict.message or describe_rejection(verdict),
                payload=verdict.model_dump(),
            )
        raise TransportError(
            verdict.http_status if verdict.http_status >= 400 else 500,
            verdict.message or "Upload failed",
            payload=verdict.model_dump(),
        )


def _raise_if_unsuccessful(body: Any) -> None:
    """2xx bodies can still report ``success: false``."""
    if isinstance(body, dict) and body.get("success") is False:
        data = body.get("data") if isinstance(body.get("data"), dict) else {}
        raise TransportError(
            200,
            body.get("message") or "Request failed",
            errors=data.get("errors"),
            payload=body,
        )
