"""Inquiry endpoints of the listing backend (the relational side of the inbox)."""

from __future__ import annotations

import logging
from typing import Any

from listing_desk.domain.schemas import BuyerProfile, Inquiry
from listing_desk.services.api_client import ApiClient, unwrap

logger = logging.getLogger(__name__)


class InquiryApi:
    """List inquiries, update their status and look up buyers."""

    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def list_inquiries(self, **filters: Any) -> list[Inquiry]:
        """Fetch inquiries. Keyword filters are passed through as query parameters."""
        params = {k: v for k, v in filters.items() if v is not None}
        body = await self.api.request("GET", self.api.settings.inquiries_path, params=params)
        rows = unwrap(body, "inquiries")
        if not isinstance(rows, list):
            logger.warning("Inquiry list response had no inquiries array")
            return []
        return [Inquiry.model_validate(row) for row in rows if isinstance(row, dict)]

    async def update_status(self, inquiry_id: int | str, status: str) -> dict[str, Any]:
        body = await self.api.request(
            "PUT",
            self.api.settings.update_inquiry_path,
            params={"id": inquiry_id},
            json_body={"status": status},
        )
        return body if isinstance(body, dict) else {}

    async def get_buyer(self, buyer_id: int | str) -> BuyerProfile | None:
        """Return the buyer's display profile, or None when the backend has none."""
        body = await self.api.request(
            "GET", self.api.settings.get_buyer_path, params={"id": buyer_id}
        )
        if not isinstance(body, dict) or not body.get("success"):
            return None
        buyer = unwrap(body, "buyer")
        if not isinstance(buyer, dict):
            return None
        profile = BuyerProfile.model_validate(buyer)
        if not profile.name:
            profile = profile.model_copy(update={"name": "Buyer"})
        return profile
