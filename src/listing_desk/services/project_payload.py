"""Builds create/update payloads from form state, plus Indian price helpers."""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping

from listing_desk.services.field_rules import OTHER_BANK

LAKH = 100_000
CRORE = 10_000_000

_NON_NUMERIC = re.compile(r"[^\d.]")

# Form keys that carry local file handles rather than data
_FILE_FIELDS = ("video", "brochure", "masterPlan", "floorPlans", "coverImage")


def parse_price_text(text: Any) -> float:
    """'₹45 Lakhs onwards' -> 4500000.0, '1.2 Crore' -> 12000000.0.

    Unparseable input gives 0.
    """
    if text is None:
        return 0.0
    raw = str(text)
    digits = _NON_NUMERIC.sub("", raw)
    try:
        value = float(digits) if digits else 0.0
    except ValueError:
        # e.g. "1.2.3" after stripping
        return 0.0
    lowered = raw.lower()
    if "lakh" in lowered or "lac" in lowered:
        value *= LAKH
    elif "crore" in lowered or "cr" in lowered:
        value *= CRORE
    return value


def format_price_in_words(price: Any) -> str:
    """Render a price in lakh/crore words, e.g. '₹1.20 Crore'. Empty for zero."""
    if price is None or price == "":
        return ""
    num = float(price) if isinstance(price, (int, float)) else parse_price_text(price)
    if num <= 0:
        return ""
    if num >= CRORE:
        return f"₹{num / CRORE:.2f} Crore"
    if num >= LAKH:
        return f"₹{num / LAKH:.2f} Lakh"
    if num >= 1000:
        return f"₹{num / 1000:.2f} Thousand"
    return f"₹{num:g}"


def merge_approved_banks(selected: Iterable[str] | None, other_names: str | None) -> list[str]:
    """Selected banks without the 'Other' marker, plus comma-separated custom names."""
    banks = [b for b in (selected or []) if b != OTHER_BANK]
    if other_names and other_names.strip():
        banks.extend(name.strip() for name in other_names.split(",") if name.strip())
    return banks


def _or_none(value: Any) -> Any:
    return value if value not in ("", None, []) else None


def build_property_payload(
    form: Mapping[str, Any],
    images: Iterable[str] = (),
) -> dict[str, Any]:
    """Listing payload with *images* in place of the form's local previews."""
    payload = {k: v for k, v in form.items() if k not in _FILE_FIELDS}
    for key in ("video", "brochure"):
        slot = form.get(key)
        if isinstance(slot, str) and slot:
            payload[key] = slot
        elif isinstance(slot, Mapping) and slot.get("url"):
            payload[key] = slot["url"]
    payload["images"] = list(images)
    return payload


def build_project_payload(
    form: Mapping[str, Any],
    builder_name: str = "",
    images: Iterable[str] = (),
) -> dict[str, Any]:
    """Upcoming-project payload. Project-only fields nest under ``upcoming_project_data``."""
    return {
        "title": form.get("projectName"),
        "property_type": form.get("projectType"),
        # Upcoming projects are always for sale
        "status": "sale",
        "location": form.get("location") or form.get("area") or "",
        "latitude": _or_none(form.get("latitude")),
        "longitude": _or_none(form.get("longitude")),
        "state": _or_none(form.get("state")),
        "additional_address": _or_none(form.get("fullAddress")),
        "description": form.get("description"),
        "price": parse_price_text(form.get("startingPrice")),
        "area": 0,
        "project_type": "upcoming",
        "upcoming_project_data": {
            "builderName": form.get("builderName") or builder_name,
            "projectStatus": form.get("projectStatus"),
            "reraNumber": _or_none(form.get("reraNumber")),
            "configurations": list(form.get("configurations") or []),
            "carpetAreaRange": _or_none(form.get("carpetAreaRange")),
            "numberOfTowers": _or_none(form.get("numberOfTowers")),
            "totalUnits": _or_none(form.get("totalUnits")),
            "floorsCount": _or_none(form.get("floorsCount")),
            "pricePerSqft": _or_none(form.get("pricePerSqft")),
            "bookingAmount": _or_none(form.get("bookingAmount")),
            "expectedLaunchDate": _or_none(form.get("expectedLaunchDate")),
            "expectedPossessionDate": _or_none(form.get("expectedPossessionDate")),
            "reraStatus": _or_none(form.get("reraStatus")),
            "landOwnershipType": _or_none(form.get("landOwnershipType")),
            "bankApproved": _or_none(form.get("bankApproved")),
            "approvedBanks": merge_approved_banks(
                form.get("approvedBanks"), form.get("otherBankName")
            ),
            "salesNumber": _or_none(form.get("salesNumber")),
            "emailId": _or_none(form.get("emailId")),
            "mobileNumber": _or_none(form.get("mobileNumber")),
            "whatsappNumber": _or_none(form.get("whatsappNumber")),
            "alternativeNumber": _or_none(form.get("alternativeNumber")),
            "projectHighlights": _or_none(form.get("projectHighlights")),
            "usp": _or_none(form.get("usp")),
            "pincode": _or_none(form.get("pincode")),
            "mapLink": _or_none(form.get("mapLink")),
        },
        "images": list(images),
        "amenities": list(form.get("amenities") or []),
    }
