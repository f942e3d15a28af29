"""Single-field and cross-field checks used by the step validator.

Each check returns a user-facing error message, or None when the value passes.
"""

from __future__ import annotations

import math
import re
from typing import Any

from listing_desk.domain.media import MediaFile

MOBILE_PATTERN = re.compile(r"(\+91[\s-]?)?[6-9]\d{9}")
EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
AREA_UNIT_PATTERN = re.compile(r"\s*sq\.ft\s*", re.IGNORECASE)

DESCRIPTION_MIN_CHARS = 100
DESCRIPTION_MAX_CHARS = 1000
MAX_DEPOSIT_MONTHS = 12

IMAGE_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png", "image/webp"})
IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".webp"})
VIDEO_TYPES = frozenset({"video/mp4", "video/webm", "video/quicktime", "video/x-m4v", "video/ogg"})
BROCHURE_TYPES = frozenset({"application/pdf"})


def to_number(value: Any) -> float | None:
    """Parse a form value as a number. Blank, malformed or non-finite input gives None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    return number if math.isfinite(number) else None


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def _mb(num_bytes: int) -> str:
    return f"{num_bytes / (1024 * 1024):g}MB"


# ── Text ──────────────────────────────────────────────────────────────────


def validate_text_length(value: Any, min_len: int, max_len: int, label: str) -> str | None:
    text = "" if value is None else str(value).strip()
    if not text:
        return f"{label} is required"
    if len(text) < min_len:
        return f"{label} must be at least {min_len} characters"
    if len(text) > max_len:
        return f"{label} cannot exceed {max_len} characters"
    return None


def validate_description(value: Any) -> str | None:
    """Listing description policy.

    At least 100 characters (trimmed), at most 1000, and no phone numbers or
    email addresses. When several rules fail the most severe one is reported:
    length cap, then email, then phone, then minimum length.
    """
    if is_blank(value):
        return "Description is required"
    text = str(value)
    if len(text) > DESCRIPTION_MAX_CHARS:
        return f"Description cannot exceed {DESCRIPTION_MAX_CHARS} characters."
    if EMAIL_PATTERN.search(text):
        return "Description cannot contain email addresses. Please remove any email addresses."
    if MOBILE_PATTERN.search(text):
        return "Description cannot contain mobile numbers. Please remove any phone numbers."
    count = len(text.strip())
    if count < DESCRIPTION_MIN_CHARS:
        return (
            f"Description must contain at least {DESCRIPTION_MIN_CHARS} characters. "
            f"Currently: {count} characters."
        )
    return None


def strip_area_unit(value: str) -> str:
    """'1200 - 1800 sq.ft' -> '1200 - 1800'."""
    return AREA_UNIT_PATTERN.sub("", value or "").strip()


# ── Numbers ───────────────────────────────────────────────────────────────


def validate_area(value: Any, label: str = "Built-up area") -> str | None:
    if is_blank(value):
        return f"{label} is required"
    number = to_number(value)
    if number is None or number <= 0:
        return f"{label} must be a positive number"
    return None


def validate_count(value: Any, low: int, high: int, label: str) -> str | None:
    """Whole-number range check, inclusive on both ends."""
    number = to_number(value)
    if number is None or number != int(number) or not low <= number <= high:
        return f"{label} must be between {low} and {high}"
    return None


def validate_latitude(value: Any) -> str | None:
    number = to_number(value)
    if number is None or not -90 <= number <= 90:
        return "Latitude must be between -90 and 90"
    return None


def validate_longitude(value: Any) -> str | None:
    number = to_number(value)
    if number is None or not -180 <= number <= 180:
        return "Longitude must be between -180 and 180"
    return None


def validate_carpet_area(carpet_area: Any, built_up_area: Any) -> str | None:
    carpet = to_number(carpet_area)
    if carpet is None or carpet <= 0:
        return "Carpet area must be a positive number"
    built_up = to_number(built_up_area)
    if built_up is not None and carpet > built_up:
        return "Carpet area cannot be greater than built-up area"
    return None


def validate_floors(floor: Any, total_floors: Any) -> str | None:
    floor_no = to_number(floor)
    total = to_number(total_floors)
    if floor_no is None or floor_no < 0:
        return "Floor number must be 0 or more"
    if total is None or total < 1:
        return "Total floors must be at least 1"
    if floor_no > total:
        return "Floor number cannot be greater than total floors"
    return None


def validate_price(value: Any, listing_status: str | None = "sale") -> str | None:
    label = "Monthly rent" if listing_status == "rent" else "Price"
    if is_blank(value):
        return f"{label} is required"
    number = to_number(value)
    if number is None or number <= 0:
        return f"{label} must be a positive number"
    return None


def validate_deposit(deposit: Any, monthly_rent: Any) -> str | None:
    """Security deposit must be between 0 and 12 months of rent."""
    amount = to_number(deposit)
    if amount is None or amount < 0:
        return "Deposit must be a positive number"
    rent = to_number(monthly_rent)
    if rent is not None and rent > 0 and amount > rent * MAX_DEPOSIT_MONTHS:
        return f"Deposit cannot exceed {MAX_DEPOSIT_MONTHS} months of rent"
    return None


def validate_non_negative(value: Any, label: str) -> str | None:
    number = to_number(value)
    if number is None or number < 0:
        return f"{label} must be a positive number"
    return None


# ── Files ─────────────────────────────────────────────────────────────────


def check_image_file(file: MediaFile, max_bytes: int) -> str | None:
    """Local type/size gate applied before an image is sent for moderation.

    Passes when either the MIME type or the extension is an accepted image
    type, as the moderation endpoint does.
    """
    name = file.filename.lower()
    ext_ok = any(name.endswith(ext) for ext in IMAGE_EXTENSIONS)
    if file.content_type.lower() not in IMAGE_TYPES and not ext_ok:
        return "Invalid file type. Please upload JPG, PNG, or WebP images."
    if file.size > max_bytes:
        return f"Image must be <= {_mb(max_bytes)}"
    return None


def check_video_file(file: MediaFile, max_bytes: int) -> str | None:
    if file.content_type.lower() not in VIDEO_TYPES:
        return "Unsupported video format"
    if file.size > max_bytes:
        return f"Video must be <= {_mb(max_bytes)}"
    return None


def check_brochure_file(file: MediaFile, max_bytes: int) -> str | None:
    if file.content_type.lower() not in BROCHURE_TYPES:
        return "Only PDF files are allowed"
    if file.size > max_bytes:
        return f"PDF must be <= {_mb(max_bytes)}"
    return None
