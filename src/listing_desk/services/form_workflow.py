"""Multi-step form workflow: field edits, step navigation and the restricted edit window.

Navigation rules:
- ``advance`` re-validates the current step and moves forward one step.
- ``back`` is always allowed (clamped at the first step).
- ``jump_to`` may only target a completed (earlier) step; forward jumps
  must go through ``advance`` so every step is validated.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping

from listing_desk.app.config import Settings, get_settings
from listing_desk.domain.enums import FormKind, MediaKind, MediaState
from listing_desk.domain.errors import (
    InvalidStepTransitionError,
    MediaFileError,
    RestrictedFieldError,
    StepValidationError,
)
from listing_desk.domain.media import MediaCollection, MediaFile, MediaItem, PreviewRegistry
from listing_desk.services.field_rules import DEFAULT_RULES, FieldRules, apply_property_type_change
from listing_desk.services.field_validators import (
    check_brochure_file,
    check_image_file,
    check_video_file,
    strip_area_unit,
)
from listing_desk.services.step_validator import ErrorMap, StepValidator

logger = logging.getLogger(__name__)

SINGLE_FILE_SLOTS: dict[str, MediaKind] = {
    "video": MediaKind.VIDEO,
    "brochure": MediaKind.BROCHURE,
    "masterPlan": MediaKind.IMAGE,
}

# Fields that stay editable once a listing is past the edit window
RESTRICTED_EDITABLE_FIELDS: frozenset[str] = frozenset({
    "title",
    "price",
    "priceNegotiable",
    "maintenanceCharges",
    "depositAmount",
})

PROPERTY_DEFAULTS: dict[str, Any] = {
    "title": "",
    "status": "sale",
    "propertyType": "",
    "location": "",
    "latitude": "",
    "longitude": "",
    "state": "",
    "additionalAddress": "",
    "bedrooms": "",
    "bathrooms": "",
    "balconies": "",
    "area": "",
    "carpetArea": "",
    "floor": "",
    "totalFloors": "",
    "facing": "",
    "age": "",
    "furnishing": "",
    "amenities": [],
    "description": "",
    "images": [],
    "video": None,
    "brochure": None,
    "price": "",
    "priceNegotiable": False,
    "maintenanceCharges": "",
    "depositAmount": "",
}

PROJECT_DEFAULTS: dict[str, Any] = {
    "projectName": "",
    "builderName": "",
    "projectType": "",
    "projectStatus": "UNDER CONSTRUCTION",
    "reraNumber": "",
    "description": "",
    "city": "",
    "area": "",
    "location": "",
    "fullAddress": "",
    "latitude": "",
    "longitude": "",
    "state": "",
    "pincode": "",
    "mapLink": "",
    "configurations": [],
    "carpetAreaRange": "",
    "numberOfTowers": "",
    "totalUnits": "",
    "floorsCount": "",
    "startingPrice": "",
    "pricePerSqft": "",
    "bookingAmount": "",
    "expectedLaunchDate": "",
    "expectedPossessionDate": "",
    "amenities": [],
    "reraStatus": "",
    "landOwnershipType": "",
    "bankApproved": "",
    "approvedBanks": [],
    "otherBankName": "",
    "projectImages": [],
    "floorPlans": [],
    "brochure": None,
    "masterPlan": None,
    "salesNumber": "",
    "emailId": "",
    "mobileNumber": "",
    "whatsappNumber": "",
    "alternativeNumber": "",
    "projectHighlights": "",
    "usp": "",
}


class FormWorkflow:
    """State of one open submission form.

    The form state is replaced on every edit, never mutated in place, so a
    snapshot handed to the validator or the submission pipeline stays stable.
    """

    def __init__(
        self,
        kind: FormKind = FormKind.PROPERTY,
        *,
        initial: Mapping[str, Any] | None = None,
        listing_id: int | str | None = None,
        created_at: datetime | None = None,
        rules: FieldRules = DEFAULT_RULES,
        settings: Settings | None = None,
        previews: PreviewRegistry | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.kind = kind
        self.settings = settings or get_settings()
        self.rules = rules
        self.validator = StepValidator(kind, rules)
        self.listing_id = listing_id
        self.created_at = created_at
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        defaults = PROPERTY_DEFAULTS if kind == FormKind.PROPERTY else PROJECT_DEFAULTS
        self._form: dict[str, Any] = {**defaults, **(initial or {})}
        self.errors: ErrorMap = {}
        self.current_step: int = self.validator.first_step

        limit = (
            self.settings.property_image_limit
            if kind == FormKind.PROPERTY
            else self.settings.project_image_limit
        )
        media_kwargs = {"limit": limit}
        if previews is not None:
            media_kwargs["previews"] = previews
        self.media = MediaCollection(**media_kwargs)
        self.attachments: dict[str, MediaCollection] = {}

        media_field = self._media_field
        if self.is_edit and media_field and self._form.get(media_field):
            self.media.load_existing(self._form[media_field])

    # ------------------------------------------------------------------
    # Form state
    # ------------------------------------------------------------------

    @property
    def form(self) -> dict[str, Any]:
        """A copy of the current form state."""
        return dict(self._form)

    @property
    def is_edit(self) -> bool:
        return self.listing_id is not None

    @property
    def is_restricted(self) -> bool:
        """True for edits of listings older than the edit window."""
        if not self.is_edit or self.created_at is None:
            return False
        created = self.created_at
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        window = timedelta(hours=self.settings.restricted_edit_after_hours)
        return self._clock() - created >= window

    @property
    def _media_field(self) -> str | None:
        step = self.validator.media_step
        return step.media_field if step else None

    def set_field(self, field: str, value: Any) -> dict[str, Any]:
        """Apply one edit and clear that field's error."""
        if self.is_restricted and field not in RESTRICTED_EDITABLE_FIELDS:
            raise RestrictedFieldError(field)

        if field == "propertyType" and self.kind == FormKind.PROPERTY:
            self._form = apply_property_type_change(self._form, value, self.rules)
        elif field == "carpetAreaRange" and isinstance(value, str):
            self._form = {**self._form, field: strip_area_unit(value)}
        else:
            self._form = {**self._form, field: value}

        if self.errors.get(field):
            self.errors = {k: v for k, v in self.errors.items() if k != field}
        return self.form

    def toggle_amenity(self, amenity_id: str) -> list[str]:
        selected = list(self._form.get("amenities") or [])
        if amenity_id in selected:
            selected = [a for a in selected if a != amenity_id]
        else:
            selected.append(amenity_id)
        self.set_field("amenities", selected)
        return selected

    def toggle_configuration(self, configuration: str) -> list[str]:
        selected = list(self._form.get("configurations") or [])
        if configuration in selected:
            selected = [c for c in selected if c != configuration]
        else:
            selected.append(configuration)
        self.set_field("configurations", selected)
        return selected

    # ------------------------------------------------------------------
    # Single-file slots (video, brochure, master plan)
    # ------------------------------------------------------------------

    def attach_file(self, field: str, file: MediaFile) -> MediaItem:
        """Put *file* in a one-item slot, replacing whatever was there."""
        if field not in SINGLE_FILE_SLOTS:
            raise KeyError(f"{field} is not a file slot")
        if self.is_restricted and field not in RESTRICTED_EDITABLE_FIELDS:
            raise RestrictedFieldError(field)

        problem = self._check_slot_file(SINGLE_FILE_SLOTS[field], file)
        if problem:
            self.errors = {**self.errors, field: problem}
            raise MediaFileError(problem)

        slot = self.attachments.get(field)
        if slot is None:
            slot = MediaCollection(limit=1, previews=self.media.previews)
            self.attachments[field] = slot
        slot.clear()
        (item,) = slot.add([file])
        # Slots are checked locally only, never moderated
        item = slot.update(item.key, state=MediaState.APPROVED)
        self._form = {**self._form, field: {"name": file.filename, "size": file.size}}
        if self.errors.get(field):
            self.errors = {k: v for k, v in self.errors.items() if k != field}
        return item

    def detach_file(self, field: str) -> None:
        slot = self.attachments.pop(field, None)
        if slot is not None:
            slot.clear()
        self._form = {**self._form, field: None}

    def _check_slot_file(self, kind: MediaKind, file: MediaFile) -> str | None:
        if kind == MediaKind.VIDEO:
            return check_video_file(file, self.settings.max_video_bytes)
        if kind == MediaKind.BROCHURE:
            return check_brochure_file(file, self.settings.max_brochure_bytes)
        return check_image_file(file, self.settings.max_image_bytes)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def validate_current(self) -> ErrorMap:
        self.errors = self.validator.validate(self.current_step, self._form, self._media_for_step())
        return dict(self.errors)

    def can_advance(self) -> bool:
        return not self.validator.validate(self.current_step, self._form, self._media_for_step())

    def advance(self) -> int:
        """Validate the current step and move to the next one."""
        errors = self.validate_current()
        if errors:
            raise StepValidationError(self.current_step, errors)
        if self.current_step >= self.validator.last_step:
            raise InvalidStepTransitionError(
                self.current_step, self.current_step + 1, "already on the last step"
            )
        self.current_step += 1
        logger.debug("%s form advanced to step %d", self.kind.value, self.current_step)
        return self.current_step

    def back(self) -> int:
        self.current_step = max(self.current_step - 1, self.validator.first_step)
        return self.current_step

    def jump_to(self, step_id: int) -> int:
        self.validator.step(step_id)
        if step_id > self.current_step:
            raise InvalidStepTransitionError(
                self.current_step, step_id, "complete the current step first"
            )
        self.current_step = step_id
        return self.current_step

    def is_step_completed(self, step_id: int) -> bool:
        return self.current_step > step_id

    def on_media_step(self) -> bool:
        return self.validator.step(self.current_step).is_media_step

    def try_auto_advance(self) -> bool:
        """Advance past the media step if it is now valid. Never raises."""
        if not self.on_media_step():
            return False
        try:
            self.advance()
        except (StepValidationError, InvalidStepTransitionError) as exc:
            logger.debug("Auto-advance skipped: %s", exc)
            return False
        return True

    def close(self) -> None:
        """Release every preview handle held by the form."""
        self.media.clear()
        for slot in self.attachments.values():
            slot.clear()
        self.attachments = {}

    def _media_for_step(self) -> MediaCollection | None:
        if not self.validator.step(self.current_step).is_media_step:
            return None
        return self.media
