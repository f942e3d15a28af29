"""Per-step validation for the property and project submission forms.

``StepValidator.validate`` is a pure function of (step, form state, media
collection). It returns a field -> message map that is empty on success and
never mutates its inputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Mapping

from listing_desk.domain.enums import FormKind, ListingStatus, MediaState
from listing_desk.domain.media import MediaCollection
from listing_desk.services import field_validators as fv
from listing_desk.services.field_rules import DEFAULT_RULES, PLOT_LAND, FieldRules

ErrorMap = dict[str, str]
Form = Mapping[str, object]
StepCheck = Callable[[Form, MediaCollection | None, FieldRules], ErrorMap]


@dataclass(frozen=True)
class StepDefinition:
    id: int
    label: str
    check: StepCheck
    # Form key that holds this step's media, if it gates on moderation
    media_field: str | None = None

    @property
    def is_media_step(self) -> bool:
        return self.media_field is not None


def _no_checks(form: Form, media: MediaCollection | None, rules: FieldRules) -> ErrorMap:
    return {}


def _put(errors: ErrorMap, field: str, message: str | None) -> None:
    if message:
        errors[field] = message


# ---------------------------------------------------------------------------
# Media gate (shared by both forms)
# ---------------------------------------------------------------------------


def media_gate(
    media: MediaCollection | None,
    fallback_count: int = 0,
    empty_message: str = "Please upload at least one image",
) -> str | None:
    """Why the media step cannot be left yet, or None.

    Blocks while any item is pending/checking, while any item is rejected,
    and until at least one item is approved. ``pending_review`` items neither
    block nor count as approved.
    """
    if media is None:
        return empty_message if fallback_count == 0 else None
    if len(media) == 0:
        return empty_message
    if media.count(MediaState.PENDING, MediaState.CHECKING):
        return "Please wait for all images to be validated"
    rejected = media.count(MediaState.REJECTED)
    if rejected:
        return (
            f"Please remove {rejected} rejected image(s) and upload valid property images only"
        )
    if not media.approved():
        return "At least one image must be approved"
    return None


# ---------------------------------------------------------------------------
# Property form (5 steps)
# ---------------------------------------------------------------------------


def _property_basic_info(form: Form, media: MediaCollection | None, rules: FieldRules) -> ErrorMap:
    errors: ErrorMap = {}
    _put(errors, "title", fv.validate_text_length(form.get("title"), 1, 200, "Property title"))
    if fv.is_blank(form.get("propertyType")):
        errors["propertyType"] = "Select property type"
    return errors


def _property_details(form: Form, media: MediaCollection | None, rules: FieldRules) -> ErrorMap:
    errors: ErrorMap = {}
    property_type = form.get("propertyType")
    config = rules.field_config(property_type)

    location = str(form.get("location") or "").strip()
    if not location:
        errors["location"] = "Location is required"
    elif len(location) < 5:
        errors["location"] = "Location must be at least 5 characters"

    area_label = "Plot area" if property_type == PLOT_LAND else "Built-up area"
    _put(errors, "area", fv.validate_area(form.get("area"), area_label))

    if not fv.is_blank(form.get("latitude")):
        _put(errors, "latitude", fv.validate_latitude(form.get("latitude")))
    if not fv.is_blank(form.get("longitude")):
        _put(errors, "longitude", fv.validate_longitude(form.get("longitude")))

    if config.show_carpet_area and not fv.is_blank(form.get("carpetArea")) and not fv.is_blank(form.get("area")):
        _put(errors, "carpetArea", fv.validate_carpet_area(form.get("carpetArea"), form.get("area")))

    if config.show_floor and not fv.is_blank(form.get("floor")) and not fv.is_blank(form.get("totalFloors")):
        _put(errors, "floor", fv.validate_floors(form.get("floor"), form.get("totalFloors")))

    bedrooms = form.get("bedrooms")
    if config.bedrooms_required and fv.is_blank(bedrooms):
        errors["bedrooms"] = "Bedrooms is required"
    elif not fv.is_blank(bedrooms):
        _put(errors, "bedrooms", fv.validate_count(bedrooms, 0, 10, "Bedrooms"))

    bathrooms = form.get("bathrooms")
    if config.bathrooms_required and fv.is_blank(bathrooms):
        errors["bathrooms"] = "Bathrooms is required"
    elif not fv.is_blank(bathrooms):
        _put(errors, "bathrooms", fv.validate_count(bathrooms, 1, 10, "Bathrooms"))

    if fv.is_blank(form.get("state")):
        errors["state"] = "State is required"

    if config.show_facing and fv.is_blank(form.get("facing")):
        errors["facing"] = "Facing is required"
    return errors


def _property_amenities(form: Form, media: MediaCollection | None, rules: FieldRules) -> ErrorMap:
    errors: ErrorMap = {}
    _put(errors, "description", fv.validate_description(form.get("description")))
    return errors


def _property_photos(form: Form, media: MediaCollection | None, rules: FieldRules) -> ErrorMap:
    errors: ErrorMap = {}
    _put(errors, "images", media_gate(media, len(form.get("images") or ())))
    return errors


def _property_pricing(form: Form, media: MediaCollection | None, rules: FieldRules) -> ErrorMap:
    errors: ErrorMap = {}
    status = form.get("status") or ListingStatus.SALE.value
    _put(errors, "price", fv.validate_price(form.get("price"), status))

    if (
        status == ListingStatus.RENT.value
        and not fv.is_blank(form.get("depositAmount"))
        and not fv.is_blank(form.get("price"))
    ):
        _put(errors, "depositAmount", fv.validate_deposit(form.get("depositAmount"), form.get("price")))

    if not fv.is_blank(form.get("maintenanceCharges")):
        _put(
            errors,
            "maintenanceCharges",
            fv.validate_non_negative(form.get("maintenanceCharges"), "Maintenance charges"),
        )
    return errors


PROPERTY_STEPS: tuple[StepDefinition, ...] = (
    StepDefinition(1, "Basic Info", _property_basic_info),
    StepDefinition(2, "Property Details", _property_details),
    StepDefinition(3, "Amenities", _property_amenities),
    StepDefinition(4, "Photos", _property_photos, media_field="images"),
    StepDefinition(5, "Pricing", _property_pricing),
)


# ---------------------------------------------------------------------------
# Upcoming project form (10 steps)
# ---------------------------------------------------------------------------


def _required(errors: ErrorMap, form: Form, field: str, message: str) -> None:
    if fv.is_blank(form.get(field)):
        errors[field] = message


def _project_basic_info(form: Form, media: MediaCollection | None, rules: FieldRules) -> ErrorMap:
    errors: ErrorMap = {}
    _required(errors, form, "projectName", "Project name is required")
    _required(errors, form, "projectType", "Project type is required")
    _required(errors, form, "projectStatus", "Project status is required")
    _required(errors, form, "description", "Project description is required")
    return errors


def _project_location(form: Form, media: MediaCollection | None, rules: FieldRules) -> ErrorMap:
    if fv.is_blank(form.get("location")) and fv.is_blank(form.get("area")):
        return {"location": "Location is required"}
    return {}


def _project_configuration(form: Form, media: MediaCollection | None, rules: FieldRules) -> ErrorMap:
    errors: ErrorMap = {}
    if not form.get("configurations"):
        errors["configurations"] = "At least one configuration is required"
    _required(errors, form, "carpetAreaRange", "Carpet area range is required")
    return errors


def _project_pricing(form: Form, media: MediaCollection | None, rules: FieldRules) -> ErrorMap:
    errors: ErrorMap = {}
    _required(errors, form, "startingPrice", "Starting price is required")
    return errors


def _project_media(form: Form, media: MediaCollection | None, rules: FieldRules) -> ErrorMap:
    errors: ErrorMap = {}
    _put(
        errors,
        "projectImages",
        media_gate(
            media,
            len(form.get("projectImages") or ()),
            empty_message="At least one project image is required",
        ),
    )
    return errors


def _project_contact(form: Form, media: MediaCollection | None, rules: FieldRules) -> ErrorMap:
    errors: ErrorMap = {}
    _required(errors, form, "salesNumber", "Sales number is required")
    email = str(form.get("emailId") or "").strip()
    if not email:
        errors["emailId"] = "Email ID is required"
    elif not fv.EMAIL_PATTERN.fullmatch(email):
        errors["emailId"] = "Please enter a valid email address"
    return errors


PROJECT_STEPS: tuple[StepDefinition, ...] = (
    StepDefinition(1, "Basic Info", _project_basic_info),
    StepDefinition(2, "Location", _project_location),
    StepDefinition(3, "Configuration", _project_configuration),
    StepDefinition(4, "Pricing & Timeline", _project_pricing),
    StepDefinition(5, "Amenities", _no_checks),
    StepDefinition(6, "Legal & Approval", _no_checks),
    StepDefinition(7, "Media", _project_media, media_field="projectImages"),
    StepDefinition(8, "Contact & Sales", _project_contact),
    StepDefinition(9, "Marketing", _no_checks),
    StepDefinition(10, "Preview", _no_checks),
)

STEPS_BY_KIND: dict[FormKind, tuple[StepDefinition, ...]] = {
    FormKind.PROPERTY: PROPERTY_STEPS,
    FormKind.PROJECT: PROJECT_STEPS,
}


class StepValidator:
    """Validates one step of a form against injected field rules."""

    def __init__(
        self,
        kind: FormKind = FormKind.PROPERTY,
        rules: FieldRules = DEFAULT_RULES,
        steps: tuple[StepDefinition, ...] | None = None,
    ) -> None:
        self.kind = kind
        self.rules = rules
        self.steps = steps if steps is not None else STEPS_BY_KIND[kind]

    @property
    def first_step(self) -> int:
        return self.steps[0].id

    @property
    def last_step(self) -> int:
        return self.steps[-1].id

    @property
    def media_step(self) -> StepDefinition | None:
        return next((s for s in self.steps if s.is_media_step), None)

    def step(self, step_id: int) -> StepDefinition:
        for definition in self.steps:
            if definition.id == step_id:
                return definition
        raise KeyError(f"Unknown step {step_id} for {self.kind.value} form")

    def validate(
        self,
        step_id: int,
        form: Form,
        media: MediaCollection | None = None,
    ) -> ErrorMap:
        return self.step(step_id).check(form, media, self.rules)
