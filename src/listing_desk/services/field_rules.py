"""Property-type field visibility and amenity tables.

Pure-function module, no I/O.

Each property type belongs to a (category, sub_category) pair which selects a
field-visibility record and an allowed-amenity set. Farm House does not fit
that generalization and has its own entries. All tables are plain data so a
deployment can swap them via ``FieldRules``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

STUDIO = "Studio Apartment"
FARM_HOUSE = "Farm House"
PLOT_LAND = "Plot / Land"


@dataclass(frozen=True)
class PropertyType:
    value: str
    category: str
    sub_category: str

    @property
    def config_key(self) -> str:
        return f"{self.category}_{self.sub_category}"


@dataclass(frozen=True)
class FieldConfig:
    """Which detail fields a property type shows and requires."""

    show_bedrooms: bool = True
    show_bathrooms: bool = True
    show_balconies: bool = True
    show_floor: bool = True
    show_total_floors: bool = True
    show_facing: bool = True
    show_furnishing: bool = True
    show_age: bool = True
    show_carpet_area: bool = True
    bedrooms_required: bool = True
    bathrooms_required: bool = True


# ── Catalogue ─────────────────────────────────────────────────────────────

PROPERTY_TYPES: tuple[PropertyType, ...] = (
    PropertyType("Apartment", "residential", "standard"),
    PropertyType("Flat", "residential", "standard"),
    PropertyType("Villa", "residential", "independent"),
    PropertyType("Independent House", "residential", "independent"),
    PropertyType("Row House", "residential", "standard"),
    PropertyType("Penthouse", "residential", "luxury"),
    PropertyType(STUDIO, "residential", "studio"),
    PropertyType(FARM_HOUSE, "residential", "independent"),
    PropertyType(PLOT_LAND, "land", "plot"),
    PropertyType("Commercial Office", "commercial", "office"),
    PropertyType("Commercial Shop", "commercial", "shop"),
    PropertyType("PG / Hostel", "pg", "accommodation"),
)

# ── Field visibility, keyed by category_subcategory ───────────────────────

DEFAULT_FIELD_KEY = "residential_standard"

PROPERTY_TYPE_FIELDS: dict[str, FieldConfig] = {
    "residential_standard": FieldConfig(),
    "residential_independent": FieldConfig(show_floor=False),
    "residential_studio": FieldConfig(show_bedrooms=False, bedrooms_required=False),
    "residential_farmhouse": FieldConfig(show_balconies=False, show_floor=False),
    "commercial_office": FieldConfig(
        show_bedrooms=False,
        show_balconies=False,
        bedrooms_required=False,
        bathrooms_required=False,
    ),
    "commercial_shop": FieldConfig(
        show_bedrooms=False,
        show_balconies=False,
        show_furnishing=False,
        bedrooms_required=False,
        bathrooms_required=False,
    ),
    "land_plot": FieldConfig(
        show_bedrooms=False,
        show_bathrooms=False,
        show_balconies=False,
        show_floor=False,
        show_total_floors=False,
        show_furnishing=False,
        show_age=False,
        show_carpet_area=False,
        bedrooms_required=False,
        bathrooms_required=False,
    ),
    "pg_accommodation": FieldConfig(show_balconies=False),
}

# ── Amenities ─────────────────────────────────────────────────────────────

AMENITIES: dict[str, str] = {
    "parking": "Parking",
    "lift": "Lift",
    "security": "24x7 Security",
    "power_backup": "Power Backup",
    "gym": "Gym",
    "swimming_pool": "Swimming Pool",
    "garden": "Garden",
    "clubhouse": "Club House",
    "playground": "Children's Play Area",
    "cctv": "CCTV",
    "intercom": "Intercom",
    "fire_safety": "Fire Safety",
    "water_supply": "24x7 Water",
    "gas_pipeline": "Gas Pipeline",
    "wifi": "WiFi",
    "ac": "Air Conditioning",
}

PROPERTY_TYPE_AMENITIES: dict[str, frozenset[str]] = {
    "residential": frozenset(AMENITIES),
    # Same as residential minus lift and intercom
    "residential_farmhouse": frozenset(AMENITIES) - {"lift", "intercom"},
    "commercial_office": frozenset({
        "parking", "lift", "security", "power_backup", "cctv",
        "fire_safety", "water_supply", "wifi", "ac", "intercom",
    }),
    "commercial_shop": frozenset({
        "parking", "security", "power_backup", "cctv",
        "fire_safety", "water_supply", "wifi", "ac",
    }),
    "land_plot": frozenset({"security", "water_supply", "cctv"}),
    "pg_accommodation": frozenset({
        "parking", "security", "power_backup", "cctv",
        "fire_safety", "water_supply", "wifi", "ac", "intercom",
    }),
}

FURNISHING_OPTIONS = ("Unfurnished", "Semi-Furnished", "Fully-Furnished")
FACING_OPTIONS = (
    "North", "South", "East", "West",
    "North-East", "North-West", "South-East", "South-West",
)
AGE_OPTIONS = ("New Construction", "Less than 1 Year", "1-5 Years", "5-10 Years", "10+ Years")

# ── Upcoming-project option tables ────────────────────────────────────────

PROJECT_TYPES = ("Apartment", "Villa", "Plot", "Commercial")
PROJECT_STATUS_OPTIONS = ("UNDER CONSTRUCTION", "PRE-LAUNCH", "COMPLETED")
CONFIGURATION_OPTIONS = ("1 BHK", "2 BHK", "3 BHK", "4 BHK", "5+ BHK", "Villa", "Plot")
PROJECT_AMENITIES: dict[str, str] = {
    "lift": "Lift",
    "parking": "Parking",
    "power_backup": "Power Backup",
    "garden": "Garden / Open Space",
    "gym": "Gym",
    "swimming_pool": "Swimming Pool",
    "play_area": "Children Play Area",
    "clubhouse": "Club House",
    "security": "Security / CCTV",
}
RERA_STATUS_OPTIONS = ("Applied", "Approved")
LAND_OWNERSHIP_OPTIONS = ("Freehold", "Leasehold", "Power of Attorney", "Co-operative Society")
OTHER_BANK = "Other"
BANK_OPTIONS = (
    "SBI",
    "HDFC Bank",
    "Kotak Mahindra Bank",
    "ICICI Bank",
    "Axis Bank",
    "Bank of Baroda (BoB)",
    OTHER_BANK,
)


@dataclass(frozen=True)
class FieldRules:
    """Injectable bundle of the lookup tables above."""

    property_types: tuple[PropertyType, ...] = PROPERTY_TYPES
    type_fields: Mapping[str, FieldConfig] = field(default_factory=lambda: PROPERTY_TYPE_FIELDS)
    amenities: Mapping[str, str] = field(default_factory=lambda: AMENITIES)
    type_amenities: Mapping[str, frozenset[str]] = field(
        default_factory=lambda: PROPERTY_TYPE_AMENITIES
    )

    def property_type(self, value: str | None) -> PropertyType | None:
        for pt in self.property_types:
            if pt.value == value:
                return pt
        return None

    def field_config(self, value: str | None) -> FieldConfig:
        """Visibility record for *value*; unknown or empty types get the standard record."""
        default = self.type_fields[DEFAULT_FIELD_KEY]
        pt = self.property_type(value)
        if pt is None:
            return default
        if pt.value == FARM_HOUSE:
            return self.type_fields.get("residential_farmhouse", default)
        return self.type_fields.get(pt.config_key, default)

    def allowed_amenities(self, value: str | None) -> frozenset[str] | None:
        """Allowed amenity ids for *value*, or None when every amenity is offered."""
        pt = self.property_type(value)
        if pt is None:
            return None
        if pt.value == FARM_HOUSE:
            return self.type_amenities.get("residential_farmhouse")
        if pt.value == PLOT_LAND or pt.category == "land":
            return self.type_amenities.get("land_plot")
        if pt.category == "residential":
            return self.type_amenities.get("residential")
        if pt.category == "commercial":
            return self.type_amenities.get(pt.config_key) or self.type_amenities.get(
                "commercial_office"
            )
        if pt.category == "pg":
            return self.type_amenities.get("pg_accommodation")
        return None

    def available_amenities(self, value: str | None) -> dict[str, str]:
        """Amenity id -> label pairs offered for *value*, in catalogue order."""
        allowed = self.allowed_amenities(value)
        if allowed is None:
            return dict(self.amenities)
        return {k: v for k, v in self.amenities.items() if k in allowed}

    def filter_amenities(self, selected: Iterable[str], value: str | None) -> list[str]:
        """Drop selected amenities that *value* does not allow. Order is kept."""
        selected = list(selected or [])
        allowed = self.allowed_amenities(value)
        if not allowed:
            return selected
        return [a for a in selected if a in allowed]


DEFAULT_RULES = FieldRules()


def apply_property_type_change(
    form: Mapping[str, Any],
    new_type: str,
    rules: FieldRules = DEFAULT_RULES,
) -> dict[str, Any]:
    """Return a copy of *form* with ``propertyType`` set and dependent fields fixed up.

    Studio forces bedrooms to "0"; leaving Studio clears that "0". Amenities
    not allowed for the new type are removed.
    """
    updated = dict(form)
    updated["propertyType"] = new_type

    if new_type == STUDIO:
        updated["bedrooms"] = "0"
    elif form.get("bedrooms") == "0":
        updated["bedrooms"] = ""

    if form.get("amenities"):
        updated["amenities"] = rules.filter_amenities(form["amenities"], new_type)
    return updated
