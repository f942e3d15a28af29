"""Unit tests for the property type tables, amenity filtering and field validators."""

import pytest

from listing_desk.domain.media import MediaFile
from listing_desk.services import field_validators as fv
from listing_desk.services.field_rules import (
    AMENITIES,
    DEFAULT_RULES,
    FARM_HOUSE,
    PLOT_LAND,
    PROPERTY_TYPES,
    STUDIO,
    FieldConfig,
    FieldRules,
    apply_property_type_change,
)

MB = 1024 * 1024


# ---------------------------------------------------------------------------
# Catalogue and field visibility
# ---------------------------------------------------------------------------


class TestCatalogue:
    def test_twelve_property_types(self):
        assert len(PROPERTY_TYPES) == 12
        assert len({pt.value for pt in PROPERTY_TYPES}) == 12

    def test_sixteen_amenities(self):
        assert len(AMENITIES) == 16

    def test_unknown_type_gets_standard_fields(self):
        assert DEFAULT_RULES.field_config("Spaceship") == FieldConfig()
        assert DEFAULT_RULES.field_config(None) == FieldConfig()

    def test_plot_hides_rooms(self):
        config = DEFAULT_RULES.field_config(PLOT_LAND)
        assert not config.show_bedrooms
        assert not config.bedrooms_required
        assert not config.show_carpet_area

    def test_farm_house_uses_its_own_record(self):
        config = DEFAULT_RULES.field_config(FARM_HOUSE)
        assert not config.show_floor
        assert not config.show_balconies

    def test_studio_does_not_require_bedrooms(self):
        assert DEFAULT_RULES.field_config(STUDIO).bedrooms_required is False


class TestAmenityFiltering:
    def test_plot_keeps_only_allowed(self):
        selected = ["gym", "security", "swimming_pool", "cctv"]
        assert DEFAULT_RULES.filter_amenities(selected, PLOT_LAND) == ["security", "cctv"]

    def test_residential_keeps_everything(self):
        selected = ["gym", "lift", "wifi"]
        assert DEFAULT_RULES.filter_amenities(selected, "Apartment") == selected

    def test_farm_house_drops_lift_and_intercom(self):
        available = DEFAULT_RULES.available_amenities(FARM_HOUSE)
        assert "lift" not in available
        assert "intercom" not in available
        assert len(available) == 14

    def test_unknown_type_allows_all(self):
        assert DEFAULT_RULES.allowed_amenities("Spaceship") is None
        assert DEFAULT_RULES.available_amenities("Spaceship") == AMENITIES

    def test_injected_tables(self):
        rules = FieldRules(type_amenities={"residential": frozenset({"gym"})})
        assert rules.filter_amenities(["gym", "lift"], "Apartment") == ["gym"]


class TestPropertyTypeChange:
    def test_changing_type_drops_disallowed_amenities(self):
        form = {"propertyType": "Apartment", "amenities": ["gym", "security"], "bedrooms": "2"}

        updated = apply_property_type_change(form, PLOT_LAND)

        assert updated["amenities"] == ["security"]
        assert form["amenities"] == ["gym", "security"]

    def test_studio_forces_zero_bedrooms(self):
        updated = apply_property_type_change({"bedrooms": "3"}, STUDIO)
        assert updated["bedrooms"] == "0"

    def test_leaving_studio_clears_zero(self):
        updated = apply_property_type_change({"propertyType": STUDIO, "bedrooms": "0"}, "Flat")
        assert updated["bedrooms"] == ""

    def test_other_bedroom_values_survive(self):
        updated = apply_property_type_change({"bedrooms": "2"}, "Villa")
        assert updated["bedrooms"] == "2"


# ---------------------------------------------------------------------------
# Field validators
# ---------------------------------------------------------------------------


class TestDescription:
    def test_short_description_reports_count(self):
        assert fv.validate_description("x" * 40) == (
            "Description must contain at least 100 characters. Currently: 40 characters."
        )

    def test_too_long(self):
        assert "cannot exceed 1000" in fv.validate_description("x" * 1001)

    def test_email_beats_minimum_length(self):
        message = fv.validate_description("Mail me at owner@example.com")
        assert "email" in message

    def test_mobile_number(self):
        text = "Spacious flat near the metro, call 9876543210 for visits. " + "a" * 60
        assert "mobile" in fv.validate_description(text)

    def test_valid(self):
        assert fv.validate_description("A bright corner flat with park views. " * 4) is None

    def test_blank(self):
        assert fv.validate_description("   ") == "Description is required"


class TestNumbers:
    @pytest.mark.parametrize("value", ["", None, "abc", "0", "-5"])
    def test_area_must_be_positive(self, value):
        assert fv.validate_area(value) is not None

    def test_area_accepts_commas(self):
        assert fv.validate_area("1,200") is None

    def test_carpet_area_bounded_by_built_up(self):
        assert fv.validate_carpet_area("1300", "1200") == "Carpet area cannot be greater than built-up area"
        assert fv.validate_carpet_area("1000", "1200") is None

    def test_floor_above_total(self):
        assert fv.validate_floors("12", "10") == "Floor number cannot be greater than total floors"
        assert fv.validate_floors("0", "10") is None

    @pytest.mark.parametrize("value,ok", [("45", True), ("-91", False), ("90", True), ("x", False)])
    def test_latitude(self, value, ok):
        assert (fv.validate_latitude(value) is None) is ok

    def test_longitude(self):
        assert fv.validate_longitude("181") is not None
        assert fv.validate_longitude("-180") is None

    def test_rent_label(self):
        assert fv.validate_price("", "rent") == "Monthly rent is required"
        assert fv.validate_price("", "sale") == "Price is required"

    def test_deposit_capped_at_twelve_months(self):
        assert fv.validate_deposit("240000", "20000") is None
        assert fv.validate_deposit("240001", "20000") == "Deposit cannot exceed 12 months of rent"
        assert fv.validate_deposit("-1", "20000") is not None

    def test_counts_are_whole_numbers(self):
        assert fv.validate_count("2.5", 0, 10, "Bedrooms") == "Bedrooms must be between 0 and 10"
        assert fv.validate_count("11", 0, 10, "Bedrooms") is not None
        assert fv.validate_count("0", 0, 10, "Bedrooms") is None

    @pytest.mark.parametrize("value", ["nan", "inf", "-inf", float("nan"), float("inf")])
    def test_non_finite_values_are_not_numbers(self, value):
        assert fv.to_number(value) is None
        assert fv.validate_area(value) == "Built-up area must be a positive number"
        assert fv.validate_price(value) == "Price must be a positive number"
        assert fv.validate_count(value, 0, 10, "Bedrooms") == "Bedrooms must be between 0 and 10"
        assert fv.validate_deposit(value, "20000") == "Deposit must be a positive number"

    def test_strip_area_unit(self):
        assert fv.strip_area_unit("1200 - 1800 sq.ft") == "1200 - 1800"
        assert fv.strip_area_unit("900 SQ.FT") == "900"


class TestFileChecks:
    def test_image_by_extension_when_mime_is_generic(self):
        f = MediaFile("photo.webp", "application/octet-stream", b"x")
        assert fv.check_image_file(f, 5 * MB) is None

    def test_image_wrong_type(self):
        f = MediaFile("notes.txt", "text/plain", b"x")
        assert fv.check_image_file(f, 5 * MB) == "Invalid file type. Please upload JPG, PNG, or WebP images."

    def test_image_too_large(self):
        f = MediaFile("big.jpg", "image/jpeg", b"x" * (5 * MB + 1))
        assert fv.check_image_file(f, 5 * MB) == "Image must be <= 5MB"

    def test_video(self):
        assert fv.check_video_file(MediaFile("a.avi", "video/x-msvideo", b"x"), 50 * MB) == "Unsupported video format"
        assert fv.check_video_file(MediaFile("a.mp4", "video/mp4", b"x"), 50 * MB) is None

    def test_brochure(self):
        assert fv.check_brochure_file(MediaFile("a.doc", "application/msword", b"x"), 10 * MB) == (
            "Only PDF files are allowed"
        )
        assert fv.check_brochure_file(MediaFile("a.pdf", "application/pdf", b"x"), 10 * MB) is None
