"""Tests for reference range resolution and interpretation logic."""

import math

import pytest

from app.schemas.blood_test import ParameterDefinition, RangeEntry
from app.services.reference_ranges import (
    PatientContext,
    age_in_days,
    compute_interpretation,
    gender_bucket,
    parse_normal_range,
    parse_range_key,
    resolve_for_patient,
    resolve_range,
)


def _ranges(*pairs: tuple[str, str]) -> list[RangeEntry]:
    return [RangeEntry(rangeKey=k, rangeValue=v) for k, v in pairs]


class TestAgeInDays:
    @pytest.mark.parametrize(
        "age,unit,expected",
        [
            (2, "year", 730),
            (2, "Year", 730),
            (3, "month", 90),
            (10, "day", 10),
            (0, "year", 0),
        ],
    )
    def test_known_units(self, age, unit, expected):
        assert age_in_days(age, unit) == expected

    def test_unknown_unit_assumes_years(self, caplog):
        assert age_in_days(2, "fortnight") == 730
        assert "Unknown patient age unit" in caplog.text

    def test_missing_unit_assumes_years(self):
        assert age_in_days(1, None) == 365


class TestGenderBucket:
    def test_male(self):
        assert gender_bucket("male") == "male"
        assert gender_bucket("Male") == "male"

    def test_female(self):
        assert gender_bucket("female") == "female"

    @pytest.mark.parametrize("gender", ["other", "", None, "M"])
    def test_everything_else_uses_female_table(self, gender):
        assert gender_bucket(gender) == "female"


class TestParseRangeKey:
    def test_years(self):
        assert parse_range_key("1-5y") == (365, 1825)

    def test_months(self):
        assert parse_range_key("1-6m") == (30, 180)

    def test_days(self):
        assert parse_range_key("0-28d") == (0, 28)

    def test_uppercase_unit(self):
        assert parse_range_key("1-2Y") == (365, 730)

    def test_unknown_unit_assumes_days(self, caplog):
        assert parse_range_key("3-9w") == (3, 9)
        assert "Unknown age unit" in caplog.text

    def test_missing_unit_strips_last_character(self):
        # The last character is always consumed as the unit
        assert parse_range_key("0-10") == (0, 1)

    def test_malformed_bounds_are_nan(self):
        lower, upper = parse_range_key("a-by")
        assert math.isnan(lower)
        assert math.isnan(upper)

    def test_missing_upper_is_nan(self):
        lower, upper = parse_range_key("5y")
        assert lower == 5 * 365
        assert math.isnan(upper)


class TestResolveRange:
    def test_single_match_wins_regardless_of_position(self):
        ranges = _ranges(("0-1y", "A"), ("1-12y", "B"), ("12-100y", "C"))
        assert resolve_range(ranges, 0.5 * 365) == "A"
        assert resolve_range(ranges, 5 * 365) == "B"
        assert resolve_range(ranges, 40 * 365) == "C"

    def test_first_match_wins_on_overlap(self):
        ranges = _ranges(("0-10y", "first"), ("5-20y", "second"))
        assert resolve_range(ranges, 7 * 365) == "first"

    def test_boundaries_are_inclusive(self):
        ranges = _ranges(("0-28d", "neonate"), ("29-365d", "infant"))
        assert resolve_range(ranges, 28) == "neonate"
        assert resolve_range(ranges, 29) == "infant"

    def test_no_match_falls_back_to_last(self):
        ranges = _ranges(("0-1y", "A"), ("1-12y", "B"))
        assert resolve_range(ranges, 50 * 365) == "B"

    def test_gap_between_intervals_falls_back_to_last(self):
        ranges = _ranges(("0-28d", "neonate"), ("1-100y", "adult"))
        assert resolve_range(ranges, 100) == "adult"

    def test_empty_list_is_empty_string(self):
        assert resolve_range([], 1000) == ""

    def test_malformed_key_never_matches(self):
        ranges = _ranges(("abc", "broken"), ("60-100y", "elderly"))
        assert resolve_range(ranges, 1) == "elderly"

    def test_matching_interval_with_empty_text_falls_back_to_last(self):
        ranges = _ranges(("0-10y", ""), ("10-100y", "adult"))
        assert resolve_range(ranges, 365) == "adult"


class TestResolveForPatient:
    @pytest.fixture
    def hemoglobin(self) -> ParameterDefinition:
        return ParameterDefinition.model_validate(
            {
                "name": "Hemoglobin",
                "range": {
                    "male": [{"rangeKey": "0-1y", "rangeValue": "10-14"}, {"rangeKey": "1-100y", "rangeValue": "13-17"}],
                    "female": [{"rangeKey": "0-1y", "rangeValue": "10-14"}, {"rangeKey": "1-100y", "rangeValue": "12-15"}],
                },
            }
        )

    def test_uses_gender_table(self, hemoglobin, adult_male, adult_female):
        assert resolve_for_patient(hemoglobin, adult_male) == "13-17"
        assert resolve_for_patient(hemoglobin, adult_female) == "12-15"

    def test_uses_age_in_days(self, hemoglobin, infant):
        assert resolve_for_patient(hemoglobin, infant) == "10-14"

    def test_non_binary_gender_uses_female_table(self, hemoglobin):
        patient = PatientContext.from_patient(30, "year", "other")
        assert resolve_for_patient(hemoglobin, patient) == "12-15"

    def test_missing_range_table(self, adult_male):
        definition = ParameterDefinition.model_validate({"name": "Remarks", "range": None})
        assert resolve_for_patient(definition, adult_male) == ""


class TestParseNormalRange:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("13-17", (13, 17)),
            ("4.5 - 11.0", (4.5, 11.0)),
            ("<5", (None, 5)),
            (">40", (40, None)),
            ("≤200", (None, 200)),
            ("≥60", (60, None)),
            ("", (None, None)),
            ("Negative", (None, None)),
            ("-1-5", (None, None)),
        ],
    )
    def test_forms(self, text, expected):
        assert parse_normal_range(text) == expected


class TestComputeInterpretation:
    def test_within_range(self):
        assert compute_interpretation("14", "13-17") == "N"

    def test_boundaries_are_normal(self):
        assert compute_interpretation("13", "13-17") == "N"
        assert compute_interpretation("17", "13-17") == "N"

    def test_low_and_high(self):
        assert compute_interpretation("9.5", "13-17") == "L"
        assert compute_interpretation("18", "13-17") == "H"

    def test_upper_bound_only(self):
        assert compute_interpretation("6", "<5") == "H"
        assert compute_interpretation("4", "<5") == "N"

    def test_lower_bound_only(self):
        assert compute_interpretation("30", ">40") == "L"

    def test_comparator_values_are_not_interpreted(self):
        assert compute_interpretation("<10", "13-17") is None

    def test_text_value_or_unparseable_range(self):
        assert compute_interpretation("Reactive", "13-17") is None
        assert compute_interpretation("14", "Negative") is None
        assert compute_interpretation("", "13-17") is None
