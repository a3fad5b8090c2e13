"""Age/gender-banded reference range resolution and interpretation.

Catalog parameters carry a range table per gender: an ordered list of
``{rangeKey, rangeValue}`` where ``rangeKey`` encodes an age interval such as
``"0-12y"``, ``"1-6m"`` or ``"0-28d"``. Resolution picks the first interval
containing the patient's age in days, falling back to the last interval.

The resolved text (``"13-17"``, ``"<5"``, ``">40"``...) is then used to flag
entered values as high or low.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Literal

from app.schemas.blood_test import RangeEntry, SubParameterDefinition
from app.utils.numbers import parse_bound, parse_leading_float

logger = logging.getLogger(__name__)

Interpretation = Literal["N", "H", "L"]

# Range key unit suffix -> days
RANGE_KEY_UNIT_DAYS: dict[str, int] = {"y": 365, "m": 30, "d": 1}

# Patient age unit (day_type) -> days
AGE_UNIT_DAYS: dict[str, int] = {"year": 365, "month": 30, "day": 1}


@dataclass(frozen=True)
class PatientContext:
    """Patient attributes that select a reference range.

    Attributes:
        age_days: Age normalized to days.
        gender_key: Range bucket, always "male" or "female".
    """

    age_days: float
    gender_key: str

    @classmethod
    def from_patient(cls, age: float, day_type: str | None, gender: str | None) -> PatientContext:
        return cls(age_days=age_in_days(age, day_type), gender_key=gender_bucket(gender))


def age_in_days(age: float, day_type: str | None) -> float:
    """Convert an age with its unit (year/month/day) to days.

    Unknown or missing units are treated as years.
    """
    unit = (day_type or "").lower()
    factor = AGE_UNIT_DAYS.get(unit)
    if factor is None:
        logger.warning("Unknown patient age unit %r, assuming years", day_type)
        factor = AGE_UNIT_DAYS["year"]
    return age * factor


def gender_bucket(gender: str | None) -> str:
    """Map a patient gender onto a range table key.

    Only "male" selects the male table; every other value, including
    non-binary and missing genders, uses the female table.
    """
    return "male" if (gender or "").lower() == "male" else "female"


def parse_range_key(key: str) -> tuple[float, float]:
    """Decode a range key into an inclusive ``(lower, upper)`` interval in days.

    The last character is always taken as the unit. Malformed bounds decode
    to NaN and the interval never matches.
    """
    unit = key.strip()[-1:].lower()
    bounds = key[:-1].split("-")
    lower = parse_bound(bounds[0])
    upper = parse_bound(bounds[1] if len(bounds) > 1 else None)

    factor = RANGE_KEY_UNIT_DAYS.get(unit)
    if factor is None:
        logger.warning("Unknown age unit %r in range key %r, assuming days", unit, key)
        factor = 1
    return lower * factor, upper * factor


def resolve_range(ranges: list[RangeEntry], age_days: float) -> str:
    """Return the normal range text for an age from an ordered interval list.

    Scans in declared order and returns the first interval containing the
    age. If nothing matches (or the match has empty text) the last interval's
    text is used; an empty list resolves to "".
    """
    normal = ""
    for entry in ranges:
        lower, upper = parse_range_key(entry.rangeKey)
        if lower <= age_days <= upper:
            normal = entry.rangeValue
            logger.debug("Selected range %s -> %r for age %s days", entry.rangeKey, normal, age_days)
            break
    if not normal and ranges:
        normal = ranges[-1].rangeValue
    return normal


def resolve_for_patient(definition: SubParameterDefinition, patient: PatientContext) -> str:
    """Resolve a parameter or sub-parameter definition for a patient."""
    return resolve_range(definition.range.for_gender(patient.gender_key), patient.age_days)


def parse_normal_range(text: str) -> tuple[float | None, float | None]:
    """Parse normal range text into ``(min, max)`` bounds.

    Understands ``"a-b"``, ``"<x"``, ``">x"``, ``"≤x"`` and ``"≥x"``. Text that
    fits none of these yields ``(None, None)``.
    """
    rng = text.strip()
    if rng == "":
        return None, None

    parts = rng.split("-")
    if len(parts) == 2:
        low = parse_leading_float(parts[0])
        high = parse_leading_float(parts[1])
        if low is not None and high is not None:
            return low, high

    if rng[0] in "<≤":
        bound = parse_leading_float(rng[1:])
        if bound is not None:
            return None, bound
    elif rng[0] in ">≥":
        bound = parse_leading_float(rng[1:])
        if bound is not None:
            return bound, None

    return None, None


def compute_interpretation(value: str, range_text: str) -> Interpretation | None:
    """Compare an entered value against its normal range text.

    Boundary semantics are inclusive (value == max is normal).

    Returns:
        "L", "H" or "N"; None when the value is not a number (including
        comparator-prefixed values such as "<10") or the range has no bounds.
    """
    number = parse_leading_float(value) if value else None
    if number is None or not math.isfinite(number):
        return None

    low, high = parse_normal_range(range_text)
    if low is None and high is None:
        return None
    if low is not None and number < low:
        return "L"
    if high is not None and number > high:
        return "H"
    return "N"
