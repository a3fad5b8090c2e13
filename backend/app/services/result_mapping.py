"""Mapping between the result entry form and the stored result map.

Saved results live on the registration as one JSON object keyed by a
normalized test name::

    {"complete_blood_count": {"parameters": [...], "testId": ..., "subheadings": [...],
                              "createdAt": ..., "reportedOn": ..., "enteredBy": ...}}

Saving is always a merge: tests not present in the submission keep their
previously stored entries.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from app.schemas.blood_test import ValueType
from app.schemas.blood_values import BookedTest, DataEntryTest, ParameterValue
from app.utils.numbers import to_number

_WHITESPACE_RE = re.compile(r"\s+")
_FORBIDDEN_KEY_CHARS_RE = re.compile(r"[.#$\[\]]")


def result_key(test_name: str) -> str:
    """Normalize a test name into its result map key ("Lipid Profile" -> "lipid_profile")."""
    key = _WHITESPACE_RE.sub("_", test_name.lower())
    return _FORBIDDEN_KEY_CHARS_RE.sub("", key)


def iso_timestamp(now: datetime) -> str:
    """UTC ISO-8601 timestamp with millisecond precision and a trailing Z."""
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def serialize_value(value: str, value_type: ValueType) -> str | int | float | None:
    """Convert an entered value to its stored form.

    Comparator-prefixed values ("<10", ">5.5") stay text. Numeric values
    become numbers, except decimals ending in 0 ("4.50") which stay text to
    keep the significant zero. A numeric value that does not parse (a lone
    "-") is stored as null.
    """
    if value.startswith(("<", ">")):
        return value
    if value_type == "number" and value != "":
        if "." in value and value.endswith("0"):
            return value
        number = to_number(value)
        if number is None:
            return None
        return int(number) if number.is_integer() else number
    return value


def serialize_parameter(param: ParameterValue) -> dict[str, Any] | None:
    """Stored form of one parameter, or None when nothing was entered.

    Only sub-parameters with a value are kept; a parameter with an empty
    value is still stored when any of its sub-parameters has one.
    """
    subs = [sp for sp in param.subparameters or [] if sp.value != ""]
    if param.value == "" and not subs:
        return None

    data = param.model_dump(exclude_none=True)
    data["value"] = serialize_value(param.value, param.valueType)
    data["subparameters"] = [
        {**sp.model_dump(), "value": serialize_value(sp.value, sp.valueType)} for sp in subs
    ]
    return data


def build_saved_results(
    tests: Sequence[BookedTest],
    existing: Mapping[str, Any],
    entered_by: str,
    now: datetime,
) -> tuple[dict[str, Any], list[str]]:
    """Merge the submitted tests over the previously stored result map.

    Args:
        tests: Booked tests from the form; outsourced tests are skipped.
        existing: Result map currently stored on the registration.
        entered_by: Operator name stamped on every written test.
        now: Submission time.

    Returns:
        Tuple of (merged result map, keys written by this submission).
        Tests with no entered values are not written.
    """
    timestamp = iso_timestamp(now)
    written: dict[str, Any] = {}

    for test in tests:
        if not isinstance(test, DataEntryTest):
            continue
        parameters = [data for p in test.parameters if (data := serialize_parameter(p)) is not None]
        if not parameters:
            continue

        key = result_key(test.testName)
        previous = existing.get(key)
        created_at = previous.get("createdAt") if isinstance(previous, Mapping) else None

        written[key] = {
            "parameters": parameters,
            "testId": test.testId,
            "subheadings": [sh.model_dump() for sh in test.subheadings],
            "createdAt": created_at or timestamp,
            "reportedOn": timestamp,
            "enteredBy": entered_by,
        }

    return {**existing, **written}, list(written)
