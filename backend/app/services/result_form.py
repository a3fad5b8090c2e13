"""Blood test result entry engine.

``ResultForm`` owns the in-memory entry state for one registration: the
booked tests, each seeded with its resolved parameter values. All edits go
through named operations on the form; callers never assign fields directly.

Seeding resolves every parameter's reference range for the patient and merges
previously saved values over catalog defaults. Outsourced tests are carried
along for display but never seeded, calculated, or validated.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Mapping, Sequence

from app.config import settings
from app.schemas.blood_test import ParameterDefinition, SubHeadingDefinition, TestCatalogEntry
from app.schemas.blood_values import (
    BloodValuesForm,
    BookedTest,
    DataEntryTest,
    OutsourcedTest,
    ParameterValue,
    PatientSummary,
    SubParameterValue,
)
from app.services.formula import FormulaError, evaluate_formula, format_result
from app.services.reference_ranges import PatientContext, compute_interpretation, resolve_for_patient
from app.services.result_mapping import result_key
from app.services.suggestions import suggest
from app.utils.numbers import to_number

logger = logging.getLogger(__name__)

# Optional comparator, optional sign, up to 3 decimals
_NUMERIC_INPUT_RE = re.compile(r"[<>]?-?[0-9]*(?:\.[0-9]{0,3})?")

GROUP_TOTAL = 100


class FormActionError(ValueError):
    """Raised when an action targets a test, parameter, or group that cannot take it."""

    pass


def normalize_numeric_input(raw: str) -> bool:
    """Return True if ``raw`` is an acceptable partial numeric entry.

    Accepts "", "-", and values like "3.14", "<10", ">5.5", "-2.001".
    Rejected keystrokes are dropped by the caller without an error.
    """
    if raw in ("", "-"):
        return True
    return _NUMERIC_INPUT_RE.fullmatch(raw) is not None


def classify_booked_test(raw: Mapping[str, Any]) -> BookedTest:
    """Build the tagged booked-test variant from a stored booking entry."""
    test_type = raw.get("testType") or ""
    test_id = raw.get("testId")
    test_id = "" if test_id is None else test_id
    test_name = raw.get("testName") or ""

    if test_type.lower() == "outsource":
        return OutsourcedTest(testId=test_id, testName=test_name, testType=test_type)
    return DataEntryTest(
        testId=test_id,
        testName=test_name,
        testType=test_type or "inhospital",
        selectedParameters=raw.get("selectedParameters"),
    )


def _first_by_name(items: Any) -> dict[str, Mapping[str, Any]]:
    indexed: dict[str, Mapping[str, Any]] = {}
    for item in items if isinstance(items, list) else []:
        if isinstance(item, Mapping) and "name" in item:
            indexed.setdefault(item["name"], item)
    return indexed


def _seed_parameter(
    definition: ParameterDefinition,
    saved: Mapping[str, Any] | None,
    patient: PatientContext,
) -> ParameterValue:
    subparameters = None
    if definition.subparameters is not None:
        saved_subs = _first_by_name(saved.get("subparameters") if saved else None)
        subparameters = []
        for sub in definition.subparameters:
            saved_sub = saved_subs.get(sub.name)
            subparameters.append(
                SubParameterValue(
                    name=sub.name,
                    unit=sub.unit,
                    value=saved_sub.get("value") if saved_sub is not None else sub.defaultValue,
                    range=resolve_for_patient(sub, patient),
                    formula=sub.formula,
                    valueType=sub.valueType,
                )
            )

    return ParameterValue(
        name=definition.name,
        unit=definition.unit,
        value=saved.get("value") if saved is not None else definition.defaultValue,
        range=resolve_for_patient(definition, patient),
        formula=definition.formula,
        valueType=definition.valueType,
        visibility=definition.visibility,
        subparameters=subparameters,
        suggestions=definition.suggestions,
    )


def seed_parameters(
    entry: TestCatalogEntry,
    selected: Sequence[str] | None,
    saved_parameters: Any,
    patient: PatientContext,
) -> list[ParameterValue]:
    """Resolve the editable parameter list for one booked test.

    Args:
        entry: Catalog definition of the test.
        selected: Optional allow-list of parameter names; empty means all.
        saved_parameters: Previously stored parameter list for this test.
        patient: Age/gender context used to pick reference ranges.

    Returns:
        Parameters in catalog declaration order, each valued from the saved
        result, else the catalog default, else "".
    """
    definitions = entry.parameter
    if selected:
        wanted = set(selected)
        definitions = [d for d in definitions if d.name in wanted]

    saved_by_name = _first_by_name(saved_parameters)
    return [_seed_parameter(d, saved_by_name.get(d.name), patient) for d in definitions]


def _is_out_of_range(target: SubParameterValue) -> bool:
    # Text results ("12 per hpf") are never compared against a numeric range
    if target.valueType != "number":
        return False
    return compute_interpretation(target.value, target.range) in ("H", "L")


class ResultForm:
    """Owned entry state for the booked tests of one registration."""

    def __init__(
        self,
        tests: list[BookedTest],
        global_pool: Sequence[str] = (),
        tolerance: float | None = None,
    ):
        self.tests = tests
        self.global_pool = list(global_pool)
        self.tolerance = settings.group_sum_tolerance if tolerance is None else tolerance

    @classmethod
    def seed(
        cls,
        booked: Sequence[Mapping[str, Any]],
        catalog: Mapping[str, TestCatalogEntry | None],
        saved: Mapping[str, Any],
        patient: PatientContext,
        global_pool: Sequence[str] = (),
    ) -> ResultForm:
        """Build a form from bookings, catalog definitions, and saved results.

        A test with no catalog definition is kept with an empty parameter
        list so the operator still sees it.
        """
        tests: list[BookedTest] = []
        for raw in booked:
            test = classify_booked_test(raw)
            if isinstance(test, DataEntryTest):
                entry = catalog.get(test.testName)
                if entry is None:
                    logger.warning("Test definition not found for %s", test.testName)
                else:
                    saved_entry = saved.get(result_key(test.testName))
                    saved_parameters = saved_entry.get("parameters") if isinstance(saved_entry, Mapping) else None
                    test.parameters = seed_parameters(entry, test.selectedParameters, saved_parameters, patient)
                    test.subheadings = list(entry.sub_heading)
            tests.append(test)
        return cls(tests, global_pool=global_pool)

    # ------------------------------------------------------------------
    # Addressing
    # ------------------------------------------------------------------

    def data_entry_test(self, test_index: int) -> DataEntryTest:
        if not 0 <= test_index < len(self.tests):
            raise FormActionError(f"No booked test at index {test_index}")
        test = self.tests[test_index]
        if not isinstance(test, DataEntryTest):
            raise FormActionError(f"{test.testName} is outsourced and takes no entries")
        return test

    def parameter(self, test_index: int, parameter_index: int) -> ParameterValue:
        test = self.data_entry_test(test_index)
        if not 0 <= parameter_index < len(test.parameters):
            raise FormActionError(f"No parameter at index {parameter_index} in {test.testName}")
        return test.parameters[parameter_index]

    def _target(self, test_index: int, parameter_index: int, sub_index: int | None) -> SubParameterValue:
        param = self.parameter(test_index, parameter_index)
        if sub_index is None:
            return param
        subs = param.subparameters or []
        if not 0 <= sub_index < len(subs):
            raise FormActionError(f"No sub-parameter at index {sub_index} in {param.name}")
        return subs[sub_index]

    # ------------------------------------------------------------------
    # Value entry
    # ------------------------------------------------------------------

    def enter_value(
        self,
        test_index: int,
        parameter_index: int,
        raw: str,
        sub_index: int | None = None,
    ) -> bool:
        """Apply the full new text of one input.

        Numeric inputs only take values passing ``normalize_numeric_input``;
        anything else is ignored and False is returned. Text inputs take any value.
        """
        target = self._target(test_index, parameter_index, sub_index)
        if target.valueType == "number" and not normalize_numeric_input(raw):
            logger.debug("Dropped numeric input %r for %s", raw, target.name)
            return False
        target.value = raw
        return True

    def suggest(self, test_index: int, parameter_index: int, query: str) -> list[str]:
        """Suggestions for a text parameter given the text typed so far."""
        return suggest(self.parameter(test_index, parameter_index), query.strip().lower(), self.global_pool)

    def pick_suggestion(self, test_index: int, parameter_index: int, text: str) -> None:
        self.parameter(test_index, parameter_index).value = text

    # ------------------------------------------------------------------
    # Formulas
    # ------------------------------------------------------------------

    @staticmethod
    def _sibling_values(test: DataEntryTest) -> dict[str, float]:
        values: dict[str, float] = {}
        for param in test.parameters:
            number = to_number(param.value)
            if number is not None:
                values[param.name] = number
        return values

    def _calculate(self, test: DataEntryTest, param: ParameterValue) -> bool:
        if not param.formula or param.valueType != "number":
            return False
        try:
            result = evaluate_formula(param.formula, self._sibling_values(test))
        except FormulaError as exc:
            logger.debug("Formula for %s not evaluated: %s", param.name, exc)
            return False
        param.value = format_result(result)
        return True

    def calculate_formula(self, test_index: int, parameter_index: int) -> bool:
        """Recalculate one formula parameter from the current sibling values.

        Returns:
            True if the value was updated; False if the parameter has no
            numeric formula or evaluation failed (value left unchanged).
        """
        test = self.data_entry_test(test_index)
        return self._calculate(test, self.parameter(test_index, parameter_index))

    def recompute_all_formulas(self) -> int:
        """Recalculate every numeric formula parameter across all tests.

        Parameters are visited in array order and each one sees the values
        as they stand at that moment, so a formula depending on another
        formula later in the list needs a second pass to converge.

        Returns:
            Number of parameters updated.
        """
        updated = 0
        for test in self.tests:
            if not isinstance(test, DataEntryTest):
                continue
            for param in test.parameters:
                if self._calculate(test, param):
                    updated += 1
        return updated

    # ------------------------------------------------------------------
    # Must-total-100 groups
    # ------------------------------------------------------------------

    @staticmethod
    def _group_members(test: DataEntryTest, subheading: SubHeadingDefinition) -> list[ParameterValue]:
        by_name: dict[str, ParameterValue] = {}
        for param in test.parameters:
            by_name.setdefault(param.name, param)
        return [by_name[n] for n in subheading.parameterNames if n in by_name]

    @staticmethod
    def _sum_values(members: Sequence[ParameterValue]) -> float:
        return sum(n for m in members if (n := to_number(m.value)) is not None)

    def group_warnings(self) -> dict[str, bool]:
        """Overflow flag for every must-total-100 group, keyed "<test>-<subheading>"."""
        warnings: dict[str, bool] = {}
        for t_idx, test in enumerate(self.tests):
            if not isinstance(test, DataEntryTest):
                continue
            for sh_idx, subheading in enumerate(test.subheadings):
                if not subheading.is100:
                    continue
                total = self._sum_values(self._group_members(test, subheading))
                warnings[f"{t_idx}-{sh_idx}"] = total > GROUP_TOTAL + self.tolerance
        return warnings

    def fill_remainder(self, test_index: int, subheading_index: int) -> int:
        """Set the group's last member to whatever brings the total to 100.

        The remainder is rounded half up to an integer.

        Raises:
            FormActionError: If the subheading is not a must-total-100 group
                or none of its members are present.
        """
        test = self.data_entry_test(test_index)
        if not 0 <= subheading_index < len(test.subheadings):
            raise FormActionError(f"No subheading at index {subheading_index} in {test.testName}")
        subheading = test.subheadings[subheading_index]
        if not subheading.is100:
            raise FormActionError(f"Subheading {subheading.title!r} does not need to total {GROUP_TOTAL}")

        members = self._group_members(test, subheading)
        if not members:
            raise FormActionError(f"Subheading {subheading.title!r} has no parameters in {test.testName}")

        remainder = math.floor(GROUP_TOTAL - self._sum_values(members[:-1]) + 0.5)
        members[-1].value = str(remainder)
        return remainder

    # ------------------------------------------------------------------
    # Derived flags
    # ------------------------------------------------------------------

    def out_of_range(self, test_index: int, parameter_index: int, sub_index: int | None = None) -> bool:
        return _is_out_of_range(self._target(test_index, parameter_index, sub_index))

    def out_of_range_flags(self) -> dict[str, bool]:
        """Every value outside its normal range, keyed "<test>-<param>[-<sub>]"."""
        flags: dict[str, bool] = {}
        for t_idx, test in enumerate(self.tests):
            if not isinstance(test, DataEntryTest):
                continue
            for p_idx, param in enumerate(test.parameters):
                if _is_out_of_range(param):
                    flags[f"{t_idx}-{p_idx}"] = True
                for s_idx, sub in enumerate(param.subparameters or []):
                    if _is_out_of_range(sub):
                        flags[f"{t_idx}-{p_idx}-{s_idx}"] = True
        return flags

    def to_response(
        self,
        registration_id: int,
        patient: PatientSummary | None = None,
        accepted: bool = True,
    ) -> BloodValuesForm:
        return BloodValuesForm(
            registrationId=registration_id,
            patient=patient,
            tests=self.tests,
            warnings=self.group_warnings(),
            outOfRange=self.out_of_range_flags(),
            accepted=accepted,
        )
