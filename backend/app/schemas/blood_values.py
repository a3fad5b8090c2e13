"""Pydantic schemas for blood test result entry.

The form state (booked tests with their resolved parameter values) is
round-tripped between the client and the API: the client posts it back for
every engine action and the response carries the updated state.
"""

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, field_validator

from app.schemas.blood_test import SubHeadingDefinition, Suggestion, ValueType
from app.utils.numbers import number_text


class ParameterKind(str, Enum):
    """How a parameter row behaves during entry."""

    PLAIN = "plain"
    WITH_FORMULA = "with_formula"
    WITH_SUBPARAMETERS = "with_subparameters"


class SubParameterValue(BaseModel):
    """Resolved, editable value of a sub-parameter."""

    name: str
    unit: str = ""
    value: str = ""
    range: str = ""
    formula: str = ""
    valueType: ValueType = "number"

    @field_validator("value", mode="before")
    @classmethod
    def _value_to_text(cls, v: Any) -> Any:
        if v is None:
            return ""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return number_text(v)
        return v


class ParameterValue(SubParameterValue):
    """Resolved, editable value of a parameter for one booked test."""

    visibility: str = "visible"
    subparameters: list[SubParameterValue] | None = None
    suggestions: list[Suggestion] | None = None

    @property
    def kind(self) -> ParameterKind:
        if self.subparameters:
            return ParameterKind.WITH_SUBPARAMETERS
        if self.formula and self.valueType == "number":
            return ParameterKind.WITH_FORMULA
        return ParameterKind.PLAIN


class DataEntryTest(BaseModel):
    """Booked test whose results are entered in-house."""

    kind: Literal["data_entry"] = "data_entry"
    testId: str | int
    testName: str
    testType: str = "inhospital"
    parameters: list[ParameterValue] = Field(default_factory=list)
    subheadings: list[SubHeadingDefinition] = Field(default_factory=list)
    selectedParameters: list[str] | None = None


class OutsourcedTest(BaseModel):
    """Booked test sent to an outside lab; no data entry."""

    kind: Literal["outsourced"] = "outsourced"
    testId: str | int
    testName: str
    testType: str = "outsource"


BookedTest = Annotated[DataEntryTest | OutsourcedTest, Field(discriminator="kind")]


class PatientSummary(BaseModel):
    """Patient header shown above the entry form."""

    id: int
    patientId: str
    name: str
    age: int
    dayType: str
    gender: str


# === Requests ===


class FormStateRequest(BaseModel):
    """Current form state posted back by the client."""

    tests: list[BookedTest]


class CalculateRequest(FormStateRequest):
    testIndex: int = Field(ge=0)
    parameterIndex: int = Field(ge=0)


class FillRemainderRequest(FormStateRequest):
    testIndex: int = Field(ge=0)
    subheadingIndex: int = Field(ge=0)


class EntryRequest(FormStateRequest):
    """A single edit: the full new text of one input."""

    testIndex: int = Field(ge=0)
    parameterIndex: int = Field(ge=0)
    subparameterIndex: int | None = Field(default=None, ge=0)
    value: str


class SuggestionRequest(FormStateRequest):
    testIndex: int = Field(ge=0)
    parameterIndex: int = Field(ge=0)
    query: str = ""


# === Responses ===


class BloodValuesForm(BaseModel):
    """Form state plus derived flags.

    ``warnings`` is keyed ``"<testIndex>-<subheadingIndex>"`` and is true when a
    must-total-100 group overflows. ``outOfRange`` is keyed
    ``"<testIndex>-<parameterIndex>"`` (or ``"...-<subIndex>"`` for
    sub-parameters) and lists every numeric value outside its normal range.
    """

    registrationId: int
    patient: PatientSummary | None = None
    tests: list[BookedTest]
    warnings: dict[str, bool] = Field(default_factory=dict)
    outOfRange: dict[str, bool] = Field(default_factory=dict)
    accepted: bool = True


class SuggestionResponse(BaseModel):
    matches: list[str]


class SaveResultsResponse(BaseModel):
    """Outcome of a merge-save."""

    registrationId: int
    savedKeys: list[str]
    bloodtestDetail: dict[str, Any]
