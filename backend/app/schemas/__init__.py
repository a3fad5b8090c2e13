"""Pydantic schemas."""

from app.schemas.blood_test import (
    BloodTestListResponse,
    BloodTestResponse,
    GenderRanges,
    ParameterDefinition,
    RangeEntry,
    SubHeadingDefinition,
    SubParameterDefinition,
    Suggestion,
    TestCatalogEntry,
)
from app.schemas.blood_values import (
    BloodValuesForm,
    BookedTest,
    CalculateRequest,
    DataEntryTest,
    EntryRequest,
    FillRemainderRequest,
    FormStateRequest,
    OutsourcedTest,
    ParameterKind,
    ParameterValue,
    PatientSummary,
    SaveResultsResponse,
    SubParameterValue,
    SuggestionRequest,
    SuggestionResponse,
)

__all__ = [
    "BloodTestListResponse",
    "BloodTestResponse",
    "BloodValuesForm",
    "BookedTest",
    "CalculateRequest",
    "DataEntryTest",
    "EntryRequest",
    "FillRemainderRequest",
    "FormStateRequest",
    "GenderRanges",
    "OutsourcedTest",
    "ParameterDefinition",
    "ParameterKind",
    "ParameterValue",
    "PatientSummary",
    "RangeEntry",
    "SaveResultsResponse",
    "SubHeadingDefinition",
    "SubParameterDefinition",
    "SubParameterValue",
    "Suggestion",
    "SuggestionRequest",
    "SuggestionResponse",
    "TestCatalogEntry",
]
