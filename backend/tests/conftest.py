"""Pytest configuration and shared fixtures.

This module provides centralized test fixtures for:
- HTTP client for API testing (database dependency replaced by a mock)
- Catalog definitions and booked tests for the result entry engine
- Patient contexts for reference range resolution
"""

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.auth import verify_bearer_token
from app.database import get_db
from app.main import app
from app.schemas.blood_test import TestCatalogEntry
from app.services.reference_ranges import PatientContext

TEST_OPERATOR = "tester"


async def stub_verify_bearer_token() -> str:
    """Stub auth dependency that returns a fixed operator name."""
    return TEST_OPERATOR


# =============================================================================
# HTTP Client Fixtures
# =============================================================================


@pytest.fixture
def mock_db():
    """Mock AsyncSession handed to routes through get_db."""
    return AsyncMock()


@pytest_asyncio.fixture
async def client(mock_db):
    """Async test client for the FastAPI app with stubbed DB and auth."""

    async def override_get_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[verify_bearer_token] = stub_verify_bearer_token

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(verify_bearer_token, None)


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Authentication headers for API requests."""
    return {"Authorization": "Bearer test-token"}


# =============================================================================
# Patient Fixtures
# =============================================================================


@pytest.fixture
def adult_male() -> PatientContext:
    """35-year-old male."""
    return PatientContext.from_patient(35, "year", "male")


@pytest.fixture
def adult_female() -> PatientContext:
    """35-year-old female."""
    return PatientContext.from_patient(35, "year", "female")


@pytest.fixture
def infant() -> PatientContext:
    """4-month-old female."""
    return PatientContext.from_patient(4, "month", "female")


# =============================================================================
# Catalog Fixtures
# =============================================================================


@pytest.fixture
def cbc_definition() -> dict:
    """Complete blood count as stored in the catalog (raw JSON)."""
    return {
        "parameter": [
            {
                "name": "Hemoglobin",
                "unit": "g/dL",
                "valueType": "number",
                "range": {
                    "male": [
                        {"rangeKey": "0-1y", "rangeValue": "10-14"},
                        {"rangeKey": "1-100y", "rangeValue": "13-17"},
                    ],
                    "female": [
                        {"rangeKey": "0-1y", "rangeValue": "10-14"},
                        {"rangeKey": "1-100y", "rangeValue": "12-15"},
                    ],
                },
            },
            {
                "name": "PCV",
                "unit": "%",
                "valueType": "number",
                "formula": "Hemoglobin*3",
                "range": {
                    "male": [{"rangeKey": "0-100y", "rangeValue": "40-50"}],
                    "female": [{"rangeKey": "0-100y", "rangeValue": "36-46"}],
                },
            },
            {
                "name": "Neutrophils",
                "unit": "%",
                "range": {"male": [{"rangeKey": "0-100y", "rangeValue": "40-80"}], "female": []},
            },
            {
                "name": "Lymphocytes",
                "unit": "%",
                "range": {"male": [{"rangeKey": "0-100y", "rangeValue": "20-40"}], "female": []},
            },
            {
                "name": "Monocytes",
                "unit": "%",
                "range": {"male": [{"rangeKey": "0-100y", "rangeValue": "2-10"}], "female": []},
            },
            {
                "name": "Platelet Count",
                "unit": "lakh/cumm",
                "defaultValue": "2.5",
                "range": {"male": [], "female": []},
            },
            {
                "name": "Peripheral Smear",
                "valueType": "text",
                "suggestions": [
                    {"shortName": "NN", "description": "Normocytic normochromic"},
                    {"shortName": "MH", "description": "Microcytic hypochromic"},
                ],
            },
            {
                "name": "Absolute Counts",
                "unit": "",
                "valueType": "text",
                "subparameters": [
                    {
                        "name": "ANC",
                        "unit": "/cumm",
                        "range": {"male": [{"rangeKey": "0-100y", "rangeValue": "2000-7000"}], "female": []},
                    },
                    {
                        "name": "ALC",
                        "unit": "/cumm",
                        "defaultValue": 1500,
                        "range": {"male": [{"rangeKey": "0-100y", "rangeValue": "1000-3000"}], "female": []},
                    },
                ],
            },
        ],
        "sub_heading": [
            {
                "title": "Differential Count",
                "parameterNames": ["Neutrophils", "Lymphocytes", "Monocytes"],
                "is100": "true",
            },
            {
                "title": "Red Cell Indices",
                "parameterNames": ["Hemoglobin", "PCV"],
                "is100": False,
            },
        ],
    }


@pytest.fixture
def cbc_entry(cbc_definition) -> TestCatalogEntry:
    """Validated complete blood count catalog entry."""
    return TestCatalogEntry.model_validate(cbc_definition)


@pytest.fixture
def lipid_definition() -> dict:
    """Lipid profile with a chained formula."""
    return {
        "parameter": [
            {"name": "VLDL", "unit": "mg/dL", "formula": "TG/5"},
            {"name": "LDL", "unit": "mg/dL", "formula": "TC-HDL-VLDL"},
            {"name": "TC", "unit": "mg/dL"},
            {"name": "HDL", "unit": "mg/dL"},
            {"name": "TG", "unit": "mg/dL"},
        ],
        "sub_heading": [],
    }


@pytest.fixture
def booked_tests() -> list[dict]:
    """Bookings for one registration: CBC, lipid profile, outsourced thyroid panel."""
    return [
        {"testId": 1, "testName": "Complete Blood Count", "testType": "inhospital"},
        {"testId": 2, "testName": "Lipid Profile", "testType": "inhospital"},
        {"testId": 3, "testName": "Thyroid Profile", "testType": "Outsource"},
    ]
