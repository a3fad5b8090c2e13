"""Laboratory repository.

Reads catalog definitions, patients, registrations and the shared autocomplete
pool, and writes merged result maps back onto registrations. High-level
operations (loading an entry form, saving results) combine these reads with
the result entry engine.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.lab import AutocompleteValue, BloodTest, Patient, Registration
from app.schemas.blood_test import TestCatalogEntry
from app.schemas.blood_values import BookedTest, PatientSummary
from app.services.reference_ranges import PatientContext
from app.services.result_form import ResultForm
from app.services.result_mapping import build_saved_results

logger = logging.getLogger(__name__)


class RegistrationNotFoundError(ValueError):
    """Raised when a registration is not found."""

    pass


class PatientNotFoundError(ValueError):
    """Raised when the patient of a registration is not found."""

    pass


class ResultSaveError(RuntimeError):
    """Raised when merged results could not be written."""

    pass


def catalog_entry(row: BloodTest) -> TestCatalogEntry | None:
    """Validate a catalog row, or None if its stored JSON is malformed."""
    try:
        return TestCatalogEntry.model_validate({"parameter": row.parameter, "sub_heading": row.sub_heading})
    except ValidationError as exc:
        logger.warning("Malformed catalog definition for %s: %s", row.test_name, exc)
        return None


def patient_summary(patient: Patient) -> PatientSummary:
    return PatientSummary(
        id=patient.id,
        patientId=patient.patient_id,
        name=patient.name,
        age=patient.age,
        dayType=patient.day_type,
        gender=patient.gender,
    )


class LabRepository:
    """Repository for catalog, registration and result operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def get_blood_test(self, test_name: str) -> BloodTest | None:
        result = await self.db.execute(select(BloodTest).where(BloodTest.test_name == test_name))
        return result.scalar_one_or_none()

    async def get_test_definitions(self, test_names: list[str]) -> dict[str, TestCatalogEntry | None]:
        """Catalog definitions for several tests in one query.

        Names without a (valid) definition map to None. A failed lookup maps
        every name to None so each test is still shown, without parameters.
        """
        definitions: dict[str, TestCatalogEntry | None] = dict.fromkeys(test_names)
        if not test_names:
            return definitions
        try:
            result = await self.db.execute(select(BloodTest).where(BloodTest.test_name.in_(test_names)))
            rows = result.scalars().all()
        except SQLAlchemyError as exc:
            logger.warning("Fetching test definitions for %s failed: %s", ", ".join(test_names), exc)
            return definitions
        for row in rows:
            definitions[row.test_name] = catalog_entry(row)
        return definitions

    async def list_blood_tests(self) -> list[BloodTest]:
        result = await self.db.execute(select(BloodTest).order_by(BloodTest.test_name))
        return list(result.scalars().all())

    async def upsert_blood_test(self, test_name: str, entry: TestCatalogEntry) -> BloodTest:
        """Create or replace the catalog definition for a test."""
        row = await self.get_blood_test(test_name)
        data = entry.model_dump(mode="json")
        if row is None:
            row = BloodTest(test_name=test_name)
            self.db.add(row)
            logger.info("Creating catalog entry %s", test_name)
        row.parameter = data["parameter"]
        row.sub_heading = data["sub_heading"]
        await self.db.flush()
        await self.db.refresh(row)
        return row

    async def get_autocomplete_values(self) -> list[str]:
        """Shared suggestion pool; empty if it cannot be fetched."""
        try:
            result = await self.db.execute(select(AutocompleteValue.value).order_by(AutocompleteValue.id))
            return list(result.scalars().all())
        except SQLAlchemyError as exc:
            logger.warning("Fetching autocomplete values failed: %s", exc)
            return []

    # ------------------------------------------------------------------
    # Registrations
    # ------------------------------------------------------------------

    async def get_registration(self, registration_id: int) -> Registration:
        """Raises RegistrationNotFoundError if missing."""
        registration = await self.db.get(Registration, registration_id)
        if registration is None:
            raise RegistrationNotFoundError(f"Registration {registration_id} not found")
        return registration

    async def get_patient(self, patient_id: int) -> Patient:
        """Raises PatientNotFoundError if missing."""
        patient = await self.db.get(Patient, patient_id)
        if patient is None:
            raise PatientNotFoundError(f"Patient {patient_id} not found")
        return patient

    async def load_result_form(self, registration_id: int) -> tuple[ResultForm, PatientSummary]:
        """Seed the result entry form for a registration.

        Raises:
            RegistrationNotFoundError: If the registration does not exist.
            PatientNotFoundError: If its patient does not exist.
        """
        registration = await self.get_registration(registration_id)
        patient = await self.get_patient(registration.patient_id)

        booked = [b for b in registration.bloodtest_data or [] if isinstance(b, dict)]
        names = [b.get("testName") or "" for b in booked if (b.get("testType") or "").lower() != "outsource"]
        catalog = await self.get_test_definitions(names)

        context = PatientContext.from_patient(patient.age, patient.day_type, patient.gender)
        logger.debug(
            "Patient age %s %s -> %s days, gender bucket %s",
            patient.age,
            patient.day_type,
            context.age_days,
            context.gender_key,
        )

        form = ResultForm.seed(
            booked=booked,
            catalog=catalog,
            saved=registration.bloodtest_detail or {},
            patient=context,
            global_pool=await self.get_autocomplete_values(),
        )
        return form, patient_summary(patient)

    async def save_results(
        self,
        registration_id: int,
        tests: list[BookedTest],
        entered_by: str,
        now: datetime | None = None,
    ) -> tuple[dict[str, Any], list[str]]:
        """Merge submitted results over the stored result map and commit it.

        Returns:
            Tuple of (merged result map, keys written).

        Raises:
            RegistrationNotFoundError: If the registration does not exist.
            ResultSaveError: If the write fails.
        """
        registration = await self.get_registration(registration_id)
        existing = registration.bloodtest_detail or {}

        merged, written = build_saved_results(
            tests,
            existing,
            entered_by=entered_by,
            now=now or datetime.now(timezone.utc),
        )

        registration.bloodtest_detail = merged
        try:
            await self.db.flush()
            await self.db.commit()
        except SQLAlchemyError as exc:
            logger.error("Saving results for registration %s failed: %s", registration_id, exc)
            raise ResultSaveError(str(exc)) from exc

        logger.info(
            "Saved results for registration %s (%s) by %s",
            registration_id,
            ", ".join(written) or "nothing new",
            entered_by,
        )
        return merged, written
