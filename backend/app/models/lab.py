"""SQLAlchemy models for the laboratory tables.

Catalog definitions, booked tests, and saved results are stored as raw JSON
in the same camelCase shape the frontend edits, so the result entry engine
can read and merge them without a translation layer.
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, JsonColumn


class BloodTest(Base):
    """Catalog entry: parameter schema and subheading groups for one test."""

    __tablename__ = "blood_test"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    test_name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)

    # List of parameter definitions (range tables, formulas, suggestions, subparameters)
    parameter: Mapped[list] = mapped_column(JsonColumn, nullable=False, default=list)
    # List of {title, parameterNames, is100}
    sub_heading: Mapped[list] = mapped_column(JsonColumn, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
    )


class Patient(Base):
    """Registered patient; age is stored with its unit (year/month/day)."""

    __tablename__ = "patientdetail"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patient_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False)
    day_type: Mapped[str] = mapped_column(String(16), nullable=False, default="year")
    gender: Mapped[str] = mapped_column(String(32), nullable=False)


class Registration(Base):
    """A patient visit carrying booked tests and the saved result map."""

    __tablename__ = "registration"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("patientdetail.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # [{testId, testName, testType, selectedParameters?}]
    bloodtest_data: Mapped[list] = mapped_column(JsonColumn, nullable=False, default=list)
    # {resultKey: {parameters, testId, subheadings, createdAt, reportedOn, enteredBy}}
    bloodtest_detail: Mapped[dict] = mapped_column(JsonColumn, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
    )


class AutocompleteValue(Base):
    """Shared pool of free-text result suggestions."""

    __tablename__ = "autocomplete_values"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
