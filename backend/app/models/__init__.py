"""SQLAlchemy models."""

from app.models.auth import OperatorSession
from app.models.lab import AutocompleteValue, BloodTest, Patient, Registration

__all__ = [
    "AutocompleteValue",
    "BloodTest",
    "OperatorSession",
    "Patient",
    "Registration",
]
