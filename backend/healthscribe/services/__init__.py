"""Application services for HealthScribe."""

from .encounter_service import EncounterService, make_job_name, verify_job_request
from .patient_service import PatientService
from .preferences_service import UserPreferencesService
from .side_effects import SideEffectFailure, SideEffectLog

__all__ = [
    "EncounterService",
    "PatientService",
    "SideEffectFailure",
    "SideEffectLog",
    "UserPreferencesService",
    "make_job_name",
    "verify_job_request",
]
