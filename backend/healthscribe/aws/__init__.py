"""AWS service accessors for HealthScribe."""

from .healthscribe_client import HealthScribeClient
from .patients_table import PatientRepository
from .preferences_api import PreferencesApiClient

__all__ = ["HealthScribeClient", "PatientRepository", "PreferencesApiClient"]
