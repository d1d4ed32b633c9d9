"""Exception hierarchy for Naina HealthScribe.

Configuration errors are fatal and stop the application before any
authenticated work starts. Remote-call errors are recovered by the caller
(local fallback for preferences, a user-visible message for patients and
encounters). Best-effort side effects never raise past
:class:`~healthscribe.services.side_effects.SideEffectLog`.
"""

from typing import List, Optional


class HealthScribeError(Exception):
    """Base exception for all HealthScribe errors."""


class ConfigurationError(HealthScribeError):
    """Raised when required configuration values are missing or invalid."""

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message)
        self.missing = missing or []


class PreferencesApiError(HealthScribeError):
    """Raised when the preferences API call fails or returns a bad body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PreferencesNotFoundError(PreferencesApiError):
    """Raised when no preferences are stored for the user (HTTP 404)."""


class VersionConflictError(PreferencesApiError):
    """Raised when a conditional write does not match the stored version."""


class PreferencesValidationError(HealthScribeError):
    """Raised when a preferences edit breaks a caller-side rule."""


class PatientStoreError(HealthScribeError):
    """Raised when a patient table operation fails."""


class PatientCreateError(PatientStoreError):
    """Raised when a patient record could not be created."""


class JobParameterError(HealthScribeError):
    """Raised when a transcription job request is invalid."""


class EncounterSubmissionError(HealthScribeError):
    """Raised when the encounter submission flow fails.

    Attributes:
        stage: ``"upload"`` or ``"submit"``.
        uploaded: Whether the audio object reached storage before the failure.
        job_name: Transcription job name used for the attempt.
    """

    def __init__(
        self,
        message: str,
        stage: str,
        job_name: str,
        uploaded: bool = False,
    ):
        super().__init__(message)
        self.stage = stage
        self.job_name = job_name
        self.uploaded = uploaded
