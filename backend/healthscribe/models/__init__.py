from .encounter import (
    AudioIdentification,
    Encounter,
    EncounterStatus,
    JobRequest,
    SubmissionProgress,
    SubmissionResult,
)
from .patient import (
    CreatePatientRequest,
    Demographics,
    Patient,
    PatientOption,
    PatientSearchResult,
    PatientSuggestions,
    UpdatePatientRequest,
)
from .preferences import (
    DEFAULT_PREFERENCES,
    BillingCycle,
    ClinicalNoteTemplate,
    DefaultTab,
    MedicalSpecialty,
    PreferencesRecord,
    UserPreferences,
    merge_with_defaults,
    migrate_note_template,
)

__all__ = [
    "AudioIdentification",
    "BillingCycle",
    "ClinicalNoteTemplate",
    "CreatePatientRequest",
    "DEFAULT_PREFERENCES",
    "DefaultTab",
    "Demographics",
    "Encounter",
    "EncounterStatus",
    "JobRequest",
    "MedicalSpecialty",
    "Patient",
    "PatientOption",
    "PatientSearchResult",
    "PatientSuggestions",
    "PreferencesRecord",
    "SubmissionProgress",
    "SubmissionResult",
    "UpdatePatientRequest",
    "UserPreferences",
    "merge_with_defaults",
    "migrate_note_template",
]
