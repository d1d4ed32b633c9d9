"""Patient lookup and autosuggest for encounter entry."""

from __future__ import annotations

import logging
from typing import List, Optional

from ..aws.patients_table import PatientRepository
from ..models.patient import (
    CreatePatientRequest,
    Patient,
    PatientOption,
    PatientSearchResult,
    PatientSuggestions,
)

logger = logging.getLogger(__name__)

# Placeholder name shown before a patient is chosen; never a real patient.
PLACEHOLDER_PATIENT_NAME = "New Encounter"


def is_placeholder_name(name: Optional[str]) -> bool:
    """True for a blank name or the new-encounter placeholder."""
    return not name or not name.strip() or name.strip() == PLACEHOLDER_PATIENT_NAME


def describe_patient(result: PatientSearchResult) -> str:
    parts = []
    if result.date_of_birth:
        parts.append(f"DOB: {result.date_of_birth}")
    if result.mrn:
        parts.append(f"MRN: {result.mrn}")
    if result.encounter_count > 0:
        plural = "s" if result.encounter_count > 1 else ""
        parts.append(f"{result.encounter_count} encounter{plural}")
    return " • ".join(parts)


class PatientService:
    def __init__(self, repository: PatientRepository):
        self.repository = repository

    def search(
        self, provider_id: Optional[str], term: str = "", limit: int = 50
    ) -> List[PatientSearchResult]:
        if not provider_id:
            return []
        return self.repository.search(provider_id, term, limit)

    def suggest(
        self, provider_id: Optional[str], term: str, limit: int = 10
    ) -> PatientSuggestions:
        """Autosuggest options for a partially typed patient name.

        ``offer_create`` is set when no existing patient's name equals the
        term (ignoring case), so the caller can offer to create one.
        """
        if not provider_id or is_placeholder_name(term):
            return PatientSuggestions(term=term or "")

        results = self.repository.search(provider_id, term, limit)
        options = [
            PatientOption(
                value=result.patient_name,
                label=result.patient_name,
                description=describe_patient(result),
                tags=[tag for tag in (result.mrn, result.date_of_birth) if tag],
                patient_id=result.patient_id,
            )
            for result in results
        ]
        wanted = term.strip().lower()
        exact = any(result.patient_name.lower() == wanted for result in results)
        return PatientSuggestions(options=options, offer_create=not exact, term=term)

    def create(self, provider_id: str, request: CreatePatientRequest) -> Patient:
        patient = self.repository.create(provider_id, request)
        logger.info(f"Created patient {patient.patient_id} for provider {provider_id}")
        return patient
