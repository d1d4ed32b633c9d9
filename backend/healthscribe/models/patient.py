"""Multi-tenant patient records.

Every patient is owned by exactly one provider. Ownership is a plain
``providerId`` attribute; reads and writes enforce it through query keys and
condition expressions. Patients are never hard-deleted, only flagged inactive.
"""

from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from .common import CamelModel


class Demographics(CamelModel):
    gender: Optional[str] = None
    race: Optional[str] = None
    ethnicity: Optional[str] = None


class Patient(CamelModel):
    """Patient item stored in the patients table."""

    patient_id: str
    provider_id: str
    patient_name: str
    date_of_birth: Optional[str] = None
    mrn: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    demographics: Optional[Demographics] = None
    is_active: bool = True
    created_at: str
    updated_at: str
    last_encounter_date: Optional[str] = None
    encounter_count: int = 0

    def to_item(self) -> Dict[str, Any]:
        """Table item; unset optional attributes are omitted."""
        return self.to_wire(exclude_none=True)

    def to_search_result(self) -> "PatientSearchResult":
        return PatientSearchResult(
            patient_id=self.patient_id,
            patient_name=self.patient_name,
            date_of_birth=self.date_of_birth,
            mrn=self.mrn,
            last_encounter_date=self.last_encounter_date,
            encounter_count=self.encounter_count,
        )

    def matches(self, term: str) -> bool:
        """Case-insensitive substring match on name, MRN and email."""
        needle = term.strip().lower()
        if not needle:
            return True
        return any(
            needle in value.lower()
            for value in (self.patient_name, self.mrn, self.email)
            if value
        )


class CreatePatientRequest(CamelModel):
    patient_name: str = Field(min_length=1)
    date_of_birth: Optional[str] = None
    mrn: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    demographics: Optional[Demographics] = None

    @field_validator("patient_name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("patient name must not be blank")
        return value.strip()


class UpdatePatientRequest(CamelModel):
    """Partial update; only fields that are set are written."""

    patient_name: Optional[str] = None
    date_of_birth: Optional[str] = None
    mrn: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    demographics: Optional[Demographics] = None

    @field_validator("patient_name")
    @classmethod
    def _name_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("patient name must not be blank")
        return value.strip() if value is not None else value

    def changes(self) -> Dict[str, Any]:
        """Wire-named fields explicitly set on this request."""
        return self.model_dump(
            by_alias=True, mode="json", exclude_unset=True, exclude_none=True
        )


class PatientSearchResult(CamelModel):
    """Minimal projection returned by patient search."""

    patient_id: str
    patient_name: str
    date_of_birth: Optional[str] = None
    mrn: Optional[str] = None
    last_encounter_date: Optional[str] = None
    encounter_count: int = 0


class PatientOption(CamelModel):
    """One autosuggest entry."""

    value: str
    label: str
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    patient_id: Optional[str] = None


class PatientSuggestions(CamelModel):
    options: List[PatientOption] = Field(default_factory=list)
    offer_create: bool = False
    term: str = ""
