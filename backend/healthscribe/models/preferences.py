"""Per-user settings record.

One record is stored per user identity. Reads always merge the stored fields
over :data:`DEFAULT_PREFERENCES` and migrate the two renamed note template
members, so a loaded record is complete and never carries a legacy value.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import PreferencesValidationError
from .common import CamelModel, utc_now_iso

PREFERENCES_SK = "PREFERENCES"


class MedicalSpecialty(str, Enum):
    FAMILY_MEDICINE = "FAMILY_MEDICINE"
    INTERNAL_MEDICINE = "INTERNAL_MEDICINE"
    PEDIATRICS = "PEDIATRICS"
    CARDIOLOGY = "CARDIOLOGY"
    DERMATOLOGY = "DERMATOLOGY"
    EMERGENCY_MEDICINE = "EMERGENCY_MEDICINE"
    ENDOCRINOLOGY = "ENDOCRINOLOGY"
    GASTROENTEROLOGY = "GASTROENTEROLOGY"
    NEUROLOGY = "NEUROLOGY"
    ONCOLOGY = "ONCOLOGY"
    ORTHOPEDICS = "ORTHOPEDICS"
    PSYCHIATRY = "PSYCHIATRY"
    RADIOLOGY = "RADIOLOGY"
    SURGERY = "SURGERY"
    UROLOGY = "UROLOGY"
    OTHER = "OTHER"


class ClinicalNoteTemplate(str, Enum):
    """Note templates accepted by the medical scribe service."""

    HISTORY_AND_PHYSICAL = "HISTORY_AND_PHYSICAL"
    GIRPP = "GIRPP"
    BIRP = "BIRP"
    SIRP = "SIRP"
    DAP = "DAP"
    BEHAVIORAL_SOAP = "BEHAVIORAL_SOAP"
    PHYSICAL_SOAP = "PHYSICAL_SOAP"


class BillingCycle(str, Enum):
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class DefaultTab(str, Enum):
    TRANSCRIPT = "transcript"
    CLINICAL_NOTE = "clinical-note"
    INSIGHTS = "insights"


# Renamed template members; old values may still be stored remotely or locally.
LEGACY_TEMPLATE_NAMES: Dict[str, ClinicalNoteTemplate] = {
    "BH_SOAP": ClinicalNoteTemplate.BEHAVIORAL_SOAP,
    "PH_SOAP": ClinicalNoteTemplate.PHYSICAL_SOAP,
}


def migrate_note_template(template: str) -> str:
    """Map a legacy note template name to its current value."""
    value = template.value if isinstance(template, Enum) else str(template)
    migrated = LEGACY_TEMPLATE_NAMES.get(value)
    return migrated.value if migrated else value


def migrate_note_templates(templates: List[str]) -> List[str]:
    """Migrate a list of note template names, preserving order."""
    return [migrate_note_template(template) for template in templates]


class UserPreferences(CamelModel):
    """Provider preferences controlling UI defaults and enabled note formats."""

    # Provider Information
    provider_name: str = ""
    provider_specialty: MedicalSpecialty = MedicalSpecialty.FAMILY_MEDICINE

    # Clinical Note Preferences
    enabled_note_templates: List[ClinicalNoteTemplate] = Field(
        default_factory=lambda: list(ClinicalNoteTemplate)
    )
    default_note_template: ClinicalNoteTemplate = (
        ClinicalNoteTemplate.HISTORY_AND_PHYSICAL
    )

    # Medical Entity Extraction
    comprehend_medical_enabled: bool = True

    # Billing
    billing_cycle: BillingCycle = BillingCycle.MONTHLY

    # App Settings
    region: str = "us-east-1"
    api_timing: bool = False

    # Audio Preferences
    default_playback_speed: float = Field(default=1, gt=0, le=4)
    skip_interval: int = Field(default=5, ge=1)
    auto_scroll: bool = True

    # UI Preferences
    default_tab: DefaultTab = DefaultTab.TRANSCRIPT
    small_talk_default: bool = False
    silence_default: bool = False

    # Insights Preferences
    confidence_threshold: int = Field(default=75, ge=0, le=100)
    auto_extract: bool = False

    def with_template(
        self, template: str, enabled: bool
    ) -> "UserPreferences":
        """Return a copy with one note template enabled or disabled.

        Args:
            template: Template name; legacy names are migrated.
            enabled: Whether the template should be enabled.

        Returns:
            UserPreferences: Updated copy. When the current default template is
            removed, the first remaining template becomes the default.

        Raises:
            PreferencesValidationError: If the template is unknown or removing
                it would leave no enabled template.
        """
        try:
            target = ClinicalNoteTemplate(migrate_note_template(template))
        except ValueError as e:
            raise PreferencesValidationError(
                f"Unknown note template: {template}"
            ) from e

        templates = list(self.enabled_note_templates)
        if enabled:
            if target not in templates:
                templates.append(target)
        else:
            templates = [t for t in templates if t != target]
            if not templates:
                raise PreferencesValidationError(
                    "At least one note template must remain enabled"
                )

        default = (
            self.default_note_template
            if self.default_note_template in templates
            else templates[0]
        )
        return self.model_copy(
            update={
                "enabled_note_templates": templates,
                "default_note_template": default,
            }
        )

    def with_updates(self, updates: Mapping[str, Any]) -> "UserPreferences":
        """Return a validated copy with the given fields replaced.

        Keys may use either the camelCase wire names or the attribute names.

        Raises:
            PreferencesValidationError: On unknown fields or invalid values.
        """
        data = self.to_wire()
        for key, value in updates.items():
            wire_key = _wire_key(key)
            if wire_key is None:
                raise PreferencesValidationError(f"Unknown preference: {key}")
            data[wire_key] = value
        if not isinstance(data["enabledNoteTemplates"], (list, tuple)):
            raise PreferencesValidationError("enabledNoteTemplates must be a list")
        data["enabledNoteTemplates"] = migrate_note_templates(
            list(data["enabledNoteTemplates"])
        )
        data["defaultNoteTemplate"] = migrate_note_template(data["defaultNoteTemplate"])
        if not data["enabledNoteTemplates"]:
            raise PreferencesValidationError(
                "At least one note template must remain enabled"
            )
        if data["defaultNoteTemplate"] not in data["enabledNoteTemplates"]:
            data["defaultNoteTemplate"] = data["enabledNoteTemplates"][0]
        try:
            return UserPreferences.model_validate(data)
        except ValidationError as e:
            raise PreferencesValidationError(str(e)) from e


DEFAULT_PREFERENCES = UserPreferences()

_FIELD_ALIASES: Dict[str, str] = {
    name: field.alias for name, field in UserPreferences.model_fields.items()
}
_WIRE_KEYS = set(_FIELD_ALIASES.values())


def _wire_key(key: str) -> Optional[str]:
    if key in _WIRE_KEYS:
        return key
    return _FIELD_ALIASES.get(key)


def merge_with_defaults(data: Optional[Mapping[str, Any]]) -> UserPreferences:
    """Merge stored preference fields over the defaults.

    Stored values win; missing fields come from :data:`DEFAULT_PREFERENCES`.
    Legacy template names are migrated, unknown templates are dropped, and any
    field whose stored value does not validate falls back to its default.

    Args:
        data: Stored preference fields (camelCase or attribute names).

    Returns:
        UserPreferences: A complete record.
    """
    defaults = DEFAULT_PREFERENCES.to_wire()
    merged = dict(defaults)
    for key, value in (data or {}).items():
        wire_key = _wire_key(key)
        if wire_key is not None and value is not None:
            merged[wire_key] = value

    valid_templates = {t.value for t in ClinicalNoteTemplate}
    raw_templates = merged["enabledNoteTemplates"]
    if not isinstance(raw_templates, (list, tuple)):
        raw_templates = defaults["enabledNoteTemplates"]
    templates: List[str] = []
    for template in migrate_note_templates(list(raw_templates)):
        if template in valid_templates and template not in templates:
            templates.append(template)
    if not templates:
        templates = list(defaults["enabledNoteTemplates"])
    merged["enabledNoteTemplates"] = templates

    default_template = migrate_note_template(merged["defaultNoteTemplate"])
    if default_template not in templates:
        default_template = templates[0]
    merged["defaultNoteTemplate"] = default_template

    try:
        return UserPreferences.model_validate(merged)
    except ValidationError as exc:
        for error in exc.errors():
            key = error["loc"][0] if error["loc"] else None
            if key in defaults:
                merged[key] = defaults[key]
        return UserPreferences.model_validate(merged)


def user_pk(user_id: str) -> str:
    """Partition key for a user's preferences item."""
    return f"USER#{user_id}"


class PreferencesRecord(BaseModel):
    """Stored preferences item: ``USER#{userId}`` / ``PREFERENCES``."""

    model_config = ConfigDict(populate_by_name=True)

    pk: str = Field(alias="PK")
    sk: str = Field(default=PREFERENCES_SK, alias="SK")
    preferences: UserPreferences
    version: int = Field(default=1, ge=1)
    created_at: str = Field(alias="createdAt")
    updated_at: str = Field(alias="updatedAt")

    @classmethod
    def new(cls, user_id: str, preferences: UserPreferences) -> "PreferencesRecord":
        """Create the first record for a user."""
        now = utc_now_iso()
        return cls(
            pk=user_pk(user_id),
            preferences=preferences,
            version=1,
            created_at=now,
            updated_at=now,
        )

    def replaced(self, preferences: UserPreferences) -> "PreferencesRecord":
        """Return the next version of this record holding ``preferences``."""
        return self.model_copy(
            update={
                "preferences": preferences,
                "version": self.version + 1,
                "updated_at": utc_now_iso(),
            }
        )

    def to_item(self) -> Dict[str, Any]:
        """Plain item dict using the stored attribute names."""
        return {
            "PK": self.pk,
            "SK": self.sk,
            "preferences": self.preferences.to_wire(),
            "version": self.version,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
