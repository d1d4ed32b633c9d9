"""Encounter metadata and transcription job requests.

An encounter is one recorded or uploaded audio session submitted to the
medical scribe service. The service's job status is authoritative; the
encounter status only mirrors it.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .common import utc_now_iso
from .preferences import ClinicalNoteTemplate

PROVIDER_TAG = "ProviderId"
PATIENT_TAG = "PatientId"
PATIENT_NAME_TAG = "PatientName"


class EncounterStatus(str, Enum):
    RECORDING = "recording"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def from_job_status(cls, job_status: Optional[str]) -> "EncounterStatus":
        """Map a MedicalScribeJobStatus value to an encounter status."""
        mapping = {
            "QUEUED": cls.PROCESSING,
            "IN_PROGRESS": cls.PROCESSING,
            "COMPLETED": cls.COMPLETED,
            "FAILED": cls.FAILED,
        }
        if job_status not in mapping:
            raise ValueError(f"Unknown job status: {job_status}")
        return mapping[job_status]


class AudioIdentification(BaseModel):
    """How speakers are told apart in the submitted audio."""

    mode: Literal["speakerPartitioning", "channelIdentification"] = (
        "speakerPartitioning"
    )
    max_speakers: int = Field(default=2, ge=2, le=30)
    channel_one_role: Literal["CLINICIAN", "PATIENT"] = "CLINICIAN"

    def to_job_fields(self, note_template: ClinicalNoteTemplate) -> Dict[str, Any]:
        """Settings and channel definitions for StartMedicalScribeJob."""
        note_settings = {"NoteTemplate": note_template.value}
        if self.mode == "speakerPartitioning":
            return {
                "Settings": {
                    "ClinicalNoteGenerationSettings": note_settings,
                    "MaxSpeakerLabels": self.max_speakers,
                    "ShowSpeakerLabels": True,
                }
            }
        other_role = "PATIENT" if self.channel_one_role == "CLINICIAN" else "CLINICIAN"
        return {
            "Settings": {
                "ChannelIdentification": True,
                "ClinicalNoteGenerationSettings": note_settings,
            },
            "ChannelDefinitions": [
                {"ChannelId": 0, "ParticipantRole": self.channel_one_role},
                {"ChannelId": 1, "ParticipantRole": other_role},
            ],
        }


class JobRequest(BaseModel):
    """Parameters of one transcription job submission."""

    job_name: str
    media_uri: str
    output_bucket: str
    data_access_role_arn: str
    note_template: ClinicalNoteTemplate = ClinicalNoteTemplate.HISTORY_AND_PHYSICAL
    audio_identification: AudioIdentification = Field(
        default_factory=AudioIdentification
    )
    tags: Dict[str, str] = Field(default_factory=dict)

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "MedicalScribeJobName": self.job_name,
            "DataAccessRoleArn": self.data_access_role_arn,
            "OutputBucketName": self.output_bucket,
            "Media": {"MediaFileUri": self.media_uri},
        }
        params.update(self.audio_identification.to_job_fields(self.note_template))
        if self.tags:
            params["Tags"] = [
                {"Key": key, "Value": value} for key, value in self.tags.items()
            ]
        return params


def _iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return utc_now_iso(value)
    return str(value)


class Encounter(BaseModel):
    """Encounter metadata mirrored from a medical scribe job."""

    encounter_id: str
    status: EncounterStatus
    job_status: str
    provider_id: Optional[str] = None
    patient_id: Optional[str] = None
    patient_name: Optional[str] = None
    audio_uri: Optional[str] = None
    transcript_uri: Optional[str] = None
    clinical_document_uri: Optional[str] = None
    note_template: Optional[str] = None
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    failure_reason: Optional[str] = None

    @classmethod
    def from_job(cls, job: Dict[str, Any]) -> "Encounter":
        """Build an encounter from a MedicalScribeJob or job summary dict."""
        tags: Dict[str, str] = {
            tag["Key"]: tag["Value"] for tag in job.get("Tags") or []
        }
        output = job.get("MedicalScribeOutput") or {}
        note_settings = (job.get("Settings") or {}).get(
            "ClinicalNoteGenerationSettings"
        ) or {}
        job_status = job.get("MedicalScribeJobStatus")
        return cls(
            encounter_id=job["MedicalScribeJobName"],
            status=EncounterStatus.from_job_status(job_status),
            job_status=job_status,
            provider_id=tags.get(PROVIDER_TAG),
            patient_id=tags.get(PATIENT_TAG),
            patient_name=tags.get(PATIENT_NAME_TAG),
            audio_uri=(job.get("Media") or {}).get("MediaFileUri"),
            transcript_uri=output.get("TranscriptFileUri"),
            clinical_document_uri=output.get("ClinicalDocumentUri"),
            note_template=note_settings.get("NoteTemplate"),
            created_at=_iso(job.get("CreationTime")),
            started_at=_iso(job.get("StartTime")),
            completed_at=_iso(job.get("CompletionTime")),
            failure_reason=job.get("FailureReason"),
        )


class SubmissionProgress(BaseModel):
    """Progress notification emitted while an encounter is submitted."""

    job_name: str
    value: int = Field(ge=0, le=100)
    description: str
    state: Literal["in-progress", "success", "error"] = "in-progress"


class SubmissionResult(BaseModel):
    encounter: Encounter
    media_uri: str
    patient_id: Optional[str] = None
    side_effect_failures: List[str] = Field(default_factory=list)
    redirect_to: str = "/conversations"
