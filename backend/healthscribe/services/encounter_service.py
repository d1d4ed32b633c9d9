#!/usr/bin/env python3
"""
Encounter submission and retrieval.

Submitting an encounter is an ordered flow: verify the job parameters, upload
the audio, start the medical scribe job, then update the patient record on a
best-effort basis. A failed upload or job start aborts the flow with an
:class:`~healthscribe.exceptions.EncounterSubmissionError`; patient
bookkeeping failures are only recorded in the side-effect log.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from datetime import datetime
from typing import IO, Any, Callable, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..aws.healthscribe_client import HealthScribeClient
from ..aws.patients_table import PatientRepository
from ..config.settings import HealthScribeSettings
from ..core.storage import S3Backend
from ..exceptions import EncounterSubmissionError, JobParameterError
from ..models.common import utc_now_iso
from ..models.encounter import (
    PATIENT_NAME_TAG,
    PATIENT_TAG,
    PROVIDER_TAG,
    AudioIdentification,
    Encounter,
    JobRequest,
    SubmissionProgress,
    SubmissionResult,
)
from ..models.patient import CreatePatientRequest
from ..models.preferences import ClinicalNoteTemplate, migrate_note_template
from .patient_service import is_placeholder_name
from .side_effects import SideEffectLog

logger = logging.getLogger(__name__)

ProgressListener = Callable[[SubmissionProgress], None]

JOB_NAME_PATTERN = re.compile(r"^[0-9a-zA-Z._-]{1,200}$")
ROLE_ARN_PATTERN = re.compile(r"^arn:(aws|aws-cn|aws-us-gov):iam::\d{12}:role/.+$")
MEDIA_URI_PATTERN = re.compile(r"^(s3://|https://)\S+$")
BUCKET_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9.-]{1,61}[a-z0-9]$")

# Upload progress is scaled to 0-99; the last point is the job submission.
UPLOAD_PROGRESS_CEILING = 99
MAX_TAG_VALUE_LENGTH = 256
TAG_VALUE_INVALID = re.compile(r"[^\w\s.:/=+\-@]")


def _tag_value(value: str) -> str:
    return TAG_VALUE_INVALID.sub("", value.strip())[:MAX_TAG_VALUE_LENGTH]


def make_job_name(patient_name: str, now: Optional[datetime] = None) -> str:
    """Alphanumeric patient name plus the submission time in epoch ms."""
    stamp = int((now.timestamp() if now else time.time()) * 1000)
    return f"{re.sub(r'[^a-zA-Z0-9]', '', patient_name)}-{stamp}"


def verify_job_request(request: JobRequest) -> None:
    """Reject a job request the transcription service would refuse.

    Raises:
        JobParameterError: Describes the first invalid parameter.
    """
    if not JOB_NAME_PATTERN.match(request.job_name):
        raise JobParameterError(
            "Job name must be 1-200 characters of letters, digits, '.', '_' or '-'"
        )
    if not ROLE_ARN_PATTERN.match(request.data_access_role_arn):
        raise JobParameterError(
            f"Invalid data access role ARN: {request.data_access_role_arn!r}"
        )
    if not BUCKET_NAME_PATTERN.match(request.output_bucket):
        raise JobParameterError(f"Invalid output bucket: {request.output_bucket!r}")
    if not MEDIA_URI_PATTERN.match(request.media_uri):
        raise JobParameterError(f"Invalid media file URI: {request.media_uri!r}")


class EncounterService:
    """Encounter submission flow and job lookups."""

    def __init__(
        self,
        storage: S3Backend,
        healthscribe: HealthScribeClient,
        patients: PatientRepository,
        side_effects: SideEffectLog,
        settings: HealthScribeSettings,
    ):
        self.storage = storage
        self.healthscribe = healthscribe
        self.patients = patients
        self.side_effects = side_effects
        self.settings = settings

    def upload_key(self, filename: str) -> str:
        """Key for a new upload: ``{prefix}{uuid4}/{filename}``."""
        prefix = self.settings.upload_key_prefix
        if prefix and not prefix.endswith("/"):
            prefix += "/"
        return f"{prefix}{uuid.uuid4()}/{filename}"

    def build_job_request(
        self,
        job_name: str,
        media_key: str,
        note_template: str,
        provider_id: Optional[str] = None,
        patient_id: Optional[str] = None,
        patient_name: Optional[str] = None,
        audio_identification: Optional[AudioIdentification] = None,
    ) -> JobRequest:
        """Assemble the StartMedicalScribeJob request for an upload key."""
        try:
            template = ClinicalNoteTemplate(migrate_note_template(note_template))
        except ValueError as e:
            raise JobParameterError(f"Unknown note template: {note_template}") from e

        tags: Dict[str, str] = {}
        if provider_id:
            tags[PROVIDER_TAG] = provider_id
        if patient_id:
            tags[PATIENT_TAG] = patient_id
        if patient_name and not is_placeholder_name(patient_name):
            tags[PATIENT_NAME_TAG] = _tag_value(patient_name)

        return JobRequest(
            job_name=job_name,
            media_uri=self.storage.get_url(media_key),
            output_bucket=self.storage.bucket_name or "",
            data_access_role_arn=self.settings.healthscribe_service_role_arn or "",
            note_template=template,
            audio_identification=audio_identification or AudioIdentification(),
            tags=tags,
        )

    def submit(
        self,
        provider_id: Optional[str],
        audio: IO[bytes],
        filename: str,
        patient_name: str,
        note_template: str,
        audio_identification: Optional[AudioIdentification] = None,
        patient_id: Optional[str] = None,
        job_name: Optional[str] = None,
        progress: Optional[ProgressListener] = None,
    ) -> SubmissionResult:
        """
        Upload audio, start the transcription job and update the patient.

        Args:
            provider_id: Signed-in provider; patient bookkeeping needs it.
            audio: Readable binary audio stream.
            filename: Object file name for the upload.
            patient_name: Name typed or selected for the encounter.
            note_template: Clinical note template for the job.
            audio_identification: Speaker partitioning or channel settings.
            patient_id: Existing patient chosen for the encounter, if any.
            job_name: Explicit job name; derived from the patient name if None.
            progress: Receives progress notifications.

        Returns:
            SubmissionResult: The started encounter and any side-effect failures.

        Raises:
            JobParameterError: Invalid parameters; nothing was uploaded.
            EncounterSubmissionError: Upload or job start failed.
        """
        name = job_name or make_job_name(patient_name)
        media_key = self.upload_key(filename)
        request = self.build_job_request(
            name,
            media_key,
            note_template,
            provider_id=provider_id,
            patient_id=patient_id,
            patient_name=patient_name,
            audio_identification=audio_identification,
        )
        verify_job_request(request)

        def notify(value: int, description: str, state: str = "in-progress") -> None:
            if progress is not None:
                progress(
                    SubmissionProgress(
                        job_name=name, value=value, description=description, state=state
                    )
                )

        def on_upload(loaded: int, total: int) -> None:
            value = round((loaded or 1) / (total or 100) * UPLOAD_PROGRESS_CEILING)
            notify(
                min(value, UPLOAD_PROGRESS_CEILING),
                f"Uploaded {round((loaded or 1) / 1024 / 1024)}MB / "
                f"{round((total or 1) / 1024 / 1024)}MB",
            )

        notify(0, "Upload to S3 in progress...")
        try:
            self.storage.upload_file(media_key, audio, callback=on_upload)
        except (ClientError, BotoCoreError, OSError) as e:
            logger.error(f"Audio upload failed for job {name}: {e}")
            notify(0, "Uploading files to S3 failed", "error")
            raise EncounterSubmissionError(
                f"Uploading audio failed: {e}", stage="upload", job_name=name
            ) from e

        try:
            encounter = self.healthscribe.start_job(request)
        except (ClientError, BotoCoreError, ValueError) as e:
            logger.error(f"Starting medical scribe job {name} failed: {e}")
            notify(0, "Submitting job to HealthScribe failed", "error")
            raise EncounterSubmissionError(
                f"Submitting job failed: {e}",
                stage="submit",
                job_name=name,
                uploaded=True,
            ) from e
        notify(100, "HealthScribe job submitted", "success")

        failures_before = len(self.side_effects.failures)
        recorded_patient_id = self._record_patient_encounter(
            provider_id, patient_id, patient_name, name
        )
        new_failures = [
            f.name for f in self.side_effects.failures[failures_before:]
        ]
        return SubmissionResult(
            encounter=encounter,
            media_uri=request.media_uri,
            patient_id=recorded_patient_id,
            side_effect_failures=new_failures,
        )

    def _record_patient_encounter(
        self,
        provider_id: Optional[str],
        patient_id: Optional[str],
        patient_name: str,
        job_name: str,
    ) -> Optional[str]:
        """Best-effort patient bookkeeping after a successful job start."""
        if not provider_id:
            return patient_id
        encounter_date = utc_now_iso()
        context = {"job_name": job_name, "provider_id": provider_id}

        if patient_id:
            self.side_effects.run(
                "record_encounter",
                self.patients.record_encounter,
                patient_id,
                provider_id,
                encounter_date,
                context={**context, "patient_id": patient_id},
            )
            return patient_id

        if is_placeholder_name(patient_name):
            return None

        patient = self.side_effects.run(
            "create_patient",
            self.patients.create,
            provider_id,
            CreatePatientRequest(patient_name=patient_name.strip()),
            context={**context, "patient_name": patient_name},
        )
        if patient is None:
            return None
        self.side_effects.run(
            "record_encounter",
            self.patients.record_encounter,
            patient.patient_id,
            provider_id,
            encounter_date,
            context={**context, "patient_id": patient.patient_id},
        )
        return patient.patient_id

    def list_encounters(
        self,
        provider_id: Optional[str] = None,
        status: Optional[str] = None,
        name_contains: Optional[str] = None,
        max_results: Optional[int] = None,
    ) -> List[Encounter]:
        """List encounters, newest first.

        Job summaries carry no tags, so filtering by provider reads every
        matching job's details and applies ``max_results`` after the filter.
        """
        encounters = self.healthscribe.list_jobs(
            status=status,
            name_contains=name_contains,
            max_results=None if provider_id else max_results,
        )
        if provider_id:
            detailed = [self.healthscribe.get_job(e.encounter_id) for e in encounters]
            encounters = [e for e in detailed if e.provider_id == provider_id]
        encounters = sorted(encounters, key=lambda e: e.created_at or "", reverse=True)
        return encounters[:max_results] if max_results is not None else encounters

    def get_encounter(self, encounter_id: str) -> Encounter:
        return self.healthscribe.get_job(encounter_id)

    def delete_encounter(self, encounter_id: str) -> None:
        """Delete the job; uploaded audio and job output stay in S3."""
        self.healthscribe.delete_job(encounter_id)

    def load_results(self, encounter: Encounter) -> Dict[str, Any]:
        """Load the transcript and clinical document of a completed encounter.

        Returns:
            Dict with ``transcript`` and ``clinicalDocument`` (None when absent).
        """
        results: Dict[str, Any] = {"transcript": None, "clinicalDocument": None}
        for field, uri in (
            ("transcript", encounter.transcript_uri),
            ("clinicalDocument", encounter.clinical_document_uri),
        ):
            if uri:
                results[field] = self.storage.load_json_uri(uri)
        return results
