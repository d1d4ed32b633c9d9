"""Tests for the medical scribe job accessor and encounter models."""

from datetime import UTC, datetime
from unittest.mock import Mock

import pytest

from healthscribe.aws.healthscribe_client import HealthScribeClient
from healthscribe.models.encounter import (
    AudioIdentification,
    Encounter,
    EncounterStatus,
    JobRequest,
)
from healthscribe.models.preferences import ClinicalNoteTemplate

ROLE_ARN = "arn:aws:iam::123456789012:role/Scribe"


def job(name="Jane-1", status="COMPLETED", **extra):
    data = {
        "MedicalScribeJobName": name,
        "MedicalScribeJobStatus": status,
        "CreationTime": datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC),
    }
    data.update(extra)
    return data


@pytest.fixture
def transcribe():
    return Mock()


@pytest.fixture
def client(transcribe):
    return HealthScribeClient(transcribe)


class TestJobRequest:
    def test_speaker_partitioning_params(self):
        request = JobRequest(
            job_name="Jane-1",
            media_uri="s3://bucket/uploads/x/a.wav",
            output_bucket="bucket",
            data_access_role_arn=ROLE_ARN,
            note_template=ClinicalNoteTemplate.DAP,
            audio_identification=AudioIdentification(max_speakers=3),
            tags={"ProviderId": "P1"},
        )

        params = request.to_params()

        assert params["MedicalScribeJobName"] == "Jane-1"
        assert params["Media"] == {"MediaFileUri": "s3://bucket/uploads/x/a.wav"}
        assert params["Settings"] == {
            "ClinicalNoteGenerationSettings": {"NoteTemplate": "DAP"},
            "MaxSpeakerLabels": 3,
            "ShowSpeakerLabels": True,
        }
        assert "ChannelDefinitions" not in params
        assert params["Tags"] == [{"Key": "ProviderId", "Value": "P1"}]

    def test_channel_identification_params(self):
        request = JobRequest(
            job_name="Jane-1",
            media_uri="s3://bucket/a.wav",
            output_bucket="bucket",
            data_access_role_arn=ROLE_ARN,
            audio_identification=AudioIdentification(
                mode="channelIdentification", channel_one_role="PATIENT"
            ),
        )

        params = request.to_params()

        assert params["Settings"]["ChannelIdentification"] is True
        assert "MaxSpeakerLabels" not in params["Settings"]
        assert params["ChannelDefinitions"] == [
            {"ChannelId": 0, "ParticipantRole": "PATIENT"},
            {"ChannelId": 1, "ParticipantRole": "CLINICIAN"},
        ]
        assert "Tags" not in params

    def test_max_speakers_bounds(self):
        with pytest.raises(ValueError):
            AudioIdentification(max_speakers=1)


class TestEncounterFromJob:
    def test_full_job(self):
        encounter = Encounter.from_job(
            job(
                Tags=[
                    {"Key": "ProviderId", "Value": "P1"},
                    {"Key": "PatientId", "Value": "pat-1"},
                ],
                Media={"MediaFileUri": "s3://bucket/a.wav"},
                MedicalScribeOutput={
                    "TranscriptFileUri": "https://s3.us-east-1.amazonaws.com/b/t.json",
                    "ClinicalDocumentUri": "https://s3.us-east-1.amazonaws.com/b/c.json",
                },
                Settings={"ClinicalNoteGenerationSettings": {"NoteTemplate": "GIRPP"}},
            )
        )

        assert encounter.encounter_id == "Jane-1"
        assert encounter.status == EncounterStatus.COMPLETED
        assert encounter.provider_id == "P1"
        assert encounter.patient_id == "pat-1"
        assert encounter.note_template == "GIRPP"
        assert encounter.transcript_uri.endswith("t.json")
        assert encounter.created_at == "2026-01-02T03:04:05.000Z"

    @pytest.mark.parametrize(
        "job_status, status",
        [
            ("QUEUED", EncounterStatus.PROCESSING),
            ("IN_PROGRESS", EncounterStatus.PROCESSING),
            ("FAILED", EncounterStatus.FAILED),
        ],
    )
    def test_status_mapping(self, job_status, status):
        assert Encounter.from_job(job(status=job_status)).status == status

    def test_missing_status_is_rejected(self):
        with pytest.raises(ValueError):
            Encounter.from_job({"MedicalScribeJobName": "x"})


class TestHealthScribeClient:
    def test_start_job(self, client, transcribe):
        transcribe.start_medical_scribe_job.return_value = {
            "MedicalScribeJob": job(status="IN_PROGRESS")
        }
        request = JobRequest(
            job_name="Jane-1",
            media_uri="s3://bucket/a.wav",
            output_bucket="bucket",
            data_access_role_arn=ROLE_ARN,
        )

        encounter = client.start_job(request)

        transcribe.start_medical_scribe_job.assert_called_once_with(**request.to_params())
        assert encounter.status == EncounterStatus.PROCESSING

    def test_start_job_without_status_fails(self, client, transcribe):
        transcribe.start_medical_scribe_job.return_value = {}
        request = JobRequest(
            job_name="Jane-1",
            media_uri="s3://bucket/a.wav",
            output_bucket="bucket",
            data_access_role_arn=ROLE_ARN,
        )

        with pytest.raises(ValueError):
            client.start_job(request)

    def test_get_job(self, client, transcribe):
        transcribe.get_medical_scribe_job.return_value = {"MedicalScribeJob": job()}

        assert client.get_job("Jane-1").encounter_id == "Jane-1"
        transcribe.get_medical_scribe_job.assert_called_once_with(
            MedicalScribeJobName="Jane-1"
        )

    def test_list_jobs_follows_pages(self, client, transcribe):
        transcribe.list_medical_scribe_jobs.side_effect = [
            {"MedicalScribeJobSummaries": [job("a"), job("b")], "NextToken": "t1"},
            {"MedicalScribeJobSummaries": [job("c")]},
        ]

        encounters = client.list_jobs(status="COMPLETED", name_contains="a")

        assert [e.encounter_id for e in encounters] == ["a", "b", "c"]
        second_call = transcribe.list_medical_scribe_jobs.call_args_list[1][1]
        assert second_call["NextToken"] == "t1"
        assert second_call["Status"] == "COMPLETED"
        assert second_call["JobNameContains"] == "a"

    def test_list_jobs_respects_max_results(self, client, transcribe):
        transcribe.list_medical_scribe_jobs.return_value = {
            "MedicalScribeJobSummaries": [job("a"), job("b")],
            "NextToken": "more",
        }

        encounters = client.list_jobs(max_results=2)

        assert len(encounters) == 2
        assert transcribe.list_medical_scribe_jobs.call_count == 1
        assert transcribe.list_medical_scribe_jobs.call_args[1]["MaxResults"] == 2

    def test_delete_job(self, client, transcribe):
        client.delete_job("Jane-1")

        transcribe.delete_medical_scribe_job.assert_called_once_with(
            MedicalScribeJobName="Jane-1"
        )
