"""Tests for the command-line interface."""

import argparse
import json
from unittest.mock import Mock, patch

import pytest
from botocore.exceptions import ClientError

from healthscribe.cli.main import _parse_assignment, build_parser, main
from healthscribe.exceptions import ConfigurationError
from healthscribe.models.encounter import Encounter, EncounterStatus, SubmissionResult
from healthscribe.models.patient import PatientSearchResult
from healthscribe.models.preferences import DEFAULT_PREFERENCES


@pytest.fixture
def app():
    app = Mock()
    app.provider_id = "provider-1"
    app.preferences.load.return_value = DEFAULT_PREFERENCES
    app.preferences.save.return_value = True
    app.preferences.last_error = None
    return app


@pytest.fixture
def run(app, settings):
    def _run(*argv):
        with patch("healthscribe.cli.main.load_settings", return_value=settings), patch(
            "healthscribe.cli.main.HealthScribeApp.from_settings", return_value=app
        ):
            return main(list(argv))
    return _run


def test_no_command_prints_help(capsys):
    assert main([]) == 1
    assert "usage" in capsys.readouterr().out


def test_configuration_error_exits_2(capsys):
    error = ConfigurationError(
        "Missing required environment variables: HEALTHSCRIBE_API_URL",
        missing=["HEALTHSCRIBE_API_URL"],
    )
    with patch("healthscribe.cli.main.load_settings", side_effect=error):
        assert main(["preferences", "show"]) == 2

    assert "HEALTHSCRIBE_API_URL" in capsys.readouterr().err


def test_invalid_environment_value_exits_2(monkeypatch, capsys):
    env = {
        "HEALTHSCRIBE_AWS_REGION": "us-east-1",
        "HEALTHSCRIBE_USER_POOL_ID": "us-east-1_Pool",
        "HEALTHSCRIBE_USER_POOL_CLIENT_ID": "client",
        "HEALTHSCRIBE_IDENTITY_POOL_ID": "us-east-1:identity",
        "HEALTHSCRIBE_STORAGE_BUCKET": "audio-bucket",
        "HEALTHSCRIBE_HEALTHSCRIBE_SERVICE_ROLE_ARN": "arn:aws:iam::123456789012:role/Scribe",
        "HEALTHSCRIBE_API_URL": "https://api.example.com",
        "HEALTHSCRIBE_LOG_LEVEL": "verbose",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)

    with patch("healthscribe.cli.main.HealthScribeApp.from_settings") as from_settings:
        assert main(["preferences", "show"]) == 2

    assert "HEALTHSCRIBE_LOG_LEVEL" in capsys.readouterr().err
    from_settings.assert_not_called()


class TestPreferencesCommands:
    def test_show(self, run, capsys):
        assert run("preferences", "show") == 0

        output = json.loads(capsys.readouterr().out)
        assert output["defaultNoteTemplate"] == "HISTORY_AND_PHYSICAL"

    def test_show_warns_on_remote_failure(self, run, app, capsys):
        app.preferences.last_error = RuntimeError("503")

        assert run("preferences", "show") == 0
        assert "using local copy" in capsys.readouterr().err

    def test_set_parses_values(self, run, app):
        assert run("preferences", "set", "skipInterval=10", "providerName=Dr Who") == 0

        saved = app.preferences.save.call_args[0][0]
        assert saved.skip_interval == 10
        assert saved.provider_name == "Dr Who"

    def test_set_invalid_value_exits_1(self, run, app, capsys):
        assert run("preferences", "set", "confidenceThreshold=500") == 1
        app.preferences.save.assert_not_called()

    def test_template_disable(self, run, app):
        assert run("preferences", "template", "DAP", "--disable") == 0

        app.preferences.set_note_template.assert_called_once_with(
            DEFAULT_PREFERENCES, "DAP", False
        )


class TestPatientCommands:
    def test_search(self, run, app, capsys):
        app.patients.search.return_value = [
            PatientSearchResult(patient_id="p-1", patient_name="John Roe")
        ]

        assert run("patients", "search", "jo") == 0

        app.patients.search.assert_called_once_with("provider-1", "jo", 50)
        assert json.loads(capsys.readouterr().out)[0]["patientName"] == "John Roe"

    def test_search_requires_signed_in_provider(self, run, app, capsys):
        app.provider_id = None

        assert run("patients", "search", "jo") == 2
        assert "HEALTHSCRIBE_AUTHENTICATED_USER_ID" in capsys.readouterr().err
        app.patients.search.assert_not_called()

    def test_delete(self, run, app):
        assert run("patients", "delete", "p-1") == 0

        app.patients.repository.soft_delete.assert_called_once_with("p-1", "provider-1")


class TestEncounterCommands:
    def test_submit_uses_preferred_template(self, run, app, tmp_path):
        audio = tmp_path / "visit.wav"
        audio.write_bytes(b"RIFF")
        app.encounters.submit.return_value = SubmissionResult(
            encounter=Encounter(
                encounter_id="Jane-1",
                status=EncounterStatus.PROCESSING,
                job_status="IN_PROGRESS",
            ),
            media_uri="s3://bucket/uploads/x/visit.wav",
        )

        assert run("encounters", "submit", str(audio), "--patient-name", "Jane") == 0

        args, kwargs = app.encounters.submit.call_args
        assert args[0] == "provider-1"
        assert args[2:] == ("visit.wav", "Jane", "HISTORY_AND_PHYSICAL")
        assert kwargs["audio_identification"].max_speakers == 2

    def test_aws_error_exits_1(self, run, app, capsys):
        app.encounters.get_encounter.side_effect = ClientError(
            {"Error": {"Code": "BadRequestException", "Message": "no such job"}},
            "GetMedicalScribeJob",
        )

        assert run("encounters", "show", "missing") == 1
        assert "no such job" in capsys.readouterr().err


class TestParser:
    def test_parse_assignment_reads_json_values(self):
        assert _parse_assignment("autoScroll=false") == {"autoScroll": False}
        assert _parse_assignment("providerName=Dr Who") == {"providerName": "Dr Who"}

    def test_parse_assignment_requires_equals(self):
        with pytest.raises(argparse.ArgumentTypeError):
            _parse_assignment("autoScroll")

    def test_template_toggle_is_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["preferences", "template", "DAP"])
