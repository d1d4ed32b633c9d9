#!/usr/bin/env python3
"""
Command-line interface for Naina HealthScribe.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..app import HealthScribeApp
from ..config.settings import load_settings
from ..exceptions import ConfigurationError, HealthScribeError
from ..models.encounter import AudioIdentification, SubmissionProgress
from ..models.patient import CreatePatientRequest, UpdatePatientRequest
from ..models.preferences import ClinicalNoteTemplate


def setup_logging(level: str = "INFO", fmt: Optional[str] = None):
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=fmt or "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _parse_assignment(text: str) -> Dict[str, Any]:
    """Parse ``key=value``; the value is read as JSON when it parses."""
    key, sep, raw = text.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"Expected key=value, got {text!r}")
    try:
        value = json.loads(raw)
    except ValueError:
        value = raw
    return {key.strip(): value}


def _require_provider(app: HealthScribeApp) -> str:
    if not app.provider_id:
        raise ConfigurationError(
            "Patient and encounter commands need HEALTHSCRIBE_AUTHENTICATED_USER_ID",
            missing=["HEALTHSCRIBE_AUTHENTICATED_USER_ID"],
        )
    return app.provider_id


def _warn_on_remote_error(app: HealthScribeApp) -> None:
    if app.preferences.last_error is not None:
        print(
            f"Warning: preferences API unavailable ({app.preferences.last_error}); "
            "using local copy",
            file=sys.stderr,
        )


# Preferences


def preferences_show_command(app: HealthScribeApp, args) -> int:
    preferences = app.preferences.load()
    _warn_on_remote_error(app)
    _print_json(preferences.to_wire())
    return 0


def preferences_set_command(app: HealthScribeApp, args) -> int:
    updates: Dict[str, Any] = {}
    for assignment in args.assignments:
        updates.update(assignment)
    current = app.preferences.load()
    saved = app.preferences.save(current.with_updates(updates))
    if not saved:
        print(
            f"Warning: preferences saved locally only ({app.preferences.last_error})",
            file=sys.stderr,
        )
    print("Preferences updated")
    return 0


def preferences_template_command(app: HealthScribeApp, args) -> int:
    current = app.preferences.load()
    saved = app.preferences.set_note_template(current, args.template, args.enable)
    state = "enabled" if args.enable else "disabled"
    print(f"Note template {args.template} {state}")
    if not saved:
        print("Warning: change saved locally only", file=sys.stderr)
    return 0


def preferences_reset_command(app: HealthScribeApp, args) -> int:
    saved = app.preferences.reset()
    print("Preferences reset to defaults")
    if not saved:
        print("Warning: reset saved locally only", file=sys.stderr)
    return 0


# Patients


def patients_search_command(app: HealthScribeApp, args) -> int:
    provider_id = _require_provider(app)
    results = app.patients.search(provider_id, args.term or "", args.limit)
    _print_json([result.to_wire() for result in results])
    return 0


def patients_create_command(app: HealthScribeApp, args) -> int:
    provider_id = _require_provider(app)
    request = CreatePatientRequest(
        patient_name=args.name,
        date_of_birth=args.dob,
        mrn=args.mrn,
        phone_number=args.phone,
        email=args.email,
    )
    patient = app.patients.create(provider_id, request)
    _print_json(patient.to_wire(exclude_none=True))
    return 0


def patients_update_command(app: HealthScribeApp, args) -> int:
    provider_id = _require_provider(app)
    fields = {
        "patient_name": args.name,
        "date_of_birth": args.dob,
        "mrn": args.mrn,
        "phone_number": args.phone,
        "email": args.email,
    }
    request = UpdatePatientRequest(**{k: v for k, v in fields.items() if v is not None})
    patient = app.patients.repository.update(args.patient_id, provider_id, request)
    _print_json(patient.to_wire(exclude_none=True))
    return 0


def patients_delete_command(app: HealthScribeApp, args) -> int:
    provider_id = _require_provider(app)
    app.patients.repository.soft_delete(args.patient_id, provider_id)
    print(f"Patient {args.patient_id} deleted")
    return 0


def patients_recent_command(app: HealthScribeApp, args) -> int:
    provider_id = _require_provider(app)
    results = app.patients.repository.recent(provider_id, args.limit)
    _print_json([result.to_wire() for result in results])
    return 0


# Encounters


def _print_progress(progress: SubmissionProgress) -> None:
    print(f"[{progress.value:3d}%] {progress.description}", file=sys.stderr)


def encounters_submit_command(app: HealthScribeApp, args) -> int:
    provider_id = _require_provider(app)
    audio_path = Path(args.audio)
    note_template = args.note_template
    if not note_template:
        note_template = app.preferences.load().default_note_template.value

    if args.channel_identification:
        identification = AudioIdentification(
            mode="channelIdentification", channel_one_role=args.clinician_channel
        )
    else:
        identification = AudioIdentification(max_speakers=args.max_speakers)

    with open(audio_path, "rb") as audio:
        result = app.encounters.submit(
            provider_id,
            audio,
            audio_path.name,
            args.patient_name,
            note_template,
            audio_identification=identification,
            patient_id=args.patient_id,
            job_name=args.job_name,
            progress=_print_progress,
        )

    for failure in result.side_effect_failures:
        print(f"Warning: {failure} did not complete", file=sys.stderr)
    _print_json(result.model_dump(mode="json"))
    return 0


def encounters_list_command(app: HealthScribeApp, args) -> int:
    provider_id = app.provider_id if args.mine else None
    encounters = app.encounters.list_encounters(
        provider_id=provider_id,
        status=args.status,
        name_contains=args.name_contains,
        max_results=args.limit,
    )
    _print_json([encounter.model_dump(mode="json") for encounter in encounters])
    return 0


def encounters_show_command(app: HealthScribeApp, args) -> int:
    encounter = app.encounters.get_encounter(args.encounter_id)
    data: Dict[str, Any] = {"encounter": encounter.model_dump(mode="json")}
    if args.results:
        data.update(app.encounters.load_results(encounter))
    _print_json(data)
    return 0


def encounters_delete_command(app: HealthScribeApp, args) -> int:
    app.encounters.delete_encounter(args.encounter_id)
    print(f"Encounter {args.encounter_id} deleted")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="healthscribe",
        description="Naina HealthScribe",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Global options
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set logging level (overrides config)",
    )
    parser.add_argument("--aws-profile", help="AWS profile to use")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Preferences
    prefs = subparsers.add_parser("preferences", help="Manage provider preferences")
    prefs_sub = prefs.add_subparsers(dest="action")
    prefs_sub.add_parser("show", help="Show current preferences").set_defaults(
        func=preferences_show_command
    )
    set_parser = prefs_sub.add_parser("set", help="Update preference fields")
    set_parser.add_argument(
        "assignments",
        nargs="+",
        type=_parse_assignment,
        metavar="KEY=VALUE",
        help="Field to update, e.g. skipInterval=10",
    )
    set_parser.set_defaults(func=preferences_set_command)
    template_parser = prefs_sub.add_parser(
        "template", help="Enable or disable a note template"
    )
    template_parser.add_argument("template", help="Note template name")
    toggle = template_parser.add_mutually_exclusive_group(required=True)
    toggle.add_argument("--enable", dest="enable", action="store_true")
    toggle.add_argument("--disable", dest="enable", action="store_false")
    template_parser.set_defaults(func=preferences_template_command)
    prefs_sub.add_parser("reset", help="Restore default preferences").set_defaults(
        func=preferences_reset_command
    )

    # Patients
    patients = subparsers.add_parser("patients", help="Manage patient records")
    patients_sub = patients.add_subparsers(dest="action")
    search = patients_sub.add_parser("search", help="Search patients")
    search.add_argument("term", nargs="?", default="", help="Name, MRN or email")
    search.add_argument("--limit", type=int, default=50)
    search.set_defaults(func=patients_search_command)

    create = patients_sub.add_parser("create", help="Create a patient")
    create.add_argument("name", help="Patient name")
    update = patients_sub.add_parser("update", help="Update a patient")
    update.add_argument("patient_id")
    update.add_argument("--name")
    for sub in (create, update):
        sub.add_argument("--dob", help="Date of birth (YYYY-MM-DD)")
        sub.add_argument("--mrn", help="Medical record number")
        sub.add_argument("--phone")
        sub.add_argument("--email")
    create.set_defaults(func=patients_create_command)
    update.set_defaults(func=patients_update_command)

    delete = patients_sub.add_parser("delete", help="Deactivate a patient")
    delete.add_argument("patient_id")
    delete.set_defaults(func=patients_delete_command)

    recent = patients_sub.add_parser("recent", help="Recently seen patients")
    recent.add_argument("--limit", type=int, default=10)
    recent.set_defaults(func=patients_recent_command)

    # Encounters
    encounters = subparsers.add_parser("encounters", help="Manage encounters")
    encounters_sub = encounters.add_subparsers(dest="action")
    submit = encounters_sub.add_parser("submit", help="Submit recorded audio")
    submit.add_argument("audio", help="Audio file to upload")
    submit.add_argument("--patient-name", required=True)
    submit.add_argument("--patient-id", help="Existing patient for the encounter")
    submit.add_argument(
        "--note-template",
        choices=[t.value for t in ClinicalNoteTemplate],
        help="Defaults to the preferred note template",
    )
    submit.add_argument("--job-name", help="Override the generated job name")
    submit.add_argument("--max-speakers", type=int, default=2)
    submit.add_argument(
        "--channel-identification",
        action="store_true",
        help="Identify speakers by audio channel instead of partitioning",
    )
    submit.add_argument(
        "--clinician-channel",
        choices=["CLINICIAN", "PATIENT"],
        default="CLINICIAN",
        help="Participant role of channel 0",
    )
    submit.set_defaults(func=encounters_submit_command)

    listing = encounters_sub.add_parser("list", help="List encounters")
    listing.add_argument(
        "--status", choices=["QUEUED", "IN_PROGRESS", "COMPLETED", "FAILED"]
    )
    listing.add_argument("--name-contains")
    listing.add_argument("--limit", type=int)
    listing.add_argument(
        "--mine", action="store_true", help="Only encounters of the signed-in provider"
    )
    listing.set_defaults(func=encounters_list_command)

    show = encounters_sub.add_parser("show", help="Show one encounter")
    show.add_argument("encounter_id")
    show.add_argument(
        "--results", action="store_true", help="Include transcript and clinical note"
    )
    show.set_defaults(func=encounters_show_command)

    remove = encounters_sub.add_parser("delete", help="Delete an encounter job")
    remove.add_argument("encounter_id")
    remove.set_defaults(func=encounters_delete_command)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not getattr(args, "func", None):
        parser.print_help()
        return 1

    overrides: Dict[str, Any] = {}
    if args.aws_profile:
        overrides["aws_profile"] = args.aws_profile

    try:
        settings = load_settings(**overrides)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(args.log_level or settings.log_level, settings.log_format)

    try:
        app = HealthScribeApp.from_settings(settings)
        return args.func(app, args)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except (HealthScribeError, ClientError, BotoCoreError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
