"""Tests for the user preferences Lambda handler (moto DynamoDB)."""

import json
from decimal import Decimal

import pytest

pytestmark = pytest.mark.aws

USER = "sub-123"


def event(method, user_id=USER, body=None, claims_sub=USER):
    evt = {
        "httpMethod": method,
        "pathParameters": {"userId": user_id} if user_id else None,
        "requestContext": {},
        "body": None,
    }
    if claims_sub is not None:
        evt["requestContext"]["authorizer"] = {"claims": {"sub": claims_sub}}
    if body is not None:
        evt["body"] = body if isinstance(body, str) else json.dumps(body)
    return evt


@pytest.fixture
def call(preferences_lambda, lambda_context):
    def _call(*args, **kwargs):
        response = preferences_lambda.handler(event(*args, **kwargs), lambda_context)
        return response["statusCode"], json.loads(response["body"]), response
    return _call


class TestRouting:
    def test_options_preflight(self, call):
        status, _, response = call("OPTIONS", user_id=None)

        assert status == 200
        assert response["headers"]["Access-Control-Allow-Origin"] == "*"
        assert "PATCH" in response["headers"]["Access-Control-Allow-Methods"]

    def test_missing_user_id(self, call):
        status, body, _ = call("GET", user_id=None)

        assert status == 400
        assert "userId" in body["error"]

    def test_caller_must_match_path_user(self, call):
        status, body, _ = call("GET", claims_sub="someone-else")

        assert status == 403
        assert body == {"error": "Forbidden"}

    def test_unsupported_method(self, call):
        status, body, _ = call("POST", body={})

        assert status == 405
        assert body["error"] == "Method not allowed"

    def test_invalid_json(self, call):
        status, body, _ = call("PUT", body="{not json")

        assert status == 400
        assert body["error"] == "Invalid JSON in request body"

    def test_non_object_body(self, call):
        status, _, _ = call("PUT", body=[1, 2])

        assert status == 400

    def test_unhandled_error_is_500(self, call, preferences_lambda, monkeypatch):
        def broken(user_id):
            raise RuntimeError("boom")

        monkeypatch.setattr(preferences_lambda, "load_record", broken)

        status, body, response = call("GET")

        assert status == 500
        assert body == {"error": "Internal server error"}
        assert response["headers"]["Content-Type"] == "application/json"


class TestGetAndPut:
    def test_get_missing_record(self, call):
        status, body, _ = call("GET")

        assert status == 404
        assert body == {"error": "Preferences not found"}

    def test_put_bare_body_then_get(self, call):
        status, body, _ = call("PUT", body={"providerName": "Dr. Who", "skipInterval": 10})

        assert status == 200
        assert body["version"] == 1
        assert body["message"] == "Preferences saved successfully"
        assert body["preferences"]["providerName"] == "Dr. Who"
        # unspecified fields come from the defaults
        assert body["preferences"]["autoScroll"] is True

        status, body, _ = call("GET")

        assert status == 200
        assert body["preferences"]["skipInterval"] == 10
        assert body["createdAt"] == body["updatedAt"]

    def test_put_wrapped_body(self, call):
        status, body, _ = call("PUT", body={"preferences": {"defaultTab": "insights"}})

        assert status == 200
        assert body["preferences"]["defaultTab"] == "insights"

    def test_put_increments_version_and_keeps_created_at(self, call):
        _, first, _ = call("PUT", body={"skipInterval": 10})
        _, second, _ = call("PUT", body={"skipInterval": 15})

        assert second["version"] == first["version"] + 1
        assert second["createdAt"] == first["createdAt"]
        assert second["updatedAt"] >= first["updatedAt"]

    def test_put_replaces_rather_than_merges(self, call):
        call("PUT", body={"providerName": "Dr. Who"})

        _, body, _ = call("PUT", body={"skipInterval": 10})

        assert body["preferences"]["providerName"] == ""

    @pytest.mark.parametrize(
        "fields",
        [
            {"confidenceThreshold": 150},
            {"enabledNoteTemplates": []},
            {"noSuchField": 1},
            {"defaultTab": "billing"},
        ],
    )
    def test_put_rejects_invalid_values(self, call, fields):
        status, body, _ = call("PUT", body=fields)

        assert status == 400
        assert body["error"]
        assert call("GET")[0] == 404

    def test_fractional_playback_speed_round_trips(self, call, preferences_table):
        call("PUT", body={"defaultPlaybackSpeed": 1.5})

        item = preferences_table.get_item(
            Key={"PK": f"USER#{USER}", "SK": "PREFERENCES"}
        )["Item"]
        assert item["preferences"]["defaultPlaybackSpeed"] == Decimal("1.5")
        assert call("GET")[1]["preferences"]["defaultPlaybackSpeed"] == 1.5

    def test_legacy_record_is_migrated_on_read(self, call, preferences_table):
        preferences_table.put_item(
            Item={
                "PK": f"USER#{USER}",
                "SK": "PREFERENCES",
                "preferences": {
                    "enabledNoteTemplates": ["BH_SOAP", "DAP", "RETIRED"],
                    "defaultNoteTemplate": "BH_SOAP",
                    "skipInterval": Decimal("7"),
                },
                "version": Decimal("3"),
                "createdAt": "2025-01-01T00:00:00.000Z",
                "updatedAt": "2025-01-02T00:00:00.000Z",
            }
        )

        status, body, _ = call("GET")

        assert status == 200
        prefs = body["preferences"]
        assert prefs["enabledNoteTemplates"] == ["BEHAVIORAL_SOAP", "DAP"]
        assert prefs["defaultNoteTemplate"] == "BEHAVIORAL_SOAP"
        assert prefs["skipInterval"] == 7
        assert prefs["autoScroll"] is True
        assert body["version"] == 3


class TestPatch:
    def test_patch_merges_over_stored(self, call):
        call("PUT", body={"providerName": "Dr. Who", "skipInterval": 10})

        status, body, _ = call("PATCH", body={"skipInterval": 20})

        assert status == 200
        assert body["message"] == "Preferences updated successfully"
        assert body["preferences"]["providerName"] == "Dr. Who"
        assert body["preferences"]["skipInterval"] == 20
        assert body["version"] == 2

    def test_patch_without_record_starts_from_defaults(self, call):
        status, body, _ = call("PATCH", body={"autoExtract": True})

        assert status == 200
        assert body["version"] == 1
        assert body["preferences"]["autoExtract"] is True

    def test_removing_default_template_moves_default(self, call):
        status, body, _ = call(
            "PATCH",
            body={"enabledNoteTemplates": ["DAP", "SIRP"], "defaultNoteTemplate": "GIRPP"},
        )

        assert status == 200
        assert body["preferences"]["defaultNoteTemplate"] == "DAP"


class TestVersionConflicts:
    def test_expected_version_match_succeeds(self, call):
        call("PUT", body={"skipInterval": 10})

        status, body, _ = call(
            "PUT", body={"preferences": {"skipInterval": 12}, "expectedVersion": 1}
        )

        assert status == 200
        assert body["version"] == 2

    def test_stale_version_is_rejected(self, call):
        call("PUT", body={"skipInterval": 10})
        call("PUT", body={"skipInterval": 11})

        status, body, _ = call(
            "PATCH", body={"preferences": {"skipInterval": 12}, "expectedVersion": 1}
        )

        assert status == 409
        assert body == {"error": "Version conflict", "currentVersion": 2}
        assert call("GET")[1]["preferences"]["skipInterval"] == 11

    def test_expected_zero_requires_no_record(self, call):
        assert call("PUT", body={"preferences": {}, "expectedVersion": 0})[0] == 200

        status, _, _ = call("PUT", body={"preferences": {}, "expectedVersion": 0})

        assert status == 409

    def test_expected_version_must_be_integer(self, call):
        status, _, _ = call("PUT", body={"preferences": {}, "expectedVersion": "1"})

        assert status == 400


def test_delete(call):
    call("PUT", body={"skipInterval": 10})

    status, body, _ = call("DELETE")

    assert status == 200
    assert body["message"] == "Preferences deleted successfully"
    assert call("GET")[0] == 404
