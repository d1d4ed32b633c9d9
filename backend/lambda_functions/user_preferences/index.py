"""AWS Lambda handler for the user preferences API.

Serves ``/preferences/{userId}`` behind API Gateway. One DynamoDB item per
user (``PK = USER#{userId}``, ``SK = PREFERENCES``) holds the preferences
record together with a version counter used for optional compare-and-swap
writes.
"""

import json
import os
import traceback
from typing import Any, Dict, Optional

import boto3
from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.logging import correlation_paths
from aws_lambda_powertools.metrics import MetricUnit
from aws_lambda_powertools.utilities.typing import LambdaContext
from botocore.exceptions import ClientError

from healthscribe.aws.dynamodb import from_dynamo, is_condition_failure, to_dynamo_safe
from healthscribe.exceptions import PreferencesValidationError
from healthscribe.models.preferences import (
    DEFAULT_PREFERENCES,
    PREFERENCES_SK,
    PreferencesRecord,
    UserPreferences,
    merge_with_defaults,
    user_pk,
)

# Initialize PowerTools
tracer = Tracer(service="user-preferences")
logger = Logger(service="user-preferences")
metrics = Metrics(namespace="HealthScribe", service="user-preferences")

# Environment variables
TABLE_NAME = os.environ["USER_PREFERENCES_TABLE_NAME"]

# Initialize AWS clients
dynamodb = boto3.resource("dynamodb")
table = dynamodb.Table(TABLE_NAME)

CORS_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": (
        "Content-Type,X-Amz-Date,Authorization,X-Api-Key,X-Amz-Security-Token"
    ),
    "Access-Control-Allow-Methods": "GET,POST,PUT,PATCH,DELETE,OPTIONS",
}


class VersionMismatch(Exception):
    """The stored version differs from the caller's ``expectedVersion``."""


@tracer.capture_lambda_handler
@logger.inject_lambda_context(correlation_id_path=correlation_paths.API_GATEWAY_REST)
@metrics.log_metrics
def handler(event: Dict[str, Any], context: LambdaContext) -> Dict[str, Any]:
    """Handle preferences API requests.

    Args:
        event: API Gateway proxy event
        context: Lambda context

    Returns:
        API Gateway response
    """
    try:
        http_method = (event.get("httpMethod") or "").upper()

        if http_method == "OPTIONS":
            return create_response(200, {"message": "CORS preflight successful"})

        user_id = (event.get("pathParameters") or {}).get("userId")
        if not user_id:
            return create_response(400, {"error": "Missing userId path parameter"})

        caller = extract_caller_id(event)
        if caller is not None and caller != user_id:
            logger.warning(
                "Caller identity does not match path user",
                extra={"caller": caller, "user_id": user_id},
            )
            return create_response(403, {"error": "Forbidden"})

        request_data: Dict[str, Any] = {}
        if http_method in ("PUT", "PATCH") and event.get("body"):
            try:
                request_data = json.loads(event["body"])
            except json.JSONDecodeError:
                logger.warning("Invalid JSON in request body")
                return create_response(400, {"error": "Invalid JSON in request body"})
            if not isinstance(request_data, dict):
                return create_response(400, {"error": "Request body must be an object"})

        if http_method == "GET":
            return get_preferences(user_id)
        elif http_method == "PUT":
            return put_preferences(user_id, request_data)
        elif http_method == "PATCH":
            return patch_preferences(user_id, request_data)
        elif http_method == "DELETE":
            return delete_preferences(user_id)
        else:
            return create_response(405, {"error": "Method not allowed"})

    except Exception as e:
        logger.error(
            "Unhandled error in Lambda handler",
            extra={"error": str(e), "traceback": traceback.format_exc()},
        )
        metrics.add_metric(name="LambdaErrors", unit=MetricUnit.Count, value=1)
        return create_response(500, {"error": "Internal server error"})


def extract_caller_id(event: Dict[str, Any]) -> Optional[str]:
    """Cognito ``sub`` from the authorizer claims, if an authorizer ran."""
    authorizer = (event.get("requestContext") or {}).get("authorizer") or {}
    claims = authorizer.get("claims") or {}
    return claims.get("sub")


def split_body(request_data: Dict[str, Any]) -> tuple:
    """Return ``(preference fields, expectedVersion)`` from a request body.

    The fields may be wrapped as ``{"preferences": {...}}`` or sent bare.
    """
    expected_version = request_data.get("expectedVersion")
    if isinstance(request_data.get("preferences"), dict):
        fields = request_data["preferences"]
    else:
        fields = {k: v for k, v in request_data.items() if k != "expectedVersion"}
    if expected_version is not None and (
        isinstance(expected_version, bool) or not isinstance(expected_version, int)
    ):
        raise PreferencesValidationError("expectedVersion must be an integer")
    return fields, expected_version


@tracer.capture_method
def load_record(user_id: str) -> Optional[PreferencesRecord]:
    """Read the stored record, merging its preferences over the defaults."""
    response = table.get_item(Key={"PK": user_pk(user_id), "SK": PREFERENCES_SK})
    item = response.get("Item")
    if not item:
        return None
    item = from_dynamo(item)
    return PreferencesRecord(
        pk=item["PK"],
        sk=item.get("SK", PREFERENCES_SK),
        preferences=merge_with_defaults(item.get("preferences")),
        version=item.get("version") or 1,
        created_at=item["createdAt"],
        updated_at=item.get("updatedAt") or item["createdAt"],
    )


@tracer.capture_method
def save_record(
    user_id: str,
    preferences: UserPreferences,
    existing: Optional[PreferencesRecord],
    expected_version: Optional[int],
) -> PreferencesRecord:
    """Write the next version of the record.

    With ``expected_version`` the write only succeeds if the stored version
    still equals it (0 means "no record yet"); otherwise it is last-write-wins.

    Raises:
        VersionMismatch: The stored version differs from ``expected_version``.
    """
    current_version = existing.version if existing else 0
    if expected_version is not None and expected_version != current_version:
        raise VersionMismatch()

    record = (
        existing.replaced(preferences)
        if existing
        else PreferencesRecord.new(user_id, preferences)
    )
    put_kwargs: Dict[str, Any] = {"Item": to_dynamo_safe(record.to_item())}
    if expected_version is not None:
        if expected_version == 0:
            put_kwargs["ConditionExpression"] = "attribute_not_exists(PK)"
        else:
            put_kwargs["ConditionExpression"] = "version = :expected"
            put_kwargs["ExpressionAttributeValues"] = {":expected": expected_version}

    try:
        table.put_item(**put_kwargs)
    except ClientError as e:
        if is_condition_failure(e):
            raise VersionMismatch() from e
        raise

    metrics.add_metric(name="PreferencesSaved", unit=MetricUnit.Count, value=1)
    logger.info(
        "Preferences saved",
        extra={"user_id": user_id, "version": record.version},
    )
    return record


def record_body(record: PreferencesRecord, message: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "preferences": record.preferences.to_wire(),
        "version": record.version,
        "createdAt": record.created_at,
        "updatedAt": record.updated_at,
    }
    if message:
        body["message"] = message
    return body


def get_preferences(user_id: str) -> Dict[str, Any]:
    record = load_record(user_id)
    if record is None:
        return create_response(404, {"error": "Preferences not found"})
    return create_response(200, record_body(record))


def put_preferences(user_id: str, request_data: Dict[str, Any]) -> Dict[str, Any]:
    """Replace the stored preferences with defaults merged with the body."""
    try:
        fields, expected_version = split_body(request_data)
        preferences = DEFAULT_PREFERENCES.with_updates(fields)
    except PreferencesValidationError as e:
        return create_response(400, {"error": str(e)})
    return _write(user_id, preferences, expected_version, "Preferences saved successfully")


def patch_preferences(user_id: str, request_data: Dict[str, Any]) -> Dict[str, Any]:
    """Merge the body's fields over the stored (or default) preferences."""
    existing = load_record(user_id)
    current = existing.preferences if existing else DEFAULT_PREFERENCES
    try:
        fields, expected_version = split_body(request_data)
        preferences = current.with_updates(fields)
    except PreferencesValidationError as e:
        return create_response(400, {"error": str(e)})
    return _write(
        user_id,
        preferences,
        expected_version,
        "Preferences updated successfully",
        existing=existing,
    )


def _write(
    user_id: str,
    preferences: UserPreferences,
    expected_version: Optional[int],
    message: str,
    existing: Optional[PreferencesRecord] = None,
) -> Dict[str, Any]:
    if existing is None:
        existing = load_record(user_id)
    try:
        record = save_record(user_id, preferences, existing, expected_version)
    except VersionMismatch:
        metrics.add_metric(name="VersionConflicts", unit=MetricUnit.Count, value=1)
        return create_response(
            409,
            {
                "error": "Version conflict",
                "currentVersion": existing.version if existing else 0,
            },
        )
    return create_response(200, record_body(record, message))


def delete_preferences(user_id: str) -> Dict[str, Any]:
    table.delete_item(Key={"PK": user_pk(user_id), "SK": PREFERENCES_SK})
    logger.info("Preferences deleted", extra={"user_id": user_id})
    return create_response(200, {"message": "Preferences deleted successfully"})


def create_response(
    status_code: int, body: Dict[str, Any], headers: Optional[Dict[str, str]] = None
) -> Dict[str, Any]:
    """Create API Gateway response with CORS headers.

    Args:
        status_code: HTTP status code
        body: Response body
        headers: Optional additional headers

    Returns:
        API Gateway response format
    """
    response_headers = dict(CORS_HEADERS)
    if headers:
        response_headers.update(headers)
    return {
        "statusCode": status_code,
        "headers": response_headers,
        "body": json.dumps(body),
    }
