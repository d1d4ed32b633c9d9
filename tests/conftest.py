"""Pytest configuration and shared fixtures for HealthScribe tests.

AWS services are mocked with moto; Lambda handlers are loaded straight from
their ``index.py`` so each test gets a module bound to the mocked resources.
"""

import importlib.util
import os
import sys
import uuid
from pathlib import Path

import boto3
import pytest
from moto import mock_aws

from healthscribe.config.settings import HealthScribeSettings

REPO_ROOT = Path(__file__).resolve().parents[1]
LAMBDA_ROOT = REPO_ROOT / "backend" / "lambda_functions"

PATIENTS_TABLE = "test-patients"
PREFERENCES_TABLE = "test-user-preferences"
AUDIO_BUCKET = "test-healthscribe-audio"
ROLE_ARN = "arn:aws:iam::123456789012:role/HealthScribeServiceRole"


@pytest.fixture(scope="session", autouse=True)
def configure_test_environment():
    """Configure environment variables for consistent testing."""
    test_env = {
        "AWS_DEFAULT_REGION": "us-east-1",
        "AWS_REGION": "us-east-1",
        # Prevent actual AWS API calls during testing
        "AWS_ACCESS_KEY_ID": "testing",
        "AWS_SECRET_ACCESS_KEY": "testing",
        "AWS_SECURITY_TOKEN": "testing",
        "AWS_SESSION_TOKEN": "testing",
        "POWERTOOLS_TRACE_DISABLED": "1",
        "POWERTOOLS_METRICS_NAMESPACE": "HealthScribe",
        "POWERTOOLS_SERVICE_NAME": "healthscribe-tests",
        "USER_PREFERENCES_TABLE_NAME": PREFERENCES_TABLE,
    }

    for key, value in test_env.items():
        if key not in os.environ:
            os.environ[key] = value


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "aws: Tests using mocked AWS services")


class DummyContext:
    function_name = "test"
    memory_limit_in_mb = 128
    invoked_function_arn = "arn:aws:lambda:us-east-1:123456789012:function:test"
    aws_request_id = "req-123"


def load_lambda(name: str):
    """Import ``lambda_functions/<name>/index.py`` under a unique module name."""
    path = LAMBDA_ROOT / name / "index.py"
    module_name = f"lambda_{name}_{uuid.uuid4().hex[:8]}"
    spec = importlib.util.spec_from_file_location(module_name, str(path))
    assert spec
    assert spec.loader
    mod = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = mod
    spec.loader.exec_module(mod)
    return mod


@pytest.fixture
def lambda_context():
    return DummyContext()


@pytest.fixture
def aws():
    """Activate moto for the duration of a test."""
    with mock_aws():
        yield


def create_patients_table(name: str = PATIENTS_TABLE):
    dynamodb = boto3.resource("dynamodb", region_name="us-east-1")
    return dynamodb.create_table(
        TableName=name,
        KeySchema=[{"AttributeName": "patientId", "KeyType": "HASH"}],
        AttributeDefinitions=[
            {"AttributeName": "patientId", "AttributeType": "S"},
            {"AttributeName": "providerId", "AttributeType": "S"},
            {"AttributeName": "patientName", "AttributeType": "S"},
            {"AttributeName": "lastEncounterDate", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": "providerId-patientName-index",
                "KeySchema": [
                    {"AttributeName": "providerId", "KeyType": "HASH"},
                    {"AttributeName": "patientName", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
            {
                "IndexName": "providerId-lastEncounterDate-index",
                "KeySchema": [
                    {"AttributeName": "providerId", "KeyType": "HASH"},
                    {"AttributeName": "lastEncounterDate", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        BillingMode="PAY_PER_REQUEST",
    )


def create_preferences_table(name: str = PREFERENCES_TABLE):
    dynamodb = boto3.resource("dynamodb", region_name="us-east-1")
    return dynamodb.create_table(
        TableName=name,
        KeySchema=[
            {"AttributeName": "PK", "KeyType": "HASH"},
            {"AttributeName": "SK", "KeyType": "RANGE"},
        ],
        AttributeDefinitions=[
            {"AttributeName": "PK", "AttributeType": "S"},
            {"AttributeName": "SK", "AttributeType": "S"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )


@pytest.fixture
def patients_table(aws):
    return create_patients_table()


@pytest.fixture
def preferences_table(aws):
    return create_preferences_table()


@pytest.fixture
def audio_bucket(aws):
    s3 = boto3.client("s3", region_name="us-east-1")
    s3.create_bucket(Bucket=AUDIO_BUCKET)
    return s3


@pytest.fixture
def preferences_lambda(preferences_table):
    """The preferences Lambda module bound to the mocked table."""
    return load_lambda("user_preferences")


@pytest.fixture
def settings(tmp_path):
    """Settings with every required value present."""
    return HealthScribeSettings(
        aws_region="us-east-1",
        user_pool_id="us-east-1_TestPool",
        user_pool_client_id="test-client-id",
        identity_pool_id="us-east-1:00000000-0000-0000-0000-000000000000",
        storage_bucket=AUDIO_BUCKET,
        healthscribe_service_role_arn=ROLE_ARN,
        api_url="https://api.example.com/prod",
        patients_table_name=PATIENTS_TABLE,
        local_storage_path=str(tmp_path / "healthscribe"),
        authenticated_user_id="provider-1",
    )
