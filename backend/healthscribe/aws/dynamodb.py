"""DynamoDB value conversion helpers.

The boto3 resource layer rejects Python floats and returns every number as
``Decimal``; items are converted on the way in and out.
"""

from decimal import Decimal
from typing import Any


def to_dynamo_safe(val: Any) -> Any:
    """Recursively convert floats to Decimals so a structure can be stored."""
    if isinstance(val, float):
        return Decimal(str(val))
    if isinstance(val, list):
        return [to_dynamo_safe(v) for v in val]
    if isinstance(val, dict):
        return {k: to_dynamo_safe(v) for k, v in val.items()}
    return val


def from_dynamo(val: Any) -> Any:
    """Recursively convert Decimals back to int (when integral) or float."""
    if isinstance(val, Decimal):
        return int(val) if val == val.to_integral_value() else float(val)
    if isinstance(val, list):
        return [from_dynamo(v) for v in val]
    if isinstance(val, dict):
        return {k: from_dynamo(v) for k, v in val.items()}
    return val


def is_condition_failure(error: Any) -> bool:
    """True for a botocore ClientError caused by a failed condition expression."""
    return error.response["Error"]["Code"] == "ConditionalCheckFailedException"
