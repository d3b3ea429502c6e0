"""
Response helper functions for the feed API handler.

Every response is a Lambda proxy integration object with a JSON body;
errors always use the {code, message, details} shape.
"""

import json
from decimal import Decimal
from typing import Dict, Any


def _json_default(value: Any) -> Any:
    # DynamoDB numbers that slipped through as Decimal
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    raise TypeError(f'Object of type {type(value).__name__} is not JSON serializable')


def create_success_response(status_code: int, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create a successful HTTP response.

    Args:
        status_code: HTTP status code (200)
        data: Response payload to be JSON serialized

    Returns:
        Lambda proxy integration response object
    """
    return {
        'statusCode': status_code,
        'headers': {
            'Content-Type': 'application/json'
        },
        'body': json.dumps(data, default=_json_default)
    }


def create_error_response(
    status_code: int,
    code: str,
    message: str,
    details: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Create an error HTTP response.

    Body format:
    {
        "code": "VALIDATION_ERROR",
        "message": "Invalid cursor",
        "details": {"cursor": "Cursor could not be decoded"}
    }
    """
    return {
        'statusCode': status_code,
        'headers': {
            'Content-Type': 'application/json'
        },
        'body': json.dumps({
            'code': code,
            'message': message,
            'details': details
        }, default=_json_default)
    }
