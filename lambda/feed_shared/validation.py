"""
Input validation for feed operations.

This module implements input validation for fan-out, feed reads and
cleanup requests. Follows the "fail fast" principle - all validation
happens before any store call is issued.

Validates:
- post snapshot has the required identity fields and a parseable createdAt
- audience is a list of non-empty user IDs
- IDs passed to reads and deletes are non-empty strings
- limit is a positive integer

Follows steering rules:
- Explicit over implicit
- Fail fast on invalid input
- Return detailed validation errors
"""

from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

from feed_shared.errors import ValidationError

# Fixed-width UTC timestamp format; sort keys rely on it ordering lexicographically
TIMESTAMP_FORMAT = '%Y-%m-%dT%H:%M:%S.%fZ'

REQUIRED_POST_FIELDS = ('id', 'authorId', 'authorHandle', 'createdAt')

# Optional display strings copied onto each feed item when present
OPTIONAL_POST_STRINGS = (
    'caption',
    'imageUrl',
    'thumbnailUrl',
    'authorFullName',
    'authorProfilePictureUrl',
)


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def normalize_timestamp(value: Any) -> Optional[str]:
    """
    Normalize a createdAt value to fixed-width ISO-8601 UTC.

    Accepts ISO-8601 strings (with 'Z' or an offset; naive values are
    treated as UTC) and epoch seconds.

    Returns:
        Normalized timestamp, or None if the value cannot be parsed

    Examples:
        >>> normalize_timestamp(1000)
        '1970-01-01T00:16:40.000000Z'

        >>> normalize_timestamp('2025-10-12T10:00:00Z')
        '2025-10-12T10:00:00.000000Z'
    """
    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        if value < 0:
            return None
        try:
            parsed = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
        return parsed.strftime(TIMESTAMP_FORMAT)

    if _is_blank(value):
        return None

    text = value.strip()
    if text.endswith('Z') or text.endswith('z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def validate_post(post: Any) -> List[Dict[str, str]]:
    """
    Validate a post snapshot passed to fan-out.

    Args:
        post: Post snapshot payload

    Returns:
        List of validation errors. Empty list if validation passes.
        Each error is a dict with 'field' and 'message' keys.

    Examples:
        >>> validate_post({'id': 'p1', 'authorId': 'u1', 'authorHandle': 'ann', 'createdAt': 1000})
        []

        >>> validate_post({'authorId': 'u1', 'authorHandle': 'ann', 'createdAt': 1000})
        [{'field': 'id', 'message': 'Field is required'}]
    """
    errors: List[Dict[str, str]] = []

    if not isinstance(post, dict):
        return [{'field': 'post', 'message': 'Post must be an object'}]

    for field_name in REQUIRED_POST_FIELDS:
        if field_name not in post or post[field_name] is None:
            errors.append({'field': field_name, 'message': 'Field is required'})
        elif field_name != 'createdAt' and _is_blank(post[field_name]):
            errors.append({'field': field_name, 'message': 'Field cannot be empty'})

    if post.get('createdAt') is not None and normalize_timestamp(post['createdAt']) is None:
        errors.append({
            'field': 'createdAt',
            'message': 'createdAt must be an ISO-8601 timestamp or epoch seconds'
        })

    for field_name in OPTIONAL_POST_STRINGS:
        value = post.get(field_name)
        if value is not None and not isinstance(value, str):
            errors.append({'field': field_name, 'message': f'{field_name} must be a string'})

    for field_name in ('likesCount', 'commentsCount'):
        value = post.get(field_name)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            errors.append({
                'field': field_name,
                'message': f'{field_name} must be a non-negative integer'
            })

    if 'isPublic' in post and not isinstance(post['isPublic'], bool):
        errors.append({'field': 'isPublic', 'message': 'isPublic must be a boolean'})

    return errors


def validate_audience(audience: Any) -> List[Dict[str, str]]:
    """
    Validate the audience (recipient user IDs) passed to fan-out.

    An empty audience is valid; it simply produces no writes.
    """
    if isinstance(audience, (str, bytes)) or not isinstance(audience, (list, tuple, set, frozenset)):
        return [{'field': 'audience', 'message': 'Audience must be a list of user IDs'}]

    errors: List[Dict[str, str]] = []
    for index, user_id in enumerate(audience):
        if _is_blank(user_id):
            errors.append({
                'field': f'audience[{index}]',
                'message': 'User ID must be a non-empty string'
            })
    return errors


def validate_limit(limit: Any) -> List[Dict[str, str]]:
    """Validate a page size. Values above the hard cap are clamped by the reader, not rejected."""
    if isinstance(limit, bool) or not isinstance(limit, int):
        return [{'field': 'limit', 'message': 'Limit must be an integer'}]
    if limit < 1:
        return [{'field': 'limit', 'message': 'Limit must be at least 1'}]
    return []


def require_id(value: Any, field_name: str) -> str:
    """
    Fail fast on a missing or blank identifier.

    Raises:
        ValidationError: If value is not a non-empty string
    """
    if _is_blank(value):
        raise ValidationError(
            f'Invalid {field_name}',
            {field_name: f'{field_name} must be a non-empty string'}
        )
    return value


def raise_for_errors(errors: List[Dict[str, str]], message: str) -> None:
    """Raise ValidationError carrying all collected field errors, if any."""
    if errors:
        raise ValidationError(message, {'errors': errors})
