"""
Opaque pagination cursors for feed reads.

A cursor is url-safe base64 of the JSON object {"sk": <last sort key>}. The
partition key is never carried in the cursor; the reader rebuilds the
exclusive start key from the requesting user's ID, so a cursor cannot be
replayed against another user's partition.
"""

import base64
import binascii
import json
from typing import Dict, Any

from feed_shared.errors import ValidationError
from feed_shared.models import FEED_PREFIX, SORT_KEY


def encode_cursor(last_evaluated_key: Dict[str, Any]) -> str:
    """
    Encode the store's last evaluated key as an opaque cursor.

    Args:
        last_evaluated_key: Key returned by FeedStore.query_partition

    Returns:
        Opaque cursor string
    """
    payload = json.dumps({'sk': last_evaluated_key[SORT_KEY]}, separators=(',', ':'))
    return base64.urlsafe_b64encode(payload.encode('utf-8')).decode('ascii')


def decode_cursor(cursor: str) -> str:
    """
    Decode a cursor back to the sort key it was built from.

    Raises:
        ValidationError: If the cursor is malformed
    """
    if not isinstance(cursor, str) or not cursor:
        raise ValidationError('Invalid cursor', {'cursor': 'Cursor must be a non-empty string'})

    try:
        decoded = base64.urlsafe_b64decode(cursor.encode('ascii')).decode('utf-8')
        payload = json.loads(decoded)
    except (binascii.Error, UnicodeError, ValueError):
        raise ValidationError('Invalid cursor', {'cursor': 'Cursor could not be decoded'})

    sort_key = payload.get('sk') if isinstance(payload, dict) else None
    if not isinstance(sort_key, str) or not sort_key.startswith(FEED_PREFIX):
        raise ValidationError('Invalid cursor', {'cursor': 'Cursor does not reference a feed position'})

    return sort_key
