"""
Feed item model.

One record per (recipient, post) pair. Records live in the feed table under
the recipient's partition and carry the by-post index attributes on the same
item, so a single put keeps the main record and the index consistent.

Access Patterns:
1. Read a user's feed, newest first: PK=USER#{userId}, SK begins_with FEED#
2. Find every copy of a post: GSI4PK=POST#{postId} (GSI4SK=USER#{userId})
"""

from typing import Dict, Any

from feed_shared.types import FeedItem, PostSnapshot, StoreKey
from feed_shared.validation import OPTIONAL_POST_STRINGS, normalize_timestamp

USER_PREFIX = 'USER#'
FEED_PREFIX = 'FEED#'
POST_PREFIX = 'POST#'

PARTITION_KEY = 'PK'
SORT_KEY = 'SK'
INDEX_PARTITION_KEY = 'GSI4PK'
INDEX_SORT_KEY = 'GSI4SK'
TTL_ATTRIBUTE = 'expiresAt'

ENTITY_TYPE = 'FEED_ITEM'
SCHEMA_VERSION = 1

# Attributes that exist only for storage and are stripped before returning items
_STORAGE_ATTRIBUTES = {
    PARTITION_KEY,
    SORT_KEY,
    INDEX_PARTITION_KEY,
    INDEX_SORT_KEY,
    'entityType',
    'schemaVersion',
    'feedItemCreatedAt',
}


def feed_partition_key(user_id: str) -> str:
    return f'{USER_PREFIX}{user_id}'


def post_index_partition_key(post_id: str) -> str:
    return f'{POST_PREFIX}{post_id}'


def encode_sort_key(created_at: str, post_id: str) -> str:
    """
    Build the feed sort key for a post.

    The timestamp is normalized to fixed-width UTC so that lexicographic
    order is chronological; the post ID breaks ties and makes the key
    deterministic per post.
    """
    normalized = normalize_timestamp(created_at)
    if normalized is None:
        raise ValueError(f"Unparseable createdAt '{created_at}'")
    return f'{FEED_PREFIX}{normalized}#{post_id}'


def feed_item_key(user_id: str, created_at: str, post_id: str) -> StoreKey:
    return {
        PARTITION_KEY: feed_partition_key(user_id),
        SORT_KEY: encode_sort_key(created_at, post_id),
    }


def user_id_from_partition_key(partition_key: str) -> str:
    if not partition_key.startswith(USER_PREFIX):
        raise ValueError(f"Not a feed partition key: '{partition_key}'")
    return partition_key[len(USER_PREFIX):]


def build_feed_record(
    recipient_user_id: str,
    post: PostSnapshot,
    now: float,
    ttl_seconds: int
) -> Dict[str, Any]:
    """
    Build the stored record for one recipient.

    Args:
        recipient_user_id: Whose feed the record belongs to
        post: Validated post snapshot
        now: Fan-out time in epoch seconds
        ttl_seconds: TTL window added to the fan-out time

    Returns:
        Record ready for FeedStore.put_item
    """
    created_at = normalize_timestamp(post['createdAt'])
    key = feed_item_key(recipient_user_id, created_at, post['id'])

    record: Dict[str, Any] = {
        **key,
        INDEX_PARTITION_KEY: post_index_partition_key(post['id']),
        INDEX_SORT_KEY: feed_partition_key(recipient_user_id),
        'recipientUserId': recipient_user_id,
        'postId': post['id'],
        'authorId': post['authorId'],
        'authorHandle': post['authorHandle'],
        'likesCount': post.get('likesCount') or 0,
        'commentsCount': post.get('commentsCount') or 0,
        'isPublic': post.get('isPublic', True),
        'createdAt': created_at,
        TTL_ATTRIBUTE: int(now) + ttl_seconds,
        'feedItemCreatedAt': normalize_timestamp(now),
        'entityType': ENTITY_TYPE,
        'schemaVersion': SCHEMA_VERSION,
    }

    # Optional display fields are omitted rather than stored as NULL
    for optional_field in OPTIONAL_POST_STRINGS:
        if post.get(optional_field) is not None:
            record[optional_field] = post[optional_field]

    return record


def to_feed_item(record: Dict[str, Any]) -> FeedItem:
    """Convert a stored record to the caller-facing FeedItem."""
    item: FeedItem = {
        key: value for key, value in record.items()
        if key not in _STORAGE_ATTRIBUTES
    }
    item['sortKey'] = record[SORT_KEY]
    if 'recipientUserId' not in item:
        item['recipientUserId'] = user_id_from_partition_key(record[PARTITION_KEY])
    for counter in ('likesCount', 'commentsCount', TTL_ATTRIBUTE):
        if counter in item:
            # DynamoDB numbers come back as Decimal
            item[counter] = int(item[counter])
    return item


def key_of(record: Dict[str, Any]) -> StoreKey:
    return {PARTITION_KEY: record[PARTITION_KEY], SORT_KEY: record[SORT_KEY]}
