"""
Feed read service.

Serves a user's materialized feed newest first, one page at a time. Reads
are side-effect free and eventually consistent; a write made a moment ago
may not be visible yet.
"""

from typing import Any, Dict, Optional

from feed_shared.config import FeedConfig
from feed_shared.cursor import decode_cursor, encode_cursor
from feed_shared.models import (
    FEED_PREFIX,
    PARTITION_KEY,
    SORT_KEY,
    feed_partition_key,
    to_feed_item,
)
from feed_shared.store import FeedStore
from feed_shared.types import FeedPage
from feed_shared.validation import raise_for_errors, require_id, validate_limit


class FeedReader:
    """Cursor-paginated reads of a single user's feed partition."""

    def __init__(self, store: FeedStore, config: FeedConfig):
        self.store = store
        self.config = config

    def get_feed(
        self,
        user_id: str,
        limit: Optional[int] = None,
        cursor: Optional[str] = None
    ) -> FeedPage:
        """
        Get one page of a user's feed.

        Args:
            user_id: Whose feed to read
            limit: Page size (default 20, clamped to the configured maximum)
            cursor: Cursor from a previous page; resumes strictly after it

        Returns:
            Dictionary with:
                - items: Feed items, newest first
                - nextCursor: Cursor for the next page, None when hasMore is False
                - hasMore: Whether the store reported more items past this page

        Raises:
            ValidationError: If user_id, limit or cursor is invalid
        """
        require_id(user_id, 'userId')
        if limit is None:
            limit = self.config.default_page_size
        raise_for_errors(validate_limit(limit), 'Invalid feed request')
        limit = min(limit, self.config.max_page_size)

        exclusive_start_key: Optional[Dict[str, Any]] = None
        if cursor is not None:
            exclusive_start_key = {
                PARTITION_KEY: feed_partition_key(user_id),
                SORT_KEY: decode_cursor(cursor),
            }

        page = self.store.query_partition(
            feed_partition_key(user_id),
            limit=limit,
            exclusive_start_key=exclusive_start_key,
            scan_index_forward=False,
            sort_key_prefix=FEED_PREFIX,
        )

        last_key = page.get('lastEvaluatedKey')
        return {
            'items': [to_feed_item(record) for record in page['items']],
            'nextCursor': encode_cursor(last_key) if last_key else None,
            'hasMore': bool(last_key),
        }
