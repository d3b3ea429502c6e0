"""
Feed fan-out service.

This module implements fan-out on write: when a post is created, one feed
record is written into the partition of every audience member. It includes:
- Validation of the post snapshot and audience before any write
- Deterministic keys so re-running a fan-out overwrites instead of duplicating
- Batched writes (25 per call) with a bounded number of batches in flight
- Retry of only the unprocessed items, with exponential backoff

Availability over consistency: recipients whose writes are still pending
after the retry ceiling are reported in failedRecipients and left to
out-of-band reconciliation. A hard store failure (StoreUnavailableError)
is not a per-recipient failure; it stops the fan-out and propagates.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Collection, List, Optional, Set

from feed_shared.batching import BatchOutcome, chunk, send_with_retry
from feed_shared.config import FeedConfig, MAX_BATCH_SIZE
from feed_shared.errors import StoreUnavailableError
from feed_shared.logger import StructuredLogger
from feed_shared.models import build_feed_record
from feed_shared.store import FeedStore
from feed_shared.types import FanOutResult, PostSnapshot
from feed_shared.validation import raise_for_errors, validate_audience, validate_post


class FanOutWriter:
    """
    Writes a post into every audience member's materialized feed.

    The store is injected; the writer holds no state between calls.
    """

    def __init__(
        self,
        store: FeedStore,
        config: FeedConfig,
        logger: Optional[StructuredLogger] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the FanOutWriter.

        Args:
            store: Feed store to write to
            config: Feed configuration (TTL window, concurrency, retry policy)
            logger: Optional structured logger
            clock: Source of the current epoch time (fan-out time)
            sleep: Backoff sleep function
        """
        self.store = store
        self.config = config
        self.logger = logger or StructuredLogger('internal', 'feed-fanout')
        self._clock = clock
        self._sleep = sleep

    def fan_out(self, post: PostSnapshot, audience: Collection[str]) -> FanOutResult:
        """
        Write one feed item per audience member.

        Args:
            post: Post snapshot (id, authorId, authorHandle, caption, imageUrl,
                createdAt, isPublic, and optionally likesCount/commentsCount
                and the author/thumbnail display fields)
            audience: Recipient user IDs; duplicates are written once

        Returns:
            Dictionary with written, failed and failedRecipients

        Raises:
            ValidationError: If the post or audience is invalid
            StoreUnavailableError: On a hard store failure; batches not yet
                started are cancelled
        """
        raise_for_errors(validate_post(post) + validate_audience(audience), 'Invalid fan-out request')

        recipients = list(dict.fromkeys(audience))
        if not recipients:
            return {'written': 0, 'failed': 0, 'failedRecipients': []}

        now = self._clock()
        records = [
            build_feed_record(recipient, post, now, self.config.ttl_seconds)
            for recipient in recipients
        ]
        batches = chunk(records, MAX_BATCH_SIZE)
        context = {'postId': post['id'], 'authorId': post['authorId']}

        workers = min(self.config.fanout_concurrency, len(batches))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self._write_batch, batch, context) for batch in batches]
            try:
                outcomes: List[BatchOutcome] = [future.result() for future in futures]
            except StoreUnavailableError as error:
                for future in futures:
                    future.cancel()
                self.logger.log_warning(
                    'fanout_aborted',
                    totalRecipients=len(records),
                    errorCode=error.code,
                    **context
                )
                raise

        pending: Set[str] = {
            record['recipientUserId']
            for outcome in outcomes
            for record in outcome.remaining
        }
        failed_recipients = [recipient for recipient in recipients if recipient in pending]
        written = sum(len(outcome.processed) for outcome in outcomes)

        if failed_recipients:
            self.logger.log_warning(
                'fanout_partial_failure',
                totalRecipients=len(records),
                failures=len(failed_recipients),
                **context
            )

        self.logger.log_info(
            'fanout_complete',
            written=written,
            failed=len(failed_recipients),
            batchCount=len(batches),
            **context
        )

        return {
            'written': written,
            'failed': len(failed_recipients),
            'failedRecipients': failed_recipients,
        }

    def _write_batch(self, batch: List[dict], context: dict) -> BatchOutcome:
        return send_with_retry(
            self.store.batch_put_items,
            'written',
            batch,
            self.config.retry_policy,
            self._sleep,
            self.logger,
            'batch_put',
            context
        )
