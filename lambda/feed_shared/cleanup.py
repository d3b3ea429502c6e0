"""
Feed cleanup service.

This module removes materialized feed items when their source goes away:
- delete_by_post: a post was deleted; remove it from every recipient's feed
  using the by-post secondary index (O(recipients), never a table scan)
- delete_by_author_for_user: a user unfollowed an author; remove that
  author's posts from the one user's feed

Both operations are idempotent and share the same delete discipline:
batches of at most 25 keys, retries of the unprocessed subset with
exponential backoff up to a fixed ceiling, a bounded number of batches in
flight, and cancellation observed between batches.

State machine (per invocation):
    fetching-keys -> batching -> deleting -> done | partial-failure-reported

A partial result is returned, never raised, when transient failures outlast
the retry ceiling; callers can safely re-invoke. Hard store failures
(StoreUnavailableError) propagate immediately.
"""

import threading
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Set

from ulid import ULID

from feed_shared.batching import BatchOutcome, chunk, send_with_retry
from feed_shared.config import FeedConfig
from feed_shared.errors import StoreError, TransientStoreError
from feed_shared.logger import StructuredLogger
from feed_shared.models import (
    FEED_PREFIX,
    PARTITION_KEY,
    SORT_KEY,
    feed_partition_key,
    key_of,
    post_index_partition_key,
)
from feed_shared.store import FeedStore
from feed_shared.types import CleanupResult, CleanupState, StoreKey
from feed_shared.validation import require_id


class _DeleteRun(NamedTuple):
    deleted: int
    cancelled: bool


def _unique_keys(records: List[Dict[str, Any]]) -> List[StoreKey]:
    seen = set()
    keys: List[StoreKey] = []
    for record in records:
        key = key_of(record)
        marker = (key[PARTITION_KEY], key[SORT_KEY])
        if marker not in seen:
            seen.add(marker)
            keys.append(key)
    return keys


class CleanupEngine:
    """
    Batched, retried, bounded-concurrency deletion of feed items.

    The store is injected; the engine holds no state between calls.
    """

    def __init__(
        self,
        store: FeedStore,
        config: FeedConfig,
        logger: Optional[StructuredLogger] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the CleanupEngine.

        Args:
            store: Feed store to delete from
            config: Feed configuration (index name, batch size, concurrency, retry policy)
            logger: Optional structured logger
            sleep: Backoff sleep function
        """
        self.store = store
        self.config = config
        self.logger = logger or StructuredLogger('internal', 'feed-cleanup')
        self._sleep = sleep

    def delete_by_post(
        self,
        post_id: str,
        cancel_event: Optional[threading.Event] = None
    ) -> CleanupResult:
        """
        Remove a post from every feed it was fanned out to.

        Args:
            post_id: The deleted post
            cancel_event: Optional signal checked between batches

        Returns:
            Dictionary with deletedCount, matchedCount, unprocessedCount,
            state and cancelled

        Raises:
            ValidationError: If post_id is empty
            StoreUnavailableError: On a hard store failure
        """
        require_id(post_id, 'postId')
        cleanup_id = str(ULID())
        context = {'cleanupId': cleanup_id, 'postId': post_id}

        self._log_state('fetching-keys', context)
        try:
            records = self._with_retry(
                lambda: self.store.query_index(
                    self.config.post_index_name,
                    post_index_partition_key(post_id),
                    projection=[PARTITION_KEY, SORT_KEY]
                )['items'],
                context
            )
        except TransientStoreError:
            return self._fetch_failed(context)

        return self._delete_keys(_unique_keys(records), cancel_event, context)

    def delete_by_author_for_user(
        self,
        user_id: str,
        author_id: str,
        cancel_event: Optional[threading.Event] = None
    ) -> CleanupResult:
        """
        Remove one author's posts from one user's feed.

        The user's partition is read in full and filtered on authorId in
        process; a single feed is small and bounded, so no index is needed.

        Args:
            user_id: Whose feed to clean (the unfollower)
            author_id: Author whose posts are removed (the unfollowed user)
            cancel_event: Optional signal checked between batches

        Returns:
            Same shape as delete_by_post

        Raises:
            ValidationError: If either ID is empty
            StoreUnavailableError: On a hard store failure
        """
        require_id(user_id, 'userId')
        require_id(author_id, 'authorId')
        cleanup_id = str(ULID())
        context = {'cleanupId': cleanup_id, 'userId': user_id, 'authorId': author_id}

        self._log_state('fetching-keys', context)
        records: List[Dict[str, Any]] = []
        start_key: Optional[Dict[str, Any]] = None
        try:
            while True:
                page = self._with_retry(
                    lambda: self.store.query_partition(
                        feed_partition_key(user_id),
                        exclusive_start_key=start_key,
                        sort_key_prefix=FEED_PREFIX,
                        projection=[PARTITION_KEY, SORT_KEY, 'authorId']
                    ),
                    context
                )
                records.extend(
                    record for record in page['items']
                    if record.get('authorId') == author_id
                )
                start_key = page.get('lastEvaluatedKey')
                if not start_key:
                    break
        except TransientStoreError:
            return self._fetch_failed(context)

        return self._delete_keys(_unique_keys(records), cancel_event, context)

    def _with_retry(self, call: Callable[[], Any], context: Dict[str, Any]) -> Any:
        """Run a store read, retrying transient failures per the retry policy."""
        policy = self.config.retry_policy
        for attempt in range(policy.max_attempts):
            try:
                return call()
            except TransientStoreError as error:
                if attempt == policy.max_attempts - 1:
                    raise
                self.logger.log_warning(
                    'cleanup_fetch_retry',
                    attempt=attempt + 1,
                    errorCode=error.code,
                    **context
                )
                self._sleep(policy.delay_for(attempt))

    def _fetch_failed(self, context: Dict[str, Any]) -> CleanupResult:
        self.logger.log_warning('cleanup_fetch_exhausted', **context)
        return self._result(0, 0, 'partial-failure-reported', False, context)

    def _delete_keys(
        self,
        keys: List[StoreKey],
        cancel_event: Optional[threading.Event],
        context: Dict[str, Any]
    ) -> CleanupResult:
        matched = len(keys)
        batches = chunk(keys, self.config.delete_batch_size)
        self._log_state('batching', context, matchedCount=matched, batchCount=len(batches))

        if not batches:
            return self._result(0, 0, 'done', False, context)

        self._log_state('deleting', context)
        run = self._run_batches(batches, cancel_event, context)

        complete = run.deleted == matched and not run.cancelled
        state: CleanupState = 'done' if complete else 'partial-failure-reported'
        return self._result(run.deleted, matched, state, run.cancelled, context)

    def _run_batches(
        self,
        batches: List[List[StoreKey]],
        cancel_event: Optional[threading.Event],
        context: Dict[str, Any]
    ) -> _DeleteRun:
        """
        Execute batches with at most delete_concurrency in flight.

        The in-flight limit is halved (down to 1) whenever a batch needed
        retries, easing pressure on a throttled table.
        """
        pending = deque(batches)
        in_flight: Set[Future] = set()
        limit = self.config.delete_concurrency
        deleted = 0
        cancelled = False

        with ThreadPoolExecutor(max_workers=limit) as executor:
            try:
                while pending or in_flight:
                    while pending and len(in_flight) < limit:
                        if cancel_event is not None and cancel_event.is_set():
                            cancelled = True
                            pending.clear()
                            break
                        in_flight.add(executor.submit(self._delete_batch, pending.popleft(), context))

                    if not in_flight:
                        break

                    done, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
                    for future in done:
                        outcome = future.result()
                        deleted += len(outcome.processed)
                        if outcome.throttled and limit > 1:
                            limit = max(1, limit // 2)
                            self.logger.log_info(
                                'cleanup_concurrency_reduced',
                                concurrency=limit,
                                **context
                            )
            except StoreError:
                for future in in_flight:
                    future.cancel()
                raise

        if cancelled:
            self.logger.log_warning('cleanup_cancelled', deletedCount=deleted, **context)
        return _DeleteRun(deleted, cancelled)

    def _delete_batch(self, batch: List[StoreKey], context: Dict[str, Any]) -> BatchOutcome:
        """Delete one batch, retrying only the unprocessed subset."""
        return send_with_retry(
            self.store.batch_delete_items,
            'deleted',
            batch,
            self.config.retry_policy,
            self._sleep,
            self.logger,
            'batch_delete',
            context
        )

    def _log_state(self, state: CleanupState, context: Dict[str, Any], **fields: Any) -> None:
        self.logger.log_info('cleanup_state', state=state, **context, **fields)

    def _result(
        self,
        deleted: int,
        matched: int,
        state: CleanupState,
        cancelled: bool,
        context: Dict[str, Any]
    ) -> CleanupResult:
        self._log_state(state, context, deletedCount=deleted, matchedCount=matched)
        return {
            'deletedCount': deleted,
            'matchedCount': matched,
            'unprocessedCount': matched - deleted,
            'state': state,
            'cancelled': cancelled,
        }
