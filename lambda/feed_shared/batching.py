"""
Batch write discipline shared by fan-out and cleanup.

A batch goes to the store in one BatchWriteItem call. Whatever the store
leaves unprocessed is resent, and only that subset, until it is empty or
the retry policy runs out of attempts. A throttled or timed-out call counts
as an attempt in which nothing was processed. StoreUnavailableError is not
caught here.
"""

from typing import Any, Callable, Dict, List, NamedTuple, Sequence

from feed_shared.config import RetryPolicy
from feed_shared.errors import TransientStoreError
from feed_shared.logger import StructuredLogger


class BatchOutcome(NamedTuple):
    processed: List[Any]
    remaining: List[Any]
    throttled: bool


def chunk(items: Sequence[Any], size: int) -> List[List[Any]]:
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def send_with_retry(
    send: Callable[[List[Any]], Dict[str, List[Any]]],
    processed_field: str,
    batch: Sequence[Any],
    policy: RetryPolicy,
    sleep: Callable[[float], None],
    logger: StructuredLogger,
    operation: str,
    context: Dict[str, Any]
) -> BatchOutcome:
    """
    Send one batch, retrying only the unprocessed subset.

    Args:
        send: Store call taking the pending entries and returning a dict with
            processed_field and 'unprocessed'
        processed_field: Result key holding the entries the store accepted
        batch: Entries to send (at most one store batch)
        policy: Attempt ceiling and backoff schedule
        sleep: Backoff sleep function
        logger: Structured logger for retry warnings
        operation: Log event prefix, e.g. 'batch_delete'
        context: Extra fields added to every log line

    Returns:
        BatchOutcome with processed entries, entries still pending after the
        last attempt, and whether any retry was needed
    """
    remaining = list(batch)
    processed: List[Any] = []
    throttled = False

    for attempt in range(policy.max_attempts):
        try:
            result = send(remaining)
            processed.extend(result[processed_field])
            remaining = list(result['unprocessed'])
        except TransientStoreError as error:
            logger.log_warning(
                f'{operation}_transient_failure',
                attempt=attempt + 1,
                batchSize=len(remaining),
                errorCode=error.code,
                **context
            )

        if not remaining:
            break

        throttled = True
        if attempt < policy.max_attempts - 1:
            sleep(policy.delay_for(attempt))

    if remaining:
        logger.log_warning(
            f'{operation}_retries_exhausted',
            attempts=policy.max_attempts,
            unprocessed=len(remaining),
            **context
        )

    return BatchOutcome(processed, remaining, throttled)
