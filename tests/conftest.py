"""
Shared fixtures for the feed service tests.

Provides an in-memory FeedStore with TTL filtering and failure injection,
a controllable clock, and a loader for the Lambda handler modules.
"""

import importlib.util
import os
import sys
import threading
from collections import deque
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Set, Union
from unittest.mock import MagicMock

import pytest

LAMBDA_DIR = Path(__file__).resolve().parent.parent / 'lambda'

# Add lambda paths
sys.path.insert(0, str(LAMBDA_DIR))

# Handlers read configuration and build a DynamoDB client at import time
os.environ.setdefault('FEED_TABLE_NAME', 'feed-test')
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-east-1')
os.environ.setdefault('AWS_ACCESS_KEY_ID', 'testing')
os.environ.setdefault('AWS_SECRET_ACCESS_KEY', 'testing')

from feed_shared.config import FeedConfig, MAX_BATCH_SIZE  # noqa: E402
from feed_shared.errors import StoreUnavailableError, TransientStoreError  # noqa: E402
from feed_shared.logger import StructuredLogger  # noqa: E402
from feed_shared.metrics import MetricsClient  # noqa: E402
from feed_shared.models import (  # noqa: E402
    INDEX_PARTITION_KEY,
    PARTITION_KEY,
    SORT_KEY,
    TTL_ATTRIBUTE,
    key_of,
)

# Injected outcome for one store call: 'throttle', 'unavailable', or the
# number of entries a batch call leaves unprocessed
Failure = Union[str, int]

START_TIME = 1000


def is_expired(record: Dict[str, Any], now: float) -> bool:
    """True once the record's TTL has passed (visible only while now < expiresAt)."""
    expires_at = record.get(TTL_ATTRIBUTE)
    if expires_at is None:
        return False
    return now >= int(expires_at)


class FakeClock:
    """Callable epoch clock that only moves when told to."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _raise_for(failure: Failure, operation: str) -> None:
    if failure == 'throttle':
        raise TransientStoreError(f'{operation} throttled', {'operation': operation})
    if failure == 'unavailable':
        raise StoreUnavailableError(f'{operation} failed', {'operation': operation})


class InMemoryFeedStore:
    """
    FeedStore fake backed by a dict of partitions.

    Query semantics follow the DynamoDB adapter: sort key order, begins_with
    prefix, exclusive start key, and a lastEvaluatedKey whenever more items
    in the key range remain. As in DynamoDB, limit is applied before the TTL
    filter.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None, index_name: str = 'GSI4'):
        self.clock = clock or FakeClock()
        self.index_name = index_name
        self.partitions: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.Lock()

        # Failure injection
        self.batch_failures: Deque[Failure] = deque()
        self.put_failures: Deque[Failure] = deque()
        self.query_failures: Deque[Failure] = deque()
        self.stuck_sort_keys: Set[str] = set()
        self.failing_recipients: Set[str] = set()
        self.unavailable = False
        self.on_batch_delete: Optional[Callable[[Sequence[Dict[str, str]]], None]] = None

        # Call recording
        self.batch_calls: List[List[Dict[str, str]]] = []
        self.put_batch_calls: List[List[str]] = []
        self.query_calls: List[Dict[str, Any]] = []
        self.put_count = 0
        self.in_flight = 0
        self.max_in_flight = 0

    # Helpers used by tests

    def seed(self, record: Dict[str, Any]) -> None:
        self.partitions.setdefault(record[PARTITION_KEY], {})[record[SORT_KEY]] = dict(record)

    def all_records(self) -> List[Dict[str, Any]]:
        return [
            record
            for partition in self.partitions.values()
            for record in partition.values()
        ]

    def post_ids_for(self, user_id: str) -> Set[str]:
        return {
            record['postId']
            for record in self.partitions.get(f'USER#{user_id}', {}).values()
        }

    def _check_available(self, operation: str) -> None:
        if self.unavailable:
            raise StoreUnavailableError(f'{operation} failed', {'operation': operation})

    def _visible(self, record: Dict[str, Any]) -> bool:
        return not is_expired(record, self.clock())

    @staticmethod
    def _project(record: Dict[str, Any], projection: Optional[Sequence[str]]) -> Dict[str, Any]:
        if not projection:
            return dict(record)
        return {name: record[name] for name in projection if name in record}

    # FeedStore protocol

    def put_item(self, item: Dict[str, Any]) -> None:
        self._check_available('put_item')
        if item.get('recipientUserId') in self.failing_recipients:
            raise TransientStoreError('put_item throttled', {'operation': 'put_item'})
        with self._lock:
            self.put_count += 1
            self.seed(item)

    def batch_put_items(self, items: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
        self._check_available('batch_write_item')
        if len(items) > MAX_BATCH_SIZE:
            raise ValueError(f'At most {MAX_BATCH_SIZE} items per batch, got {len(items)}')

        with self._lock:
            self.put_batch_calls.append([item['recipientUserId'] for item in items])
            failure = self.put_failures.popleft() if self.put_failures else 0

        _raise_for(failure, 'batch_write_item')

        leave = failure if isinstance(failure, int) else 0
        cut = max(0, len(items) - leave)
        unprocessed = list(items[cut:])
        written = []
        with self._lock:
            for item in items[:cut]:
                if item.get('recipientUserId') in self.failing_recipients:
                    unprocessed.append(item)
                    continue
                self.put_count += 1
                self.seed(item)
                written.append(item)

        return {'written': written, 'unprocessed': unprocessed}

    def batch_delete_items(self, keys: Sequence[Dict[str, str]]) -> Dict[str, Any]:
        self._check_available('batch_write_item')
        if len(keys) > MAX_BATCH_SIZE:
            raise ValueError(f'At most {MAX_BATCH_SIZE} keys per batch, got {len(keys)}')

        with self._lock:
            self.batch_calls.append([dict(key) for key in keys])
            failure = self.batch_failures.popleft() if self.batch_failures else 0
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)

        try:
            _raise_for(failure, 'batch_write_item')

            leave = failure if isinstance(failure, int) else 0
            processed = list(keys[:len(keys) - leave]) if leave else list(keys)
            unprocessed = list(keys[len(keys) - leave:]) if leave else []

            deleted = []
            with self._lock:
                for key in processed:
                    if key[SORT_KEY] in self.stuck_sort_keys:
                        unprocessed.append(key)
                        continue
                    self.partitions.get(key[PARTITION_KEY], {}).pop(key[SORT_KEY], None)
                    deleted.append(key)

            if self.on_batch_delete is not None:
                self.on_batch_delete(keys)

            return {'deleted': deleted, 'unprocessed': unprocessed}
        finally:
            with self._lock:
                self.in_flight -= 1

    def query_partition(
        self,
        partition_key: str,
        limit: Optional[int] = None,
        exclusive_start_key: Optional[Dict[str, Any]] = None,
        scan_index_forward: bool = True,
        sort_key_prefix: Optional[str] = None,
        projection: Optional[Sequence[str]] = None
    ) -> Dict[str, Any]:
        self._check_available('query')
        self.query_calls.append({
            'partition_key': partition_key,
            'limit': limit,
            'exclusive_start_key': exclusive_start_key,
            'scan_index_forward': scan_index_forward,
            'sort_key_prefix': sort_key_prefix,
            'projection': projection,
        })
        if self.query_failures:
            _raise_for(self.query_failures.popleft(), 'query')

        with self._lock:
            records = list(self.partitions.get(partition_key, {}).values())

        records = [
            record for record in records
            if not sort_key_prefix or record[SORT_KEY].startswith(sort_key_prefix)
        ]
        records.sort(key=lambda record: record[SORT_KEY], reverse=not scan_index_forward)

        if exclusive_start_key:
            start = exclusive_start_key[SORT_KEY]
            if scan_index_forward:
                records = [record for record in records if record[SORT_KEY] > start]
            else:
                records = [record for record in records if record[SORT_KEY] < start]

        # Limit counts evaluated items; the TTL filter runs afterwards, so a
        # page can come back short (or empty) with a lastEvaluatedKey
        last_key = None
        if limit is not None and len(records) > limit:
            records = records[:limit]
            last_key = key_of(records[-1])
        records = [record for record in records if self._visible(record)]

        return {
            'items': [self._project(record, projection) for record in records],
            'lastEvaluatedKey': last_key,
        }

    def query_index(
        self,
        index_name: str,
        index_partition_key: str,
        projection: Optional[Sequence[str]] = None
    ) -> Dict[str, Any]:
        self._check_available('query')
        if index_name != self.index_name:
            raise ValueError(f"Unknown index '{index_name}'")
        self.query_calls.append({'index_name': index_name, 'index_partition_key': index_partition_key})
        if self.query_failures:
            _raise_for(self.query_failures.popleft(), 'query')

        with self._lock:
            records = self.all_records()

        return {
            'items': [
                self._project(record, projection)
                for record in records
                if record.get(INDEX_PARTITION_KEY) == index_partition_key and self._visible(record)
            ]
        }


class RecordingSleep:
    """Stand-in for time.sleep that records the requested delays."""

    def __init__(self):
        self.delays: List[float] = []
        self._lock = threading.Lock()

    def __call__(self, seconds: float) -> None:
        with self._lock:
            self.delays.append(seconds)


def make_post(post_id: str = 'p1', author_id: str = 'u1', created_at: Any = START_TIME, **overrides: Any) -> Dict[str, Any]:
    post = {
        'id': post_id,
        'authorId': author_id,
        'authorHandle': f'{author_id}-handle',
        'caption': f'caption for {post_id}',
        'imageUrl': f'https://img.example.com/{post_id}.jpg',
        'likesCount': 0,
        'commentsCount': 0,
        'isPublic': True,
        'createdAt': created_at,
    }
    post.update(overrides)
    return post


def quiet_logger(operation: str = 'feed-test') -> StructuredLogger:
    """Logger whose metrics go to a mock CloudWatch client."""
    return StructuredLogger('test-correlation-id', operation, metrics=MetricsClient(operation, MagicMock()))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryFeedStore(clock=clock)


@pytest.fixture
def config():
    return FeedConfig(table_name='feed-test')


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def load_handler():
    """Import a Lambda handler module by directory name under a unique module name."""
    def _load(function_name: str):
        path = LAMBDA_DIR / function_name / 'handler.py'
        spec = importlib.util.spec_from_file_location(f'{function_name}_handler', path)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module
    return _load
