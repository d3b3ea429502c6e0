"""
Configuration for the Feed Fan-out Service.

Configuration is read once at startup from environment variables and
validated on boot. Handlers call load_config() at module initialization so
that a bad deployment fails on cold start instead of on the first event.

Follows steering rules:
- Read once at startup, validate env vars on boot
- Explicit over implicit (every tunable has a declared default)
- No global mutable state (config objects are frozen)
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

# DynamoDB BatchWriteItem accepts at most 25 requests per call
MAX_BATCH_SIZE = 25


@dataclass(frozen=True)
class RetryPolicy:
    """
    Backoff schedule for batch deletes.

    Attempt n (0-based) is followed by a delay of
    base_delay_seconds * multiplier ** n, capped at max_delay_seconds.
    With the defaults that is 100ms, 200ms, 400ms, ...
    """
    max_attempts: int = 3
    base_delay_seconds: float = 0.1
    multiplier: float = 2.0
    max_delay_seconds: float = 2.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError('max_attempts must be at least 1')
        if self.base_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError('Backoff delays must be non-negative')
        if self.multiplier < 1:
            raise ValueError('multiplier must be at least 1')

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds to wait after the given failed attempt."""
        delay = self.base_delay_seconds * (self.multiplier ** attempt)
        return min(delay, self.max_delay_seconds)


@dataclass(frozen=True)
class FeedConfig:
    """Validated configuration shared by the writer, reader and cleanup engine."""
    table_name: str
    post_index_name: str = 'GSI4'
    ttl_seconds: int = 7 * 24 * 60 * 60
    default_page_size: int = 20
    max_page_size: int = 100
    delete_batch_size: int = MAX_BATCH_SIZE
    delete_concurrency: int = 10
    fanout_concurrency: int = 10
    store_timeout_seconds: float = 3.0
    celebrity_follower_threshold: int = 5000
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self):
        if not self.table_name or not self.table_name.strip():
            raise ValueError('table_name is required')
        if not 1 <= self.delete_batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f'delete_batch_size must be between 1 and {MAX_BATCH_SIZE}')
        if not 1 <= self.default_page_size <= self.max_page_size:
            raise ValueError('default_page_size must be between 1 and max_page_size')
        for name in ('ttl_seconds', 'delete_concurrency', 'fanout_concurrency'):
            if getattr(self, name) < 1:
                raise ValueError(f'{name} must be at least 1')
        if self.store_timeout_seconds <= 0:
            raise ValueError('store_timeout_seconds must be positive')


def _read_int(environ: Mapping[str, str], var: str, default: int) -> int:
    value = environ.get(var)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {var} must be an integer, got '{value}'")


def _read_float(environ: Mapping[str, str], var: str, default: float) -> float:
    value = environ.get(var)
    if value is None or value == '':
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable {var} must be a number, got '{value}'")


def load_config(environ: Optional[Mapping[str, str]] = None) -> FeedConfig:
    """
    Load and validate environment variables at startup.

    Args:
        environ: Mapping to read from (defaults to os.environ)

    Returns:
        FeedConfig instance

    Raises:
        ValueError: If a required variable is missing or a value is invalid
    """
    if environ is None:
        environ = os.environ

    required_vars = ['FEED_TABLE_NAME']
    missing_vars = [var for var in required_vars if not environ.get(var)]

    if missing_vars:
        raise ValueError(
            f"Missing required environment variables: {', '.join(missing_vars)}"
        )

    retry_policy = RetryPolicy(
        max_attempts=_read_int(environ, 'DELETE_MAX_ATTEMPTS', 3),
        base_delay_seconds=_read_int(environ, 'DELETE_BASE_DELAY_MS', 100) / 1000.0,
        max_delay_seconds=_read_int(environ, 'DELETE_MAX_DELAY_MS', 2000) / 1000.0,
    )

    return FeedConfig(
        table_name=environ['FEED_TABLE_NAME'],
        post_index_name=environ.get('FEED_POST_INDEX_NAME') or 'GSI4',
        ttl_seconds=_read_int(environ, 'FEED_TTL_DAYS', 7) * 24 * 60 * 60,
        default_page_size=_read_int(environ, 'FEED_DEFAULT_PAGE_SIZE', 20),
        max_page_size=_read_int(environ, 'FEED_MAX_PAGE_SIZE', 100),
        delete_batch_size=_read_int(environ, 'DELETE_BATCH_SIZE', MAX_BATCH_SIZE),
        delete_concurrency=_read_int(environ, 'DELETE_CONCURRENCY', 10),
        fanout_concurrency=_read_int(environ, 'FANOUT_CONCURRENCY', 10),
        store_timeout_seconds=_read_float(environ, 'STORE_TIMEOUT_SECONDS', 3.0),
        celebrity_follower_threshold=_read_int(environ, 'CELEBRITY_FOLLOWER_THRESHOLD', 5000),
        retry_policy=retry_policy,
    )
