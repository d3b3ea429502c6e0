"""Shared code for the Feed Fan-out Service."""

from .types import (
    StoreKey,
    PostSnapshot,
    FeedItem,
    FeedPage,
    FanOutResult,
    CleanupResult,
    CleanupState
)

from .errors import (
    DomainError,
    ValidationError,
    StoreError,
    TransientStoreError,
    StoreUnavailableError
)

from .config import (
    FeedConfig,
    RetryPolicy,
    load_config
)

from .store import (
    FeedStore,
    DynamoDBFeedStore
)

from .fanout import FanOutWriter
from .reader import FeedReader
from .cleanup import CleanupEngine

from .events import (
    PostCreated,
    PostDeleted,
    UserUnfollowed,
    parse_event
)

__all__ = [
    # Types
    'StoreKey',
    'PostSnapshot',
    'FeedItem',
    'FeedPage',
    'FanOutResult',
    'CleanupResult',
    'CleanupState',
    # Errors
    'DomainError',
    'ValidationError',
    'StoreError',
    'TransientStoreError',
    'StoreUnavailableError',
    # Config
    'FeedConfig',
    'RetryPolicy',
    'load_config',
    # Store
    'FeedStore',
    'DynamoDBFeedStore',
    # Services
    'FanOutWriter',
    'FeedReader',
    'CleanupEngine',
    # Events
    'PostCreated',
    'PostDeleted',
    'UserUnfollowed',
    'parse_event',
]
