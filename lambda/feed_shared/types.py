"""
Shared type definitions for the Feed Fan-out Service.

This module defines TypedDict classes for store records, results and the
post snapshot accepted by fan-out.
"""

from typing import TypedDict, Literal, List, Dict, Any, Optional

# Cleanup state machine
CleanupState = Literal[
    'fetching-keys',
    'batching',
    'deleting',
    'done',
    'partial-failure-reported'
]


class StoreKey(TypedDict):
    """Primary key of a feed record."""
    PK: str
    SK: str


class PostSnapshot(TypedDict, total=False):
    """Post fields copied into every feed item at fan-out time."""
    id: str
    authorId: str
    authorHandle: str
    caption: Optional[str]
    imageUrl: Optional[str]
    thumbnailUrl: Optional[str]
    authorFullName: Optional[str]
    authorProfilePictureUrl: Optional[str]
    likesCount: int
    commentsCount: int
    isPublic: bool
    createdAt: str


class FeedItem(TypedDict, total=False):
    """Feed item as returned to callers."""
    recipientUserId: str
    sortKey: str
    postId: str
    authorId: str
    authorHandle: str
    caption: Optional[str]
    imageUrl: Optional[str]
    thumbnailUrl: Optional[str]
    authorFullName: Optional[str]
    authorProfilePictureUrl: Optional[str]
    likesCount: int
    commentsCount: int
    isPublic: bool
    createdAt: str
    expiresAt: int


class FeedPage(TypedDict):
    """One page of a user's feed."""
    items: List[FeedItem]
    nextCursor: Optional[str]
    hasMore: bool


class FanOutResult(TypedDict):
    """Outcome of a fan-out call."""
    written: int
    failed: int
    failedRecipients: List[str]


class CleanupResult(TypedDict):
    """Outcome of a cleanup call."""
    deletedCount: int
    matchedCount: int
    unprocessedCount: int
    state: CleanupState
    cancelled: bool


class BatchPutResult(TypedDict):
    """Result of a single batch put call against the store."""
    written: List[Dict[str, Any]]
    unprocessed: List[Dict[str, Any]]


class BatchDeleteResult(TypedDict):
    """Result of a single batch delete call against the store."""
    deleted: List[StoreKey]
    unprocessed: List[StoreKey]


class QueryPage(TypedDict):
    """Result of a partition query."""
    items: List[Dict[str, Any]]
    lastEvaluatedKey: Optional[Dict[str, Any]]


class IndexQueryResult(TypedDict):
    """Result of a secondary index query (all pages)."""
    items: List[Dict[str, Any]]
