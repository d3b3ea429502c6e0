"""
Domain events consumed by the feed handlers.

Events arrive as EventBridge envelopes:

    {
        "id": "...",
        "detail-type": "PostDeleted",
        "source": "posts",
        "detail": {"postId": "p1", "authorId": "u1"}
    }

parse_event() validates the envelope and returns one of the tagged event
classes below, so handlers never reach into raw dictionaries.

Detail payloads:
- PostCreated: {"post": {...snapshot...}, "audience": ["u2", "u3"]}
- PostDeleted: {"postId": "p1", "authorId": "u1"}
- UserUnfollowed: {"followerId": "u2", "followeeId": "u1"}
  ("followingId" is accepted as an alias for followeeId)
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Tuple, Union

from feed_shared.errors import ValidationError
from feed_shared.types import PostSnapshot
from feed_shared.validation import raise_for_errors, require_id, validate_audience, validate_post


@dataclass(frozen=True)
class PostCreated:
    post: PostSnapshot
    audience: Tuple[str, ...]


@dataclass(frozen=True)
class PostDeleted:
    post_id: str
    author_id: str


@dataclass(frozen=True)
class UserUnfollowed:
    follower_id: str
    followee_id: str


FeedEvent = Union[PostCreated, PostDeleted, UserUnfollowed]


def _parse_post_created(detail: Dict[str, Any]) -> PostCreated:
    post = detail.get('post')
    audience = detail.get('audience', [])
    raise_for_errors(validate_post(post) + validate_audience(audience), 'Invalid PostCreated event')
    return PostCreated(post=dict(post), audience=tuple(audience))


def _parse_post_deleted(detail: Dict[str, Any]) -> PostDeleted:
    return PostDeleted(
        post_id=require_id(detail.get('postId'), 'postId'),
        author_id=require_id(detail.get('authorId'), 'authorId'),
    )


def _parse_user_unfollowed(detail: Dict[str, Any]) -> UserUnfollowed:
    followee_id = detail.get('followeeId', detail.get('followingId'))
    return UserUnfollowed(
        follower_id=require_id(detail.get('followerId'), 'followerId'),
        followee_id=require_id(followee_id, 'followeeId'),
    )


_PARSERS: Dict[str, Callable[[Dict[str, Any]], FeedEvent]] = {
    'PostCreated': _parse_post_created,
    'PostDeleted': _parse_post_deleted,
    'UserUnfollowed': _parse_user_unfollowed,
}

EVENT_TYPES: List[str] = list(_PARSERS)


def parse_event(event: Any) -> FeedEvent:
    """
    Parse an EventBridge envelope into a typed feed event.

    Raises:
        ValidationError: If the envelope, detail-type or detail is invalid
    """
    if not isinstance(event, dict):
        raise ValidationError('Invalid event', {'event': 'Event must be an object'})

    detail_type = event.get('detail-type')
    parser = _PARSERS.get(detail_type)
    if parser is None:
        raise ValidationError(
            'Unsupported event type',
            {'detail-type': f"Expected one of {', '.join(EVENT_TYPES)}, got '{detail_type}'"}
        )

    detail = event.get('detail')
    if not isinstance(detail, dict):
        raise ValidationError('Invalid event', {'detail': 'Event detail must be an object'})

    return parser(detail)
