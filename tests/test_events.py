"""
Tests for parsing EventBridge envelopes into feed events.
"""

import pytest

from feed_shared.errors import ValidationError
from feed_shared.events import PostCreated, PostDeleted, UserUnfollowed, parse_event

from conftest import make_post


def envelope(detail_type, detail):
    return {'id': 'evt-1', 'source': 'posts', 'detail-type': detail_type, 'detail': detail}


class TestParseEvent:

    def test_post_created(self):
        event = parse_event(envelope('PostCreated', {'post': make_post(), 'audience': ['u2', 'u3']}))

        assert isinstance(event, PostCreated)
        assert event.post['id'] == 'p1'
        assert event.audience == ('u2', 'u3')

    def test_post_created_without_audience(self):
        event = parse_event(envelope('PostCreated', {'post': make_post()}))

        assert event.audience == ()

    def test_post_deleted(self):
        event = parse_event(envelope('PostDeleted', {'postId': 'p1', 'authorId': 'u1'}))

        assert event == PostDeleted(post_id='p1', author_id='u1')

    def test_user_unfollowed(self):
        event = parse_event(envelope('UserUnfollowed', {'followerId': 'u2', 'followeeId': 'u1'}))

        assert event == UserUnfollowed(follower_id='u2', followee_id='u1')

    def test_user_unfollowed_following_id_alias(self):
        event = parse_event(envelope('UserUnfollowed', {'followerId': 'u2', 'followingId': 'u1'}))

        assert event.followee_id == 'u1'

    def test_events_are_immutable(self):
        event = parse_event(envelope('PostDeleted', {'postId': 'p1', 'authorId': 'u1'}))

        with pytest.raises(AttributeError):
            event.post_id = 'p2'


class TestParseEventErrors:

    def test_unknown_detail_type(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_event(envelope('PostLiked', {}))
        assert 'detail-type' in exc_info.value.details

    def test_missing_detail(self):
        with pytest.raises(ValidationError):
            parse_event({'detail-type': 'PostDeleted'})

    def test_not_an_object(self):
        with pytest.raises(ValidationError):
            parse_event('PostDeleted')

    def test_post_deleted_missing_post_id(self):
        with pytest.raises(ValidationError):
            parse_event(envelope('PostDeleted', {'authorId': 'u1'}))

    def test_user_unfollowed_missing_followee(self):
        with pytest.raises(ValidationError):
            parse_event(envelope('UserUnfollowed', {'followerId': 'u2'}))

    def test_post_created_invalid_post(self):
        post = make_post()
        del post['authorHandle']

        with pytest.raises(ValidationError) as exc_info:
            parse_event(envelope('PostCreated', {'post': post, 'audience': ['u2']}))
        assert exc_info.value.details['errors'][0]['field'] == 'authorHandle'
