"""
Property-based tests for the Feed Fan-out Service.
Uses Hypothesis to generate test cases and verify properties hold across all inputs.
"""

from hypothesis import given, strategies as st, settings
from hypothesis.strategies import composite

from feed_shared.cleanup import CleanupEngine
from feed_shared.config import FeedConfig
from feed_shared.cursor import decode_cursor, encode_cursor
from feed_shared.errors import ValidationError
from feed_shared.fanout import FanOutWriter
from feed_shared.reader import FeedReader
from feed_shared.validation import normalize_timestamp

from conftest import FakeClock, InMemoryFeedStore, RecordingSleep, START_TIME, make_post, quiet_logger

CONFIG = FeedConfig(table_name='feed-test', fanout_concurrency=4, delete_concurrency=3)

user_ids = st.text(alphabet='abcdefghijklmnopqrstuvwxyz0123456789', min_size=1, max_size=8)


def build_services():
    clock = FakeClock()
    store = InMemoryFeedStore(clock=clock)
    logger = quiet_logger()
    writer = FanOutWriter(store, CONFIG, logger=logger, clock=clock)
    reader = FeedReader(store, CONFIG)
    engine = CleanupEngine(store, CONFIG, logger=logger, sleep=RecordingSleep())
    return store, writer, reader, engine, clock


@composite
def post_timeline(draw):
    """Generate posts with distinct ids and arbitrary (possibly equal) timestamps."""
    count = draw(st.integers(min_value=0, max_value=30))
    return [
        make_post(
            post_id=f'p{index}',
            author_id=draw(st.sampled_from(['a', 'b', 'c'])),
            created_at=START_TIME + draw(st.integers(min_value=0, max_value=50))
        )
        for index in range(count)
    ]


class TestFanOutProperties:

    @given(st.lists(user_ids, max_size=30))
    @settings(max_examples=50, deadline=None)
    def test_fan_out_is_idempotent(self, audience):
        """
        Property: re-running a fan-out leaves exactly one item per distinct recipient.
        """
        store, writer, _, _, _ = build_services()

        first = writer.fan_out(make_post(), audience)
        writer.fan_out(make_post(), audience)

        assert first['written'] == len(set(audience))
        assert len(store.all_records()) == len(set(audience))


class TestReadProperties:

    @given(post_timeline(), st.integers(min_value=1, max_value=7))
    @settings(max_examples=50, deadline=None)
    def test_pagination_is_exhaustive_and_ordered(self, posts, page_size):
        """
        Property: following cursors yields every visible item exactly once, newest first.
        """
        _, writer, reader, _, _ = build_services()
        for post in posts:
            writer.fan_out(post, ['reader'])

        collected = []
        cursor = None
        while True:
            page = reader.get_feed('reader', limit=page_size, cursor=cursor)
            assert len(page['items']) <= page_size
            collected.extend(page['items'])
            if not page['hasMore']:
                break
            cursor = page['nextCursor']

        assert sorted(item['postId'] for item in collected) == sorted(post['id'] for post in posts)
        sort_keys = [item['sortKey'] for item in collected]
        assert sort_keys == sorted(sort_keys, reverse=True)
        assert len(set(sort_keys)) == len(sort_keys)

    @given(st.text(max_size=80))
    @settings(max_examples=200)
    def test_cursor_decoding_only_raises_validation_error(self, cursor):
        """
        Property: arbitrary client input either decodes to a feed position or is rejected cleanly.
        """
        try:
            sort_key = decode_cursor(cursor)
        except ValidationError:
            return
        assert sort_key.startswith('FEED#')

    @given(st.text(min_size=1, max_size=40))
    @settings(max_examples=100)
    def test_cursor_round_trip(self, suffix):
        sort_key = f'FEED#{suffix}'
        assert decode_cursor(encode_cursor({'PK': 'USER#u', 'SK': sort_key})) == sort_key

    @given(
        st.integers(min_value=0, max_value=253402300799),
        st.integers(min_value=0, max_value=253402300799)
    )
    @settings(max_examples=200)
    def test_normalized_timestamps_sort_chronologically(self, first, second):
        """
        Property: string order of normalized timestamps matches numeric order.
        """
        a, b = normalize_timestamp(first), normalize_timestamp(second)
        assert (a < b) == (first < second)
        assert (a == b) == (first == second)


class TestCleanupProperties:

    @given(post_timeline(), st.sampled_from(['a', 'b', 'c']))
    @settings(max_examples=50, deadline=None)
    def test_delete_by_author_is_scoped(self, posts, author):
        """
        Property: unfollow cleanup removes exactly the author's posts from exactly one feed.
        """
        store, writer, _, engine, _ = build_services()
        for post in posts:
            writer.fan_out(post, ['reader', 'other'])

        result = engine.delete_by_author_for_user('reader', author)

        expected_removed = {post['id'] for post in posts if post['authorId'] == author}
        assert result['deletedCount'] == len(expected_removed)
        assert store.post_ids_for('reader') == {post['id'] for post in posts} - expected_removed
        assert store.post_ids_for('other') == {post['id'] for post in posts}

    @given(st.integers(min_value=0, max_value=80))
    @settings(max_examples=30, deadline=None)
    def test_delete_by_post_is_complete(self, recipient_count):
        """
        Property: after delete_by_post no recipient still holds the post.
        """
        store, writer, reader, engine, _ = build_services()
        recipients = [f'u{index}' for index in range(recipient_count)]
        writer.fan_out(make_post('gone'), recipients)
        writer.fan_out(make_post('kept'), recipients[:1])

        result = engine.delete_by_post('gone')

        assert result == {
            'deletedCount': recipient_count,
            'matchedCount': recipient_count,
            'unprocessedCount': 0,
            'state': 'done',
            'cancelled': False,
        }
        assert all('gone' not in store.post_ids_for(user) for user in recipients)
        if recipients:
            assert [item['postId'] for item in reader.get_feed('u0')['items']] == ['kept']

    @given(
        st.integers(min_value=1, max_value=25),
        st.lists(st.integers(min_value=0, max_value=25), max_size=2)
    )
    @settings(max_examples=50, deadline=None)
    def test_partial_failures_converge(self, recipient_count, leftovers):
        """
        Property: with fewer partial failures than the retry ceiling, every key is deleted.
        """
        store, writer, _, engine, _ = build_services()
        writer.fan_out(make_post('p1'), [f'u{index}' for index in range(recipient_count)])
        store.batch_failures.extend(leftovers)

        result = engine.delete_by_post('p1')

        assert result['state'] == 'done'
        assert result['deletedCount'] == recipient_count
        assert store.all_records() == []

    @given(st.integers(min_value=1, max_value=10))
    @settings(max_examples=20, deadline=None)
    def test_expired_items_never_returned(self, recipient_count):
        store, writer, reader, engine, clock = build_services()
        recipients = [f'u{index}' for index in range(recipient_count)]
        writer.fan_out(make_post(), recipients)

        clock.advance(CONFIG.ttl_seconds)

        assert all(reader.get_feed(user)['items'] == [] for user in recipients)
        assert engine.delete_by_post('p1')['matchedCount'] == 0
