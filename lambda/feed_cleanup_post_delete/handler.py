"""
Feed cleanup Lambda handler for deleted posts.

Consumes PostDeleted events and removes the post from every feed it was
fanned out to.

Follows steering rules:
- One handler per file
- Business logic in services, not handlers
- Configuration read once at startup
- Log event lifecycle with correlation ID

A partial cleanup (retries exhausted) is logged and counted, not raised,
so the event is not redelivered. Leftover items expire through TTL, or a
manual re-run for the same postId removes them.
Hard store failures are raised so the async invocation is retried.
"""

from typing import Dict, Any

from feed_shared.cleanup import CleanupEngine
from feed_shared.config import load_config
from feed_shared.errors import DomainError, ValidationError
from feed_shared.events import PostDeleted, parse_event
from feed_shared.logger import create_logger
from feed_shared.store import DynamoDBFeedStore


# Load configuration at module initialization (cold start)
config = load_config()

store = DynamoDBFeedStore(config)


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for PostDeleted events.

    Returns:
        Cleanup result, or {'skipped': True} for a dropped event
    """
    logger = create_logger(event, operation='feed-cleanup-post-delete')

    try:
        feed_event = parse_event(event)
        if not isinstance(feed_event, PostDeleted):
            raise ValidationError(
                'Unsupported event type',
                {'detail-type': 'feed-cleanup-post-delete only handles PostDeleted'}
            )

        logger.log_event_received(
            event_type='PostDeleted',
            postId=feed_event.post_id,
            authorId=feed_event.author_id
        )

        engine = CleanupEngine(store, config, logger=logger)
        result = engine.delete_by_post(feed_event.post_id)

        logger.metrics.emit_count('FeedItemsDeleted', result['deletedCount'])
        if result['state'] != 'done':
            logger.metrics.emit_count('PartialCleanup', 1)
            logger.log_warning(
                'partial_cleanup',
                postId=feed_event.post_id,
                matchedCount=result['matchedCount'],
                unprocessedCount=result['unprocessedCount']
            )

        logger.log_event_processed(
            event_type='PostDeleted',
            postId=feed_event.post_id,
            deletedCount=result['deletedCount'],
            state=result['state']
        )
        logger.publish_metrics()
        return dict(result)

    except ValidationError as error:
        logger.log_validation_error(errors=error.details, message=error.message)
        logger.publish_metrics()
        return {'skipped': True}

    except DomainError as error:
        logger.log_domain_error(
            error_code=error.code,
            error_message=error.message
        )
        logger.publish_metrics()
        raise

    except Exception as error:
        logger.log_unexpected_error(
            error_type=type(error).__name__,
            error_message=str(error)
        )
        logger.publish_metrics()
        raise
