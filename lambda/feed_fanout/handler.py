"""
Feed fan-out Lambda handler.

Consumes PostCreated events from EventBridge and writes the post into every
audience member's feed.

Follows steering rules:
- One handler per file
- Business logic in services, not handlers
- Configuration read once at startup
- Log event lifecycle with correlation ID

Error behaviour:
- Malformed events are logged and dropped (a retry cannot fix them)
- Recipients still unwritten after the retry ceiling are reported in the
  result, not raised
- A store outage (StoreUnavailableError) is raised, never reported as a
  partial write
- Anything else is raised so the async invocation is retried; fan-out is
  idempotent, so a retry overwrites instead of duplicating
"""

from typing import Dict, Any

from feed_shared.config import load_config
from feed_shared.errors import DomainError, ValidationError
from feed_shared.events import PostCreated, parse_event
from feed_shared.fanout import FanOutWriter
from feed_shared.logger import create_logger
from feed_shared.store import DynamoDBFeedStore


# Load configuration at module initialization (cold start)
# This will fail fast if configuration is invalid
config = load_config()

# One store (and DynamoDB connection pool) per container
store = DynamoDBFeedStore(config)


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for PostCreated events.

    Returns:
        Fan-out result (written, failed, failedRecipients) with a skipped
        flag; skipped is True for dropped events and celebrity posts
    """
    logger = create_logger(event, operation='feed-fanout')

    try:
        feed_event = parse_event(event)
        if not isinstance(feed_event, PostCreated):
            raise ValidationError(
                'Unsupported event type',
                {'detail-type': 'feed-fanout only handles PostCreated'}
            )

        post = feed_event.post
        audience = list(dict.fromkeys(feed_event.audience))
        logger.log_event_received(
            event_type='PostCreated',
            postId=post['id'],
            authorId=post['authorId'],
            audienceSize=len(audience)
        )

        # Large audiences are not fanned out; the host serves these posts at query time
        if len(audience) >= config.celebrity_follower_threshold:
            logger.log_info(
                'celebrity_bypass',
                postId=post['id'],
                authorId=post['authorId'],
                audienceSize=len(audience),
                threshold=config.celebrity_follower_threshold
            )
            logger.metrics.emit_count('CelebrityBypass', 1)
            logger.log_event_processed(event_type='PostCreated', postId=post['id'], skipped=True)
            logger.publish_metrics()
            return {'written': 0, 'failed': 0, 'failedRecipients': [], 'skipped': True}

        writer = FanOutWriter(store, config, logger=logger)
        result = writer.fan_out(post, audience)

        logger.metrics.emit_count('FeedItemsWritten', result['written'])
        if result['failed']:
            logger.metrics.emit_count('FanOutFailures', result['failed'])

        logger.log_event_processed(
            event_type='PostCreated',
            postId=post['id'],
            written=result['written'],
            failed=result['failed']
        )
        logger.publish_metrics()
        return {**result, 'skipped': False}

    except ValidationError as error:
        logger.log_validation_error(errors=error.details, message=error.message)
        logger.publish_metrics()
        return {'written': 0, 'failed': 0, 'failedRecipients': [], 'skipped': True}

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
