"""
Feed read Lambda handler.

This handler implements GET /feed/{userId}?limit=&cursor=.
It follows the Lambda-per-operation pattern with clear separation of concerns:
- Handler: Extract path and query parameters, map errors to HTTP responses
- Reader: Pagination and item shaping (feed_shared.reader)

Follows steering rules:
- One handler per file
- Business logic in services, not handlers
- Fail fast on invalid input
- Configuration read once at startup
- Log request lifecycle with correlation ID
"""

from typing import Dict, Any, Optional

from feed_shared.config import load_config
from feed_shared.errors import DomainError
from feed_shared.logger import create_logger
from feed_shared.reader import FeedReader
from feed_shared.responses import create_error_response, create_success_response
from feed_shared.store import DynamoDBFeedStore


# Load configuration at module initialization (cold start)
# This will fail fast if configuration is invalid
config = load_config()

store = DynamoDBFeedStore(config)

# Reads hold no per-request state, so one reader serves every invocation
feed_reader = FeedReader(store, config)

# Map error codes to HTTP status codes
STATUS_CODE_MAP = {
    'VALIDATION_ERROR': 400,
    'STORE_THROTTLED': 503,
    'STORE_UNAVAILABLE': 503,
}


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for feed reads.

    Request flow:
    1. Create structured logger with correlation ID
    2. Extract userId from path parameters
    3. Parse limit and cursor query parameters
    4. Delegate to FeedReader
    5. Map domain errors to HTTP responses

    Response codes:
        200: Feed page {items, nextCursor, hasMore}
        400: Validation error (missing userId, bad limit, malformed cursor)
        503: Store throttled or unavailable
        500: Internal error
    """
    logger = create_logger(event, operation='feed-get')

    logger.log_request_start(
        path=event.get('path', '/feed/{userId}'),
        method=event.get('httpMethod', 'GET')
    )

    try:
        path_parameters = event.get('pathParameters') or {}
        user_id = path_parameters.get('userId')
        if not user_id or not user_id.strip():
            logger.log_validation_error(errors={'userId': 'userId is required in path'})
            logger.publish_metrics()
            return create_error_response(
                400,
                'VALIDATION_ERROR',
                'Missing userId in path parameters',
                {'userId': 'userId is required in path'}
            )

        query_params = event.get('queryStringParameters') or {}

        limit: Optional[int] = None
        if query_params.get('limit') not in (None, ''):
            try:
                limit = int(query_params['limit'])
            except ValueError:
                logger.log_validation_error(errors={'limit': 'Limit must be an integer'})
                logger.publish_metrics()
                return create_error_response(
                    400,
                    'VALIDATION_ERROR',
                    'Invalid limit parameter',
                    {'limit': 'Limit must be an integer'}
                )

        cursor: Optional[str] = query_params.get('cursor') or None

        page = feed_reader.get_feed(user_id, limit=limit, cursor=cursor)

        logger.log_request_complete(
            status_code=200,
            userId=user_id,
            itemCount=len(page['items']),
            hasMore=page['hasMore']
        )
        logger.publish_metrics()

        return create_success_response(200, page)

    except DomainError as error:
        logger.log_domain_error(
            error_code=error.code,
            error_message=error.message
        )
        logger.publish_metrics()

        return create_error_response(
            STATUS_CODE_MAP.get(error.code, 500),
            error.code,
            error.message,
            error.details
        )

    except Exception as error:
        # Do not expose internal details to client
        logger.log_unexpected_error(
            error_type=type(error).__name__,
            error_message=str(error)
        )
        logger.publish_metrics()

        return create_error_response(
            500,
            'INTERNAL_ERROR',
            'An unexpected error occurred',
            {}
        )
