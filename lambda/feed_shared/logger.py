"""
Structured logging utility for feed handlers and services.

This module provides a centralized logging utility that implements structured logging
with correlation IDs, latency tracking, and consistent JSON formatting across all
handlers and the core feed services.

Follows steering rules:
- Log request/event lifecycle with correlation ID
- Log errors with context (no sensitive data)
- Use consistent log format
"""

import json
import time
from typing import Dict, Any, Optional
from datetime import datetime, timezone

from feed_shared.metrics import create_metrics_client, MetricsClient


# Field names that should never be logged
SENSITIVE_FIELDS = {
    'password',
    'token',
    'secret',
    'apikey',
    'api_key',
    'authorization',
    'credentials',
    'accesstoken',
    'access_token',
    'refreshtoken',
    'refresh_token',
    'sessionid',
    'session_id'
}


class StructuredLogger:
    """
    Structured logger for feed handlers and services.

    This logger writes one JSON object per line (picked up by CloudWatch
    Logs) and owns a MetricsClient so that lifecycle events also feed
    request count, error and latency metrics.

    Usage:
        logger = StructuredLogger(correlation_id='abc-123', operation='feed-fanout')
        logger.log_event_received(event_type='PostCreated', postId='p1')
        # ... process event ...
        logger.log_event_processed(event_type='PostCreated', written=3)
        logger.publish_metrics()
    """

    def __init__(
        self,
        correlation_id: str,
        operation: str,
        metrics: Optional[MetricsClient] = None
    ):
        """
        Initialize the structured logger.

        Args:
            correlation_id: Unique identifier for request tracing
            operation: Operation name for metrics (e.g., 'feed-cleanup-post-delete')
            metrics: Optional metrics client (one is created if omitted)
        """
        self.correlation_id = correlation_id
        self.operation = operation
        self.start_time = time.time()
        self.metrics = metrics or create_metrics_client(operation)

    def _sanitize_data(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively redact sensitive fields from log data."""
        if not isinstance(data, dict):
            return data

        sanitized = {}
        for key, value in data.items():
            if key.lower() in SENSITIVE_FIELDS:
                sanitized[key] = '[REDACTED]'
            elif isinstance(value, dict):
                sanitized[key] = self._sanitize_data(value)
            elif isinstance(value, list):
                sanitized[key] = [
                    self._sanitize_data(item) if isinstance(item, dict) else item
                    for item in value
                ]
            else:
                sanitized[key] = value

        return sanitized

    def _latency_ms(self) -> int:
        return int((time.time() - self.start_time) * 1000)

    def _log(self, event: str, **kwargs: Any) -> None:
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'correlationId': self.correlation_id,
            'operation': self.operation,
            'event': event,
            **self._sanitize_data(kwargs)
        }

        # Use print for CloudWatch Logs
        print(json.dumps(log_entry, default=str))

    def log_request_start(
        self,
        path: str,
        method: str,
        **additional_fields: Any
    ) -> None:
        """Log the start of an API request."""
        self._log(
            'request_start',
            path=path,
            httpMethod=method,
            **additional_fields
        )

    def log_request_complete(
        self,
        status_code: int,
        **additional_fields: Any
    ) -> None:
        """
        Log request completion with latency and emit request metrics.

        Example:
            logger.log_request_complete(status_code=200, userId='u1', itemCount=20)
        """
        latency_ms = self._latency_ms()

        self._log(
            'request_complete',
            statusCode=status_code,
            latencyMs=latency_ms,
            **additional_fields
        )

        self.metrics.emit_request_count()
        self.metrics.emit_latency(latency_ms)

    def log_event_received(
        self,
        event_type: str,
        **additional_fields: Any
    ) -> None:
        """Log receipt of an asynchronous event (PostCreated, PostDeleted, ...)."""
        self._log(
            'event_received',
            eventType=event_type,
            **additional_fields
        )

    def log_event_processed(
        self,
        event_type: str,
        **additional_fields: Any
    ) -> None:
        """Log completion of an asynchronous event with latency and emit metrics."""
        latency_ms = self._latency_ms()

        self._log(
            'event_processed',
            eventType=event_type,
            latencyMs=latency_ms,
            **additional_fields
        )

        self.metrics.emit_request_count()
        self.metrics.emit_latency(latency_ms)

    def log_validation_error(
        self,
        errors: Any,
        **additional_fields: Any
    ) -> None:
        """
        Log validation error event.

        Example:
            logger.log_validation_error(errors={'limit': 'Limit must be at least 1'})
        """
        self._log(
            'validation_error',
            errors=errors,
            latencyMs=self._latency_ms(),
            **additional_fields
        )

        self.metrics.emit_error(error_code='VALIDATION_ERROR')

    def log_domain_error(
        self,
        error_code: str,
        error_message: str,
        **additional_fields: Any
    ) -> None:
        """
        Log domain error event.

        Domain errors are expected failures (invalid cursor, store throttled,
        store unavailable). Also emits CloudWatch error metric.
        """
        latency_ms = self._latency_ms()

        self._log(
            'domain_error',
            errorCode=error_code,
            errorMessage=error_message,
            latencyMs=latency_ms,
            **additional_fields
        )

        self.metrics.emit_error(error_code=error_code)
        self.metrics.emit_latency(latency_ms)

    def log_unexpected_error(
        self,
        error_type: str,
        error_message: str,
        **additional_fields: Any
    ) -> None:
        """
        Log unexpected error event.

        Unexpected errors are system errors that should not occur during normal
        operation. Also emits CloudWatch error metric.
        """
        latency_ms = self._latency_ms()

        self._log(
            'unexpected_error',
            errorType=error_type,
            errorMessage=error_message,
            latencyMs=latency_ms,
            **additional_fields
        )

        self.metrics.emit_error(error_code='INTERNAL_ERROR')
        self.metrics.emit_latency(latency_ms)

    def log_info(
        self,
        message: str,
        **additional_fields: Any
    ) -> None:
        """
        Log informational event.

        Example:
            logger.log_info(message='cleanup_state', state='batching', batchCount=4)
        """
        self._log(
            'info',
            message=message,
            **additional_fields
        )

    def log_warning(
        self,
        message: str,
        **additional_fields: Any
    ) -> None:
        """Log a recoverable problem (failed recipient write, retry exhausted, ...)."""
        self._log(
            'warning',
            message=message,
            **additional_fields
        )

    def publish_metrics(self) -> None:
        """Publish all accumulated metrics to CloudWatch."""
        self.metrics.publish()


def create_logger(event: Dict[str, Any], operation: str) -> StructuredLogger:
    """
    Create a structured logger from a Lambda event.

    The correlation ID is taken from the API Gateway request ID, or from
    the EventBridge event ID for asynchronous events.

    Args:
        event: API Gateway proxy event or EventBridge event
        operation: Operation name for metrics (e.g., 'feed-get')

    Returns:
        StructuredLogger instance
    """
    event = event if isinstance(event, dict) else {}
    request_context = event.get('requestContext') or {}
    correlation_id = (
        request_context.get('requestId')
        or event.get('id')
        or 'unknown'
    )
    return StructuredLogger(correlation_id, operation)
