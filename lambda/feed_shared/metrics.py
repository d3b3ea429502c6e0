"""
CloudWatch metrics utility for feed handlers.

This module provides a centralized metrics utility that emits custom CloudWatch
metrics for request count, error rate, latency and feed-specific counters
(items written, items deleted, partial cleanups) across all handlers.

Follows steering rules:
- Explicit over implicit
- Fail fast on invalid input
- No global mutable state
"""

import boto3
from typing import Dict, Any, Optional, List
from datetime import datetime, timezone


# Metric namespace for all feed metrics
METRIC_NAMESPACE = 'FeedFanout'

# CloudWatch PutMetricData limit is 20 metrics per request
PUBLISH_BATCH_SIZE = 20


class MetricsClient:
    """
    CloudWatch metrics client for feed handlers.

    Metrics are buffered in memory and sent in one go by publish(). The
    CloudWatch client is created on first publish, so building a client
    (and a logger that owns one) never touches AWS.

    Usage:
        metrics = MetricsClient(operation='feed-fanout')
        metrics.emit_request_count()
        metrics.emit_count('FeedItemsWritten', 120)
        metrics.emit_latency(latency_ms=150)
        metrics.publish()
    """

    def __init__(self, operation: str, cloudwatch_client: Any = None):
        """
        Initialize the metrics client.

        Args:
            operation: Operation name (e.g., 'feed-fanout', 'feed-get')
            cloudwatch_client: Optional pre-built CloudWatch client
        """
        if not operation or not operation.strip():
            raise ValueError('Operation name is required for metrics')

        self.operation = operation
        self._cloudwatch = cloudwatch_client
        self._metric_data: List[Dict[str, Any]] = []

    @property
    def cloudwatch(self) -> Any:
        if self._cloudwatch is None:
            self._cloudwatch = boto3.client('cloudwatch')
        return self._cloudwatch

    @property
    def pending(self) -> List[Dict[str, Any]]:
        """Metrics emitted but not yet published."""
        return list(self._metric_data)

    def _add_metric(
        self,
        metric_name: str,
        value: float,
        unit: str,
        dimensions: Optional[List[Dict[str, str]]] = None
    ) -> None:
        all_dimensions = [
            {
                'Name': 'Operation',
                'Value': self.operation
            }
        ]
        if dimensions:
            all_dimensions.extend(dimensions)

        self._metric_data.append({
            'MetricName': metric_name,
            'Value': value,
            'Unit': unit,
            'Timestamp': datetime.now(timezone.utc),
            'Dimensions': all_dimensions
        })

    def emit_request_count(self, count: int = 1) -> None:
        """Emit the number of requests/events processed."""
        self._add_metric(
            metric_name='RequestCount',
            value=float(count),
            unit='Count'
        )

    def emit_error(self, error_code: Optional[str] = None) -> None:
        """
        Emit error metric.

        Args:
            error_code: Error code (e.g., 'VALIDATION_ERROR', 'STORE_UNAVAILABLE') (optional)
        """
        dimensions = []
        if error_code:
            dimensions.append({
                'Name': 'ErrorCode',
                'Value': error_code
            })

        self._add_metric(
            metric_name='ErrorCount',
            value=1.0,
            unit='Count',
            dimensions=dimensions if dimensions else None
        )

    def emit_latency(self, latency_ms: int) -> None:
        if latency_ms < 0:
            raise ValueError('Latency must be non-negative')

        self._add_metric(
            metric_name='Latency',
            value=float(latency_ms),
            unit='Milliseconds'
        )

    def emit_count(self, metric_name: str, value: int) -> None:
        """
        Emit a named counter.

        Example:
            metrics.emit_count('FeedItemsDeleted', result['deletedCount'])
        """
        if not metric_name:
            raise ValueError('Metric name is required')
        if value < 0:
            raise ValueError('Count must be non-negative')

        self._add_metric(
            metric_name=metric_name,
            value=float(value),
            unit='Count'
        )

    def publish(self) -> None:
        """
        Publish all accumulated metrics to CloudWatch.

        Sends metrics in batches of 20. Failures are logged and the buffer is
        cleared; metrics never fail the request.
        """
        if not self._metric_data:
            return

        try:
            for i in range(0, len(self._metric_data), PUBLISH_BATCH_SIZE):
                batch = self._metric_data[i:i + PUBLISH_BATCH_SIZE]

                self.cloudwatch.put_metric_data(
                    Namespace=METRIC_NAMESPACE,
                    MetricData=batch
                )
        except Exception as error:
            print(f'Failed to publish metrics: {error}')
        finally:
            self._metric_data = []


def create_metrics_client(operation: str) -> MetricsClient:
    """Create a metrics client for a handler operation."""
    return MetricsClient(operation)
