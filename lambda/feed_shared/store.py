"""
Storage adapter for the feed table.

This module defines the minimal store contract the feed services depend on
(FeedStore) and its DynamoDB implementation. The services never talk to
boto3 directly; they are handed a store at construction time and the host
owns its lifecycle.

Contract:
- put_item: unconditional point write (upsert)
- batch_put_items: up to 25 upserts, reporting unprocessed items
- batch_delete_items: up to 25 deletes, reporting unprocessed keys
- query_partition: range query over one partition with pagination
- query_index: secondary index lookup, all pages

TTL contract: items whose expiresAt has passed are excluded from query
results. DynamoDB removes expired items lazily (typically within days), so
the adapter filters on expiresAt itself instead of trusting the sweep.

Error contract:
- Throttling and timeouts raise TransientStoreError
- Everything else raises StoreUnavailableError
"""

import time
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    ReadTimeoutError,
)

from feed_shared.config import FeedConfig, MAX_BATCH_SIZE
from feed_shared.errors import StoreUnavailableError, TransientStoreError
from feed_shared.models import (
    INDEX_PARTITION_KEY,
    PARTITION_KEY,
    SORT_KEY,
    TTL_ATTRIBUTE,
)
from feed_shared.types import (
    BatchDeleteResult,
    BatchPutResult,
    IndexQueryResult,
    QueryPage,
    StoreKey,
)

# Error codes DynamoDB returns when a request is throttled
TRANSIENT_ERROR_CODES = {
    'ProvisionedThroughputExceededException',
    'ThrottlingException',
    'RequestLimitExceeded',
}


class FeedStore(Protocol):
    """Partitioned, range-queryable key-value store holding feed records."""

    def put_item(self, item: Dict[str, Any]) -> None:
        ...

    def batch_put_items(self, items: Sequence[Dict[str, Any]]) -> BatchPutResult:
        ...

    def batch_delete_items(self, keys: Sequence[StoreKey]) -> BatchDeleteResult:
        ...

    def query_partition(
        self,
        partition_key: str,
        limit: Optional[int] = None,
        exclusive_start_key: Optional[Dict[str, Any]] = None,
        scan_index_forward: bool = True,
        sort_key_prefix: Optional[str] = None,
        projection: Optional[Sequence[str]] = None
    ) -> QueryPage:
        ...

    def query_index(
        self,
        index_name: str,
        index_partition_key: str,
        projection: Optional[Sequence[str]] = None
    ) -> IndexQueryResult:
        ...


def create_dynamodb_client(config: FeedConfig) -> Any:
    """
    Create a DynamoDB client with the configured per-call timeout.

    A call that exceeds the timeout raises ReadTimeoutError or
    ConnectTimeoutError, which the store classifies as transient.
    """
    return boto3.client(
        'dynamodb',
        config=Config(
            connect_timeout=config.store_timeout_seconds,
            read_timeout=config.store_timeout_seconds,
            retries={'max_attempts': 2, 'mode': 'standard'},
        )
    )


class DynamoDBFeedStore:
    """
    FeedStore backed by a DynamoDB table.

    Uses the low-level client with explicit (de)serialization so that request
    shapes are exactly what DynamoDB sees (and what tests can stub).
    """

    def __init__(
        self,
        config: FeedConfig,
        client: Any = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the store.

        Args:
            config: Feed configuration (table name, index name, timeouts)
            client: Optional pre-built DynamoDB client
            clock: Source of the current epoch time for TTL filtering
        """
        self.table_name = config.table_name
        self.client = client or create_dynamodb_client(config)
        self._clock = clock
        self._index_partition_attributes = {
            config.post_index_name: INDEX_PARTITION_KEY
        }
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

    def _serialize(self, item: Dict[str, Any]) -> Dict[str, Any]:
        return {key: self._serializer.serialize(value) for key, value in item.items()}

    def _deserialize(self, item: Dict[str, Any]) -> Dict[str, Any]:
        return {key: self._deserializer.deserialize(value) for key, value in item.items()}

    def _call(self, operation: str, **kwargs: Any) -> Dict[str, Any]:
        """Invoke a client operation, translating failures into store errors."""
        try:
            return getattr(self.client, operation)(**kwargs)
        except ClientError as error:
            code = error.response.get('Error', {}).get('Code', 'Unknown')
            details = {'operation': operation, 'errorCode': code}
            if code in TRANSIENT_ERROR_CODES:
                raise TransientStoreError(f'DynamoDB {operation} throttled', details) from error
            raise StoreUnavailableError(f'DynamoDB {operation} failed: {code}', details) from error
        except (ReadTimeoutError, ConnectTimeoutError) as error:
            raise TransientStoreError(
                f'DynamoDB {operation} timed out',
                {'operation': operation, 'errorCode': type(error).__name__}
            ) from error
        except BotoCoreError as error:
            raise StoreUnavailableError(
                f'DynamoDB {operation} failed: {error}',
                {'operation': operation, 'errorCode': type(error).__name__}
            ) from error

    def _ttl_filter(self, names: Dict[str, str], values: Dict[str, Any]) -> str:
        names['#ttl'] = TTL_ATTRIBUTE
        values[':now'] = self._serializer.serialize(int(self._clock()))
        return 'attribute_not_exists(#ttl) OR #ttl > :now'

    def _projection(self, projection: Sequence[str], names: Dict[str, str]) -> str:
        placeholders = []
        for index, attribute in enumerate(projection):
            placeholder = f'#p{index}'
            names[placeholder] = attribute
            placeholders.append(placeholder)
        return ', '.join(placeholders)

    def put_item(self, item: Dict[str, Any]) -> None:
        self._call('put_item', TableName=self.table_name, Item=self._serialize(item))

    def batch_put_items(self, items: Sequence[Dict[str, Any]]) -> BatchPutResult:
        """
        Upsert up to 25 items in a single BatchWriteItem call.

        Returns:
            Items DynamoDB accepted and items it left unprocessed
        """
        if not items:
            return {'written': [], 'unprocessed': []}
        if len(items) > MAX_BATCH_SIZE:
            raise ValueError(f'At most {MAX_BATCH_SIZE} items per batch, got {len(items)}')

        response = self._call(
            'batch_write_item',
            RequestItems={
                self.table_name: [
                    {'PutRequest': {'Item': self._serialize(item)}}
                    for item in items
                ]
            }
        )

        unprocessed_requests = response.get('UnprocessedItems', {}).get(self.table_name, [])
        pending = set()
        for request in unprocessed_requests:
            item = request['PutRequest']['Item']
            pending.add((item[PARTITION_KEY]['S'], item[SORT_KEY]['S']))

        written: List[Dict[str, Any]] = []
        unprocessed: List[Dict[str, Any]] = []
        for item in items:
            if (item[PARTITION_KEY], item[SORT_KEY]) in pending:
                unprocessed.append(item)
            else:
                written.append(item)
        return {'written': written, 'unprocessed': unprocessed}

    def batch_delete_items(self, keys: Sequence[StoreKey]) -> BatchDeleteResult:
        """
        Delete up to 25 items in a single BatchWriteItem call.

        Returns:
            Keys confirmed deleted and keys DynamoDB left unprocessed
        """
        if not keys:
            return {'deleted': [], 'unprocessed': []}
        if len(keys) > MAX_BATCH_SIZE:
            raise ValueError(f'At most {MAX_BATCH_SIZE} keys per batch, got {len(keys)}')

        response = self._call(
            'batch_write_item',
            RequestItems={
                self.table_name: [
                    {'DeleteRequest': {'Key': self._serialize(dict(key))}}
                    for key in keys
                ]
            }
        )

        unprocessed_requests = response.get('UnprocessedItems', {}).get(self.table_name, [])
        unprocessed: List[StoreKey] = []
        for request in unprocessed_requests:
            key = self._deserialize(request['DeleteRequest']['Key'])
            unprocessed.append({PARTITION_KEY: key[PARTITION_KEY], SORT_KEY: key[SORT_KEY]})

        pending = {(key[PARTITION_KEY], key[SORT_KEY]) for key in unprocessed}
        deleted = [
            key for key in keys
            if (key[PARTITION_KEY], key[SORT_KEY]) not in pending
        ]
        return {'deleted': deleted, 'unprocessed': unprocessed}

    def query_partition(
        self,
        partition_key: str,
        limit: Optional[int] = None,
        exclusive_start_key: Optional[Dict[str, Any]] = None,
        scan_index_forward: bool = True,
        sort_key_prefix: Optional[str] = None,
        projection: Optional[Sequence[str]] = None
    ) -> QueryPage:
        names = {'#pk': PARTITION_KEY}
        values = {':pk': self._serializer.serialize(partition_key)}
        key_condition = '#pk = :pk'

        if sort_key_prefix:
            names['#sk'] = SORT_KEY
            values[':skPrefix'] = self._serializer.serialize(sort_key_prefix)
            key_condition += ' AND begins_with(#sk, :skPrefix)'

        params: Dict[str, Any] = {
            'TableName': self.table_name,
            'KeyConditionExpression': key_condition,
            'FilterExpression': self._ttl_filter(names, values),
            'ScanIndexForward': scan_index_forward,
        }
        if projection:
            params['ProjectionExpression'] = self._projection(projection, names)
        if limit is not None:
            params['Limit'] = limit
        if exclusive_start_key:
            params['ExclusiveStartKey'] = self._serialize(exclusive_start_key)

        params['ExpressionAttributeNames'] = names
        params['ExpressionAttributeValues'] = values

        response = self._call('query', **params)

        last_key = response.get('LastEvaluatedKey')
        return {
            'items': [self._deserialize(item) for item in response.get('Items', [])],
            'lastEvaluatedKey': self._deserialize(last_key) if last_key else None,
        }

    def query_index(
        self,
        index_name: str,
        index_partition_key: str,
        projection: Optional[Sequence[str]] = None
    ) -> IndexQueryResult:
        """
        Query a secondary index, following LastEvaluatedKey to the end.

        The index must project the table keys and expiresAt.
        """
        if index_name not in self._index_partition_attributes:
            raise ValueError(f"Unknown index '{index_name}'")

        names = {'#ipk': self._index_partition_attributes[index_name]}
        values = {':ipk': self._serializer.serialize(index_partition_key)}
        params: Dict[str, Any] = {
            'TableName': self.table_name,
            'IndexName': index_name,
            'KeyConditionExpression': '#ipk = :ipk',
            'FilterExpression': self._ttl_filter(names, values),
        }
        if projection:
            params['ProjectionExpression'] = self._projection(projection, names)
        params['ExpressionAttributeNames'] = names
        params['ExpressionAttributeValues'] = values

        items: List[Dict[str, Any]] = []
        while True:
            response = self._call('query', **params)
            items.extend(self._deserialize(item) for item in response.get('Items', []))

            last_key = response.get('LastEvaluatedKey')
            if not last_key:
                break
            params['ExclusiveStartKey'] = last_key

        return {'items': items}
