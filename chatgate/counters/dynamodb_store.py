"""DynamoDB-backed counter store.

Table layout: partition key ``window_key`` (string), a numeric ``count``
and a numeric ``expires_at`` (epoch seconds) configured as the table's TTL
attribute. DynamoDB deletes expired items lazily, so reads also check
``expires_at`` themselves.
"""

import asyncio
import time

from chatgate.counters.store import CounterStore
from chatgate.errors import CounterStoreUnavailable


class DynamoDBCounterStore(CounterStore):
    """Window counters in a DynamoDB table, incremented with atomic ADD."""

    def __init__(self, table_name: str, region: str = "us-east-1"):
        self._table_name = table_name
        self._region = region
        self._table = None

    def _get_table(self):
        """Lazy-init boto3 Table resource."""
        if self._table is None:
            import boto3

            dynamodb = boto3.resource("dynamodb", region_name=self._region)
            self._table = dynamodb.Table(self._table_name)
        return self._table

    async def get_count(self, key: str) -> int:
        return await self._call(self._read, key)

    async def increment(self, key: str, ttl_seconds: int) -> int:
        return await self._call(self._add_one, key, ttl_seconds)

    async def _call(self, fn, *args) -> int:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            return await asyncio.to_thread(fn, *args)
        except (BotoCoreError, ClientError) as e:
            raise CounterStoreUnavailable(f"DynamoDB counter store error: {e}") from e

    def _read(self, key: str) -> int:
        resp = self._get_table().get_item(Key={"window_key": key}, ConsistentRead=True)
        item = resp.get("Item")
        if not item:
            return 0
        if int(item.get("expires_at", 0)) <= int(time.time()):
            return 0
        return int(item.get("count", 0))

    def _add_one(self, key: str, ttl_seconds: int) -> int:
        resp = self._get_table().update_item(
            Key={"window_key": key},
            UpdateExpression="ADD #count :one SET #expires_at = if_not_exists(#expires_at, :expires_at)",
            ExpressionAttributeNames={"#count": "count", "#expires_at": "expires_at"},
            ExpressionAttributeValues={
                ":one": 1,
                ":expires_at": int(time.time()) + ttl_seconds,
            },
            ReturnValues="UPDATED_NEW",
        )
        return int(resp["Attributes"]["count"])
