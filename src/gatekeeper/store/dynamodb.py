"""DynamoDB key store for multi-node deployments.

Table layout (single table, string partition key ``pk``):

    pk          S   the store key, e.g. "auth_ip:203.0.113.4"
    counter     N   present for counters created by increment()
    payload     S   JSON document for values written by set()
    expires_at  N   epoch seconds; also the table's TTL attribute

DynamoDB's TTL sweeper deletes expired items lazily, so every read also
checks ``expires_at`` against the injected clock.
"""

import json
import logging
import os
from decimal import Decimal
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from gatekeeper.common.exceptions import StoreUnavailableError
from gatekeeper.core.clock import Clock, SystemClock
from gatekeeper.store.base import KeyStore

logger = logging.getLogger(__name__)

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"


def _is_conditional_failure(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") == CONDITIONAL_CHECK_FAILED


def _epoch(value: float) -> Decimal:
    return Decimal(str(round(value, 3)))


class DynamoDBKeyStore(KeyStore):
    """KeyStore backed by a DynamoDB table."""
    
    DEFAULT_REGION = "us-east-1"
    MAX_INCREMENT_RETRIES = 3
    
    def __init__(
        self,
        table_name: Optional[str] = None,
        region: Optional[str] = None,
        aws_profile: Optional[str] = None,
        clock: Optional[Clock] = None,
    ):
        self.table_name = table_name or os.environ.get("GATEKEEPER_DYNAMODB_TABLE")
        if not self.table_name:
            raise ValueError("GATEKEEPER_DYNAMODB_TABLE required")
        
        self.region = region or os.environ.get("AWS_REGION", self.DEFAULT_REGION)
        self.clock = clock or SystemClock()
        
        if aws_profile:
            session = boto3.Session(profile_name=aws_profile)
            self.dynamodb = session.resource("dynamodb", region_name=self.region)
        else:
            self.dynamodb = boto3.resource("dynamodb", region_name=self.region)
        
        self.table = self.dynamodb.Table(self.table_name)
        logger.info(f"DynamoDB key store initialized: {self.table_name} ({self.region})")
    
    def _unavailable(self, operation: str, key: str, error: Exception) -> StoreUnavailableError:
        logger.error(f"DynamoDB {operation} failed for {key}: {error}")
        return StoreUnavailableError(
            f"Key store {operation} failed",
            backend="dynamodb",
            details={"key": key, "error": str(error)},
        )
    
    def _is_live(self, item: Optional[Dict[str, Any]]) -> bool:
        return bool(item) and float(item.get("expires_at", 0)) > self.clock.timestamp()
    
    @staticmethod
    def _decode(item: Dict[str, Any]) -> Any:
        if "payload" in item:
            return json.loads(item["payload"])
        return int(item["counter"])
    
    def _get_item(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.table.get_item(Key={"pk": key}, ConsistentRead=True)
        except (ClientError, BotoCoreError) as e:
            raise self._unavailable("get", key, e)
        item = response.get("Item")
        return item if self._is_live(item) else None
    
    def get(self, key: str) -> Optional[Any]:
        item = self._get_item(key)
        return self._decode(item) if item else None
    
    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        expires_at = self.clock.timestamp() + ttl_seconds
        try:
            self.table.put_item(Item={
                "pk": key,
                "payload": json.dumps(value, default=str),
                "expires_at": _epoch(expires_at),
            })
        except (ClientError, BotoCoreError) as e:
            raise self._unavailable("set", key, e)
    
    def increment(self, key: str, ttl_seconds: float, amount: int = 1) -> int:
        for _ in range(self.MAX_INCREMENT_RETRIES):
            now = _epoch(self.clock.timestamp())
            
            # Live counter: add in place, keeping the window's expiry.
            try:
                response = self.table.update_item(
                    Key={"pk": key},
                    UpdateExpression="ADD #counter :amount",
                    ConditionExpression="attribute_exists(pk) AND expires_at > :now",
                    ExpressionAttributeNames={"#counter": "counter"},
                    ExpressionAttributeValues={":amount": amount, ":now": now},
                    ReturnValues="UPDATED_NEW",
                )
                return int(response["Attributes"]["counter"])
            except ClientError as e:
                if not _is_conditional_failure(e):
                    raise self._unavailable("increment", key, e)
            except BotoCoreError as e:
                raise self._unavailable("increment", key, e)
            
            # Absent or expired: open a new window, unless someone beat us to it.
            try:
                self.table.put_item(
                    Item={
                        "pk": key,
                        "counter": amount,
                        "expires_at": _epoch(float(now) + ttl_seconds),
                    },
                    ConditionExpression="attribute_not_exists(pk) OR expires_at <= :now",
                    ExpressionAttributeValues={":now": now},
                )
                return amount
            except ClientError as e:
                if not _is_conditional_failure(e):
                    raise self._unavailable("increment", key, e)
            except BotoCoreError as e:
                raise self._unavailable("increment", key, e)
        
        raise StoreUnavailableError(
            "Key store increment did not settle under contention",
            backend="dynamodb",
            details={"key": key, "retries": self.MAX_INCREMENT_RETRIES},
        )
    
    def ttl(self, key: str) -> Optional[float]:
        item = self._get_item(key)
        if not item:
            return None
        return float(item["expires_at"]) - self.clock.timestamp()
    
    def delete(self, key: str) -> None:
        try:
            self.table.delete_item(Key={"pk": key})
        except (ClientError, BotoCoreError) as e:
            raise self._unavailable("delete", key, e)
    
    def pop(self, key: str) -> Optional[Any]:
        try:
            response = self.table.delete_item(Key={"pk": key}, ReturnValues="ALL_OLD")
        except (ClientError, BotoCoreError) as e:
            raise self._unavailable("pop", key, e)
        item = response.get("Attributes")
        return self._decode(item) if self._is_live(item) else None
