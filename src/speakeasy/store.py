from typing import Any, Dict, List, Mapping, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    ReadTimeoutError,
)

from speakeasy.errors import DownstreamError, DownstreamTimeout
from speakeasy.logger import get_logger

logger = get_logger("store")


def build_resource(region: str, timeout: float):
    """
    DynamoDB resource with bounded timeouts and no automatic retries.
    """
    return boto3.resource(
        "dynamodb",
        region_name=region,
        config=BotoConfig(
            connect_timeout=timeout,
            read_timeout=timeout,
            retries={"max_attempts": 1, "mode": "standard"},
        ),
    )


class StoreClient:
    """
    get / conditional update / scan over named DynamoDB tables.

    `key_names` maps each table name to its partition key attribute.
    """

    def __init__(self, resource, key_names: Mapping[str, str]):
        self._resource = resource
        self._key_names = dict(key_names)

    def _table(self, table: str):
        return self._resource.Table(table)

    def _key(self, table: str, key: str) -> Dict[str, str]:
        return {self._key_names[table]: key}

    def get(self, table: str, key: str) -> Optional[Dict[str, Any]]:
        """
        Returns the item, or None when no item exists under `key`.
        """
        try:
            resp = self._table(table).get_item(Key=self._key(table, key))
        except (ConnectTimeoutError, ReadTimeoutError) as e:
            raise self._timeout("get", table, e)
        except (ClientError, BotoCoreError) as e:
            raise self._error("get", table, e)
        return resp.get("Item")

    def update(self, table: str, key: str, field_path: str, value: Any) -> None:
        """
        SET a (possibly nested, dot-separated) field on an existing item.

        The write is conditional on the item existing, so it never creates
        a half-formed record.
        """
        key_name = self._key_names[table]
        parts = field_path.split(".")
        names = {f"#f{i}": part for i, part in enumerate(parts)}
        names["#pk"] = key_name
        path = ".".join(f"#f{i}" for i in range(len(parts)))

        try:
            self._table(table).update_item(
                Key=self._key(table, key),
                UpdateExpression=f"SET {path} = :v",
                ConditionExpression="attribute_exists(#pk)",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues={":v": value},
            )
        except (ConnectTimeoutError, ReadTimeoutError) as e:
            raise self._timeout("update", table, e)
        except (ClientError, BotoCoreError) as e:
            raise self._error("update", table, e)

        logger.debug(
            "store.updated", extra={"table": table, "key": key, "field_path": field_path}
        )

    def scan(self, table: str) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        kwargs: Dict[str, Any] = {}
        try:
            while True:
                resp = self._table(table).scan(**kwargs)
                items.extend(resp.get("Items", []))
                last_key = resp.get("LastEvaluatedKey")
                if not last_key:
                    break
                kwargs["ExclusiveStartKey"] = last_key
        except (ConnectTimeoutError, ReadTimeoutError) as e:
            raise self._timeout("scan", table, e)
        except (ClientError, BotoCoreError) as e:
            raise self._error("scan", table, e)
        return items

    @staticmethod
    def _timeout(op: str, table: str, e: Exception) -> DownstreamTimeout:
        logger.error("store.timeout", extra={"op": op, "table": table, "error": str(e)})
        return DownstreamTimeout(detail=f"dynamodb {op} on {table} timed out: {e}")

    @staticmethod
    def _error(op: str, table: str, e: Exception) -> DownstreamError:
        code = None
        if isinstance(e, ClientError):
            code = e.response.get("Error", {}).get("Code")
        logger.error(
            "store.error", extra={"op": op, "table": table, "code": code, "error": str(e)}
        )
        return DownstreamError(detail=f"dynamodb {op} on {table} failed ({code}): {e}")
