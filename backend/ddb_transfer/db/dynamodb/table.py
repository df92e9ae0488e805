from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from .retry import RetryPolicy, ddb_call


@dataclass(slots=True)
class Page:
    items: list[dict[str, Any]]
    # DynamoDB LastEvaluatedKey; None once the scan is exhausted.
    cursor: dict[str, Any] | None
    scanned_count: int = 0
    count: int = 0


@dataclass(slots=True)
class ScanFilter:
    expression: str | None = None
    attribute_names: dict[str, str] | None = None
    attribute_values: dict[str, Any] | None = None

    def as_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}
        if self.expression:
            kwargs["FilterExpression"] = self.expression
        if self.attribute_names:
            kwargs["ExpressionAttributeNames"] = dict(self.attribute_names)
        if self.attribute_values:
            kwargs["ExpressionAttributeValues"] = dict(self.attribute_values)
        return kwargs


@dataclass(slots=True)
class BatchPutResponse:
    unprocessed: list[dict[str, Any]] = field(default_factory=list)


class DynamoTable:
    def __init__(self, *, table_name: str, resource, retry_policy: RetryPolicy | None = None):
        self.table_name = str(table_name)
        self._resource = resource
        self._table = resource.Table(self.table_name)
        self._retry_policy = retry_policy

    # --- schema ---

    def key_names(self) -> list[str]:
        def _op():
            # Always a fresh DescribeTable; callers cache the result with their own TTL.
            self._table.reload()
            schema = self._table.key_schema or []
            hash_keys = [s["AttributeName"] for s in schema if s.get("KeyType") == "HASH"]
            range_keys = [s["AttributeName"] for s in schema if s.get("KeyType") == "RANGE"]
            return hash_keys + range_keys

        return ddb_call("DescribeTable", _op, table_name=self.table_name, retry_policy=self._retry_policy)

    # --- scan ---

    def scan_page(
        self,
        *,
        cursor: dict[str, Any] | None = None,
        scan_filter: ScanFilter | None = None,
        limit: int | None = None,
        select_count: bool = False,
    ) -> Page:
        def _op():
            kwargs: dict[str, Any] = {}
            if scan_filter is not None:
                kwargs.update(scan_filter.as_kwargs())
            if limit:
                kwargs["Limit"] = max(1, int(limit))
            if select_count:
                kwargs["Select"] = "COUNT"
            # Important: only pass ExclusiveStartKey when present.
            if isinstance(cursor, dict) and cursor:
                kwargs["ExclusiveStartKey"] = cursor
            return self._table.scan(**kwargs)

        resp = ddb_call("Scan", _op, table_name=self.table_name, retry_policy=self._retry_policy)
        items = [] if select_count else list(resp.get("Items") or [])
        return Page(
            items=items,
            cursor=resp.get("LastEvaluatedKey") or None,
            scanned_count=int(resp.get("ScannedCount") or 0),
            count=int(resp.get("Count") or len(items)),
        )

    # --- writes ---

    def batch_put(self, *, items: Iterable[dict[str, Any]]) -> BatchPutResponse:
        requests = [{"PutRequest": {"Item": it}} for it in items]
        if not requests:
            return BatchPutResponse()

        def _op():
            # Service-resource level call so items are serialized from native types.
            return self._resource.batch_write_item(RequestItems={self.table_name: requests})

        resp = ddb_call("BatchWriteItem", _op, table_name=self.table_name, retry_policy=self._retry_policy)
        unprocessed = ((resp or {}).get("UnprocessedItems") or {}).get(self.table_name) or []
        return BatchPutResponse(
            unprocessed=[((r or {}).get("PutRequest") or {}).get("Item") or {} for r in unprocessed],
        )

    def put_item(
        self,
        *,
        item: dict[str, Any],
        condition_expression: str | None = None,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
        key: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        def _op():
            kwargs: dict[str, Any] = {"Item": item}
            if condition_expression:
                kwargs["ConditionExpression"] = condition_expression
            if expression_attribute_names:
                kwargs["ExpressionAttributeNames"] = expression_attribute_names
            if expression_attribute_values:
                kwargs["ExpressionAttributeValues"] = expression_attribute_values
            return self._table.put_item(**kwargs)

        return ddb_call("PutItem", _op, table_name=self.table_name, key=key, retry_policy=self._retry_policy)

    def put_if_absent(self, *, item: dict[str, Any], partition_key: str, key: dict[str, Any] | None = None) -> None:
        # The condition is evaluated against the item with the same full primary key,
        # so checking the partition key attribute is enough for composite keys too.
        self.put_item(
            item=item,
            condition_expression="attribute_not_exists(#pk)",
            expression_attribute_names={"#pk": partition_key},
            key=key,
        )
