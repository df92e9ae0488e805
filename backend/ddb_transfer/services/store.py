from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, Sequence

from ..db.dynamodb.client import close_resource
from ..db.dynamodb.errors import DdbConditionFailed, DdbError, DdbUnavailable
from ..db.dynamodb.retry import RetryPolicy
from ..db.dynamodb.table import DynamoTable, Page, ScanFilter
from ..observability.logging import get_logger
from .ttl_cache import ExpiringCache

log = get_logger("store")

__all__ = [
    "DynamoStore",
    "ItemOutcome",
    "Page",
    "PutOutcome",
    "PutResult",
    "ScanFilter",
    "StoreClient",
    "record_key",
]


class PutOutcome(str, Enum):
    SUCCESS = "success"
    CONDITION_FAILED = "condition_failed"
    ERROR = "error"


@dataclass(slots=True)
class PutResult:
    outcome: PutOutcome
    error: str | None = None


@dataclass(slots=True)
class ItemOutcome:
    record: dict[str, Any]
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class StoreClient(Protocol):
    """What the transfer engine needs from a key-value store."""

    region: str

    def scan(
        self,
        table: str,
        cursor: dict[str, Any] | None = None,
        scan_filter: ScanFilter | None = None,
        limit: int | None = None,
    ) -> Page: ...

    def count(
        self,
        table: str,
        cursor: dict[str, Any] | None = None,
        scan_filter: ScanFilter | None = None,
    ) -> tuple[int, dict[str, Any] | None]: ...

    def batch_put(self, table: str, records: Sequence[dict[str, Any]]) -> list[ItemOutcome]: ...

    def conditional_put(self, table: str, record: dict[str, Any]) -> PutResult: ...

    def key_names(self, table: str) -> tuple[str, ...]: ...

    def close(self) -> None: ...


def record_key(record: dict[str, Any], key_names: Sequence[str]) -> dict[str, Any]:
    if not isinstance(record, dict):
        return {}
    key = {k: record[k] for k in key_names if k in record}
    if key:
        return key
    # Legacy items keyed by a plain id.
    if "id" in record:
        return {"id": record["id"]}
    return {}


def _key_tuple(record: dict[str, Any], key_names: Sequence[str]) -> tuple:
    return tuple(str(record.get(k)) for k in key_names)


class DynamoStore:
    """StoreClient backed by a boto3 DynamoDB resource.

    Owns the resource for its lifetime; `close()` releases the underlying
    client and is safe to call more than once.
    """

    def __init__(
        self,
        *,
        resource,
        region: str,
        key_cache: ExpiringCache[str, tuple[str, ...]] | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        self.region = str(region)
        self._resource = resource
        self._key_cache = key_cache or ExpiringCache(ttl_s=300.0)
        self._retry_policy = retry_policy
        self._tables: dict[str, DynamoTable] = {}
        self._closed = False

    def _table(self, name: str) -> DynamoTable:
        if self._closed:
            raise DdbUnavailable(message="Store client is closed", table_name=name)
        t = self._tables.get(name)
        if t is None:
            t = DynamoTable(table_name=name, resource=self._resource, retry_policy=self._retry_policy)
            self._tables[name] = t
        return t

    # --- reads ---

    def scan(
        self,
        table: str,
        cursor: dict[str, Any] | None = None,
        scan_filter: ScanFilter | None = None,
        limit: int | None = None,
    ) -> Page:
        return self._table(table).scan_page(cursor=cursor, scan_filter=scan_filter, limit=limit)

    def count(
        self,
        table: str,
        cursor: dict[str, Any] | None = None,
        scan_filter: ScanFilter | None = None,
    ) -> tuple[int, dict[str, Any] | None]:
        page = self._table(table).scan_page(cursor=cursor, scan_filter=scan_filter, select_count=True)
        return page.count, page.cursor

    def key_names(self, table: str) -> tuple[str, ...]:
        return self._key_cache.get_or_load(table, lambda: tuple(self._table(table).key_names()))

    # --- writes ---

    def batch_put(self, table: str, records: Sequence[dict[str, Any]]) -> list[ItemOutcome]:
        try:
            resp = self._table(table).batch_put(items=records)
        except DdbUnavailable:
            raise
        except DdbError as e:
            return [ItemOutcome(record=r, error=str(e)) for r in records]

        if not resp.unprocessed:
            return [ItemOutcome(record=r) for r in records]

        names = self.key_names(table)
        pending = {_key_tuple(u, names) for u in resp.unprocessed}
        log.warning("batch_put_unprocessed", table=table, unprocessed=len(resp.unprocessed), requested=len(records))
        return [
            ItemOutcome(record=r, error="unprocessed by BatchWriteItem" if _key_tuple(r, names) in pending else None)
            for r in records
        ]

    def conditional_put(self, table: str, record: dict[str, Any]) -> PutResult:
        t = self._table(table)
        try:
            # A failed schema lookup fails this record only.
            names = self.key_names(table)
            if not names:
                return PutResult(outcome=PutOutcome.ERROR, error="table has no key schema")
            t.put_if_absent(item=record, partition_key=names[0], key=record_key(record, names))
        except DdbConditionFailed:
            return PutResult(outcome=PutOutcome.CONDITION_FAILED)
        except DdbUnavailable:
            raise
        except DdbError as e:
            return PutResult(outcome=PutOutcome.ERROR, error=str(e))
        return PutResult(outcome=PutOutcome.SUCCESS)

    # --- lifecycle ---

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._tables.clear()
        self._key_cache.invalidate()
        close_resource(self._resource)
