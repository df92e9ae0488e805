from __future__ import annotations

import sys
from collections import Counter
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

# Ensure `backend/` is on sys.path so `import ddb_transfer.*` works in tests.
BACKEND_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_DIR))

from ddb_transfer.db.dynamodb.errors import DdbThrottled, DdbUnavailable  # noqa: E402
from ddb_transfer.infrastructure.local_files import LocalFiles  # noqa: E402
from ddb_transfer.services.store import ItemOutcome, Page, PutOutcome, PutResult  # noqa: E402
from ddb_transfer.services.table_transfer import TableTransfer  # noqa: E402


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2024, 5, 1, 12, 30, 45, 123000, tzinfo=timezone.utc)
        self.mono = 1000.0
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self.current

    def monotonic(self) -> float:
        return self.mono

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)

    def advance(self, seconds: float) -> None:
        self.mono += seconds
        self.current = self.current + timedelta(seconds=seconds)


class InMemoryStore:
    """StoreClient double: pages a dict-backed table and counts every call."""

    def __init__(self, *, region: str = "us-test-1", page_size: int = 2, key_names: tuple[str, ...] = ("PK", "SK")):
        self.region = region
        self.page_size = page_size
        self._key_names = tuple(key_names)
        self.tables: dict[str, dict[tuple, dict[str, Any]]] = {}
        self.calls: Counter = Counter()
        self.scan_cursors: list[Any] = []
        self.batch_sizes: list[int] = []
        self.fail_scan_on_call: int | None = None
        self.fail_batch_calls: set[int] = set()
        self.error_partition_keys: set[str] = set()
        self.unavailable = False
        self.closed = 0

    @property
    def write_calls(self) -> int:
        return self.calls["batch_put"] + self.calls["conditional_put"]

    def _key(self, record: dict[str, Any]) -> tuple:
        return tuple(str(record.get(k)) for k in self._key_names)

    def seed(self, table: str, records: list[dict[str, Any]]) -> None:
        rows = self.tables.setdefault(table, {})
        for r in records:
            rows[self._key(r)] = dict(r)

    def items(self, table: str) -> list[dict[str, Any]]:
        return list(self.tables.get(table, {}).values())

    def _slice(self, table: str, cursor: dict[str, Any] | None, limit: int | None):
        rows = self.items(table)
        start = int((cursor or {}).get("offset", 0))
        end = start + (limit or self.page_size)
        return rows[start:end], ({"offset": end} if end < len(rows) else None)

    def scan(self, table, cursor=None, scan_filter=None, limit=None) -> Page:
        self.calls["scan"] += 1
        self.scan_cursors.append(cursor)
        if self.fail_scan_on_call == self.calls["scan"]:
            raise DdbThrottled(message="DynamoDB request throttled", operation="Scan", table_name=table)
        rows, nxt = self._slice(table, cursor, limit)
        return Page(items=[dict(r) for r in rows], cursor=nxt, scanned_count=len(rows), count=len(rows))

    def count(self, table, cursor=None, scan_filter=None):
        self.calls["count"] += 1
        rows, nxt = self._slice(table, cursor, None)
        return len(rows), nxt

    def batch_put(self, table, records):
        self.calls["batch_put"] += 1
        self.batch_sizes.append(len(records))
        if self.unavailable:
            raise DdbUnavailable(message="DynamoDB client error", operation="BatchWriteItem", table_name=table)
        if self.calls["batch_put"] in self.fail_batch_calls:
            return [ItemOutcome(record=r, error="ProvisionedThroughputExceededException") for r in records]
        self.seed(table, list(records))
        return [ItemOutcome(record=r) for r in records]

    def conditional_put(self, table, record):
        self.calls["conditional_put"] += 1
        if self.unavailable:
            raise DdbUnavailable(message="DynamoDB client error", operation="PutItem", table_name=table)
        if str(record.get(self._key_names[0])) in self.error_partition_keys:
            return PutResult(outcome=PutOutcome.ERROR, error="DynamoDB request validation failed")
        rows = self.tables.setdefault(table, {})
        if self._key(record) in rows:
            return PutResult(outcome=PutOutcome.CONDITION_FAILED)
        rows[self._key(record)] = dict(record)
        return PutResult(outcome=PutOutcome.SUCCESS)

    def key_names(self, table):
        self.calls["key_names"] += 1
        return self._key_names

    def close(self) -> None:
        self.closed += 1


def make_records(n: int, prefix: str = "USER") -> list[dict[str, Any]]:
    return [{"PK": f"{prefix}#{i}", "SK": "PROFILE", "name": f"{prefix.lower()} {i}"} for i in range(n)]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def files(tmp_path) -> LocalFiles:
    return LocalFiles(tmp_path)


@pytest.fixture
def transfer_factory(store, files, clock):
    def _make(table_name: str = "source-table", **kwargs) -> TableTransfer:
        kwargs.setdefault("pacing_s", 0.1)
        return TableTransfer(table_name=table_name, store=store, files=files, clock=clock, **kwargs)

    return _make


@pytest.fixture(name="make_records")
def make_records_fixture():
    return make_records
