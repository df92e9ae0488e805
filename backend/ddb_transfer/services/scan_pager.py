from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator

from ..observability.logging import get_logger
from .store import Page, ScanFilter, StoreClient

log = get_logger("scan_pager")


@dataclass(frozen=True, slots=True)
class ScanRequest:
    filter_expression: str | None = None
    attribute_names: dict[str, str] | None = None
    attribute_values: dict[str, Any] | None = None
    limit: int | None = None

    def scan_filter(self) -> ScanFilter | None:
        if not (self.filter_expression or self.attribute_names or self.attribute_values):
            return None
        return ScanFilter(
            expression=self.filter_expression,
            attribute_names=self.attribute_names,
            attribute_values=self.attribute_values,
        )


class ScanPager:
    """
    Walks a full (optionally filtered) table scan one page at a time.

    The LastEvaluatedKey of each page is handed back to the store verbatim to get
    the next one. A pager is single-use: once exhausted it yields nothing more.
    Fetch errors propagate and end the scan.
    """

    def __init__(self, store: StoreClient, table: str, request: ScanRequest | None = None):
        self.store = store
        self.table = str(table)
        self.request = request or ScanRequest()
        self._cursor: dict[str, Any] | None = None
        self._started = False
        self._exhausted = False
        self.pages_fetched = 0

    def next_page(self) -> Page | None:
        if self._exhausted:
            return None

        page = self.store.scan(
            self.table,
            cursor=self._cursor if self._started else None,
            scan_filter=self.request.scan_filter(),
            limit=self.request.limit,
        )
        self._started = True
        self.pages_fetched += 1
        self._cursor = page.cursor or None
        if self._cursor is None:
            self._exhausted = True

        log.debug(
            "scan_page_received",
            table=self.table,
            page=self.pages_fetched,
            items=len(page.items),
            scanned=page.scanned_count,
            more=not self._exhausted,
        )
        return page

    def __iter__(self) -> Iterator[Page]:
        while True:
            page = self.next_page()
            if page is None:
                return
            yield page

    def count_only(self) -> int:
        """Count matching items with Select=COUNT; still a full scan under the hood."""
        if self._started:
            raise RuntimeError("ScanPager already consumed")
        self._started = True

        total = 0
        cursor: dict[str, Any] | None = None
        scan_filter = self.request.scan_filter()
        while True:
            n, cursor = self.store.count(self.table, cursor=cursor, scan_filter=scan_filter)
            self.pages_fetched += 1
            total += int(n or 0)
            if not cursor:
                break

        self._exhausted = True
        return total
