from __future__ import annotations

import pytest

from ddb_transfer.db.dynamodb.errors import DdbThrottled
from ddb_transfer.services.scan_pager import ScanPager, ScanRequest


def test_pages_concatenate_to_table_contents(store, make_records) -> None:
    records = make_records(5)
    store.seed("t", records)

    pager = ScanPager(store, "t")
    pages = list(pager)

    assert [len(p.items) for p in pages] == [2, 2, 1]
    assert [item for p in pages for item in p.items] == records
    assert pager.pages_fetched == 3
    assert pager.next_page() is None


def test_cursor_is_passed_back_verbatim(store, make_records) -> None:
    store.seed("t", make_records(5))

    list(ScanPager(store, "t"))

    assert store.scan_cursors == [None, {"offset": 2}, {"offset": 4}]


def test_pager_is_not_restartable(store, make_records) -> None:
    store.seed("t", make_records(3))
    pager = ScanPager(store, "t")

    assert len(list(pager)) == 2
    assert pager.next_page() is None
    assert list(pager) == []
    assert store.calls["scan"] == 2


def test_empty_table_yields_single_empty_page(store) -> None:
    pages = list(ScanPager(store, "empty"))
    assert len(pages) == 1
    assert pages[0].items == []
    assert pages[0].cursor is None


def test_count_matches_total_scanned(store, make_records) -> None:
    store.seed("t", make_records(7))

    scanned = sum(p.scanned_count for p in ScanPager(store, "t"))
    counted = ScanPager(store, "t").count_only()

    assert counted == scanned == 7
    assert store.calls["count"] == 4


def test_count_only_refuses_a_used_pager(store, make_records) -> None:
    store.seed("t", make_records(1))
    pager = ScanPager(store, "t")
    pager.next_page()
    with pytest.raises(RuntimeError):
        pager.count_only()


def test_page_error_aborts_scan(store, make_records) -> None:
    store.seed("t", make_records(6))
    store.fail_scan_on_call = 2
    pager = ScanPager(store, "t")

    first = pager.next_page()
    assert first is not None and len(first.items) == 2
    with pytest.raises(DdbThrottled):
        pager.next_page()
    assert store.calls["scan"] == 2


def test_scan_request_filter() -> None:
    assert ScanRequest().scan_filter() is None

    req = ScanRequest(
        filter_expression="attribute_exists(#e)",
        attribute_names={"#e": "email"},
    )
    f = req.scan_filter()
    assert f is not None
    assert f.as_kwargs() == {
        "FilterExpression": "attribute_exists(#e)",
        "ExpressionAttributeNames": {"#e": "email"},
    }
