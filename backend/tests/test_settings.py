from __future__ import annotations

import pytest

from ddb_transfer.settings import Settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("TABLE_NAME", "OLD_TABLE_NAME", "AWS_REGION", "IMPORT_PACING_MS", "GROUP_BY_TYPE"):
        monkeypatch.delenv(name, raising=False)


def test_table_name_prefers_table_name_over_legacy(monkeypatch) -> None:
    monkeypatch.setenv("OLD_TABLE_NAME", "legacy-table")
    assert Settings().table_name == "legacy-table"

    monkeypatch.setenv("TABLE_NAME", "new-table")
    assert Settings().table_name == "new-table"


def test_resolve_table_requires_a_name() -> None:
    s = Settings()
    assert s.resolve_table("explicit") == "explicit"
    with pytest.raises(ValueError):
        s.resolve_table(None)


def test_region_and_pacing_defaults(monkeypatch) -> None:
    s = Settings()
    assert s.resolve_region(None) == "us-east-2"
    assert s.import_pacing_seconds == 0.1

    monkeypatch.setenv("AWS_REGION", "eu-west-1")
    monkeypatch.setenv("IMPORT_PACING_MS", "250")
    monkeypatch.setenv("GROUP_BY_TYPE", "true")
    s = Settings()
    assert s.resolve_region(None) == "eu-west-1"
    assert s.resolve_region("ap-south-1") == "ap-south-1"
    assert s.import_pacing_seconds == 0.25
    assert s.group_by_type is True
