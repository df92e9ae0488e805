from __future__ import annotations

from decimal import Decimal

from ddb_transfer.services.entity_classifier import (
    ClassificationRule,
    EntityClassifier,
    composite_key_prefix,
    default_rules,
    explicit_entity_type,
    legacy_dashed_id,
)

classify = EntityClassifier().classify


def test_partition_key_prefix_wins() -> None:
    assert classify({"PK": "USER#1", "SK": "ORDER#9", "entityType": "Customer"}) == "USER"


def test_sort_key_prefix_used_when_partition_key_has_none() -> None:
    assert classify({"PK": "tenant-1", "SK": "ORDER#9"}) == "ORDER"


def test_lowercase_prefix_is_not_a_tag() -> None:
    assert classify({"PK": "user#1", "entityType": "Customer"}) == "Customer"


def test_explicit_entity_type_before_legacy_id() -> None:
    assert classify({"id": "invoice-1", "entityType": "Bill"}) == "Bill"


def test_blank_entity_type_falls_through() -> None:
    assert classify({"entityType": "  ", "id": "invoice-2023-0001"}) == "INVOICE"


def test_legacy_id_without_dash_is_unknown() -> None:
    assert classify({"id": "invoice"}) == "UNKNOWN"


def test_non_string_keys_are_ignored() -> None:
    assert classify({"PK": Decimal("7"), "SK": None}) == "UNKNOWN"


def test_empty_and_non_mapping_records_are_unknown() -> None:
    assert classify({}) == "UNKNOWN"
    assert classify(None) == "UNKNOWN"
    assert classify(["PK", "USER#1"]) == "UNKNOWN"


def test_classify_is_total_and_deterministic() -> None:
    samples = [
        {"PK": "#", "SK": "#x"},
        {"PK": "A#"},
        {"id": "-leading"},
        {"id": 42},
        {"entityType": 0},
        {"entityType": ["x"]},
        {"PK": "", "SK": "", "id": ""},
    ]
    for record in samples:
        first = classify(record)
        assert isinstance(first, str) and first
        assert classify(record) == first


def test_rules_are_usable_on_their_own() -> None:
    assert composite_key_prefix("pk")({"pk": "TEAM#1"}) == "TEAM"
    assert explicit_entity_type()({"entityType": "Note"}) == "Note"
    assert legacy_dashed_id()({"id": "proj-7"}) == "PROJ"
    assert legacy_dashed_id()({"id": "-7"}) is None


def test_custom_key_attributes() -> None:
    classifier = EntityClassifier(default_rules(partition_key="pk", sort_key="sk"))
    assert classifier.classify({"pk": "x", "sk": "LINE#3"}) == "LINE"
    assert classifier.classify({"PK": "USER#1"}) == "UNKNOWN"


def test_rule_that_raises_does_not_match() -> None:
    def _boom(_record):
        raise KeyError("missing")

    classifier = EntityClassifier([ClassificationRule("boom", _boom), *default_rules()])
    assert classifier.classify({"PK": "USER#1"}) == "USER"
