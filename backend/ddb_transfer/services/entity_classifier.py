"""
Entity-type tags for grouped exports.

Items in the table were written under several key designs over time:
single-table composite keys (``PK = "USER#123"``), an explicit ``entityType``
attribute, and legacy items keyed by a dash-delimited ``id``
(``"invoice-2023-0001"``). Each convention is one rule; rules run in order and
the first one that yields a tag wins.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

UNKNOWN = "UNKNOWN"

_COMPOSITE_PREFIX_RE = re.compile(r"^([A-Z]+)#")


@dataclass(frozen=True, slots=True)
class ClassificationRule:
    name: str
    extract: Callable[[Mapping[str, Any]], str | None]

    def apply(self, record: Mapping[str, Any]) -> str | None:
        try:
            tag = self.extract(record)
        except Exception:  # noqa: BLE001
            # A rule that cannot read the record simply does not match.
            return None
        return tag or None


def composite_key_prefix(*key_attributes: str) -> Callable[[Mapping[str, Any]], str | None]:
    def _extract(record: Mapping[str, Any]) -> str | None:
        for attr in key_attributes:
            value = record.get(attr)
            if isinstance(value, str):
                m = _COMPOSITE_PREFIX_RE.match(value)
                if m:
                    return m.group(1)
        return None

    return _extract


def explicit_entity_type(attribute: str = "entityType") -> Callable[[Mapping[str, Any]], str | None]:
    def _extract(record: Mapping[str, Any]) -> str | None:
        value = record.get(attribute)
        if value is None:
            return None
        s = str(value).strip()
        return s or None

    return _extract


def legacy_dashed_id(attribute: str = "id") -> Callable[[Mapping[str, Any]], str | None]:
    def _extract(record: Mapping[str, Any]) -> str | None:
        value = record.get(attribute)
        if not isinstance(value, str) or "-" not in value:
            return None
        head = value.split("-", 1)[0].strip()
        return head.upper() or None

    return _extract


def default_rules(
    *,
    partition_key: str = "PK",
    sort_key: str = "SK",
    type_attribute: str = "entityType",
    legacy_id_attribute: str = "id",
) -> tuple[ClassificationRule, ...]:
    return (
        ClassificationRule("composite_key_prefix", composite_key_prefix(partition_key, sort_key)),
        ClassificationRule("explicit_entity_type", explicit_entity_type(type_attribute)),
        ClassificationRule("legacy_dashed_id", legacy_dashed_id(legacy_id_attribute)),
    )


class EntityClassifier:
    def __init__(self, rules: Sequence[ClassificationRule] | None = None):
        self.rules: tuple[ClassificationRule, ...] = tuple(rules) if rules is not None else default_rules()

    def classify(self, record: Any) -> str:
        """Return the entity tag for `record`; never raises and never returns ""."""
        if not isinstance(record, Mapping):
            return UNKNOWN
        for rule in self.rules:
            tag = rule.apply(record)
            if tag:
                return tag
        return UNKNOWN
