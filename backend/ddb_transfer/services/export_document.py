from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Callable

import simplejson
from boto3.dynamodb.types import Binary
from pydantic import BaseModel, ConfigDict

from ..errors import FormatError
from ..infrastructure.local_files import LocalFiles


class ExportMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    sourceName: str
    exportedAt: str
    itemCount: int
    scannedCount: int
    sourceRegion: str
    filterExpression: str | None = None


class GroupedExportMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    sourceName: str
    exportedAt: str
    totalItems: int
    entityTypes: int
    scannedCount: int
    sourceRegion: str
    filterExpression: str | None = None


@dataclass(slots=True)
class ExportDocument:
    metadata: dict[str, Any] | None = None
    items: list[dict[str, Any]] | None = None
    items_by_type: dict[str, list[dict[str, Any]]] | None = None

    def to_payload(self) -> Any:
        if self.items_by_type is not None:
            out: dict[str, Any] = {}
            if self.metadata is not None:
                out["metadata"] = self.metadata
            out["itemsByType"] = self.items_by_type
            return out
        items = self.items or []
        # Flat exports without metadata are written as a bare array.
        if self.metadata is None:
            return items
        return {"metadata": self.metadata, "items": items}


def _json_default(value: Any) -> Any:
    # Decimal is written by simplejson itself (use_decimal) so its digits survive.
    if isinstance(value, Binary):
        return base64.b64encode(bytes(value.value)).decode("ascii")
    if isinstance(value, (set, frozenset)):
        try:
            return sorted(value)
        except TypeError:
            return sorted(value, key=str)
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dumps_json(payload: Any, *, pretty: bool = True) -> str:
    # DynamoDB numbers carry up to 38 significant digits; a float round trip would drop them.
    if pretty:
        return simplejson.dumps(payload, indent=2, ensure_ascii=False, use_decimal=True, default=_json_default)
    return simplejson.dumps(
        payload, separators=(",", ":"), ensure_ascii=False, use_decimal=True, default=_json_default
    )


def default_filename(table_name: str, now: datetime) -> str:
    ts = now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
    return f"{table_name}-export-{ts}.json"


class ExportWriter:
    def __init__(self, files: LocalFiles | None = None):
        self.files = files or LocalFiles()

    def build_flat(
        self,
        items: list[dict[str, Any]],
        *,
        metadata: ExportMetadata,
        include_metadata: bool = True,
    ) -> ExportDocument:
        return ExportDocument(
            metadata=metadata.model_dump(exclude_none=True) if include_metadata else None,
            items=list(items),
        )

    def build_grouped(
        self,
        items_by_type: dict[str, list[dict[str, Any]]],
        *,
        metadata: GroupedExportMetadata,
        include_metadata: bool = True,
    ) -> ExportDocument:
        return ExportDocument(
            metadata=metadata.model_dump(exclude_none=True) if include_metadata else None,
            items_by_type={k: list(v) for k, v in items_by_type.items()},
        )

    @staticmethod
    def serialize(document: ExportDocument, *, pretty: bool = True) -> str:
        return dumps_json(document.to_payload(), pretty=pretty)

    def write(self, document: ExportDocument, path: str | Path, *, pretty: bool = True) -> int:
        # Serialize fully before touching the file so a bad value never leaves a partial export.
        text = self.serialize(document, pretty=pretty)
        return self.files.write_text(path, text)


# --- import side ---


class DocumentShape(str, Enum):
    ARRAY = "array"
    FLAT = "items"
    GROUPED = "itemsByType"


@dataclass(slots=True)
class ParsedDocument:
    shape: DocumentShape
    records: list[dict[str, Any]]
    metadata: dict[str, Any] | None = None
    entity_types: int | None = None


def _all_records(values: Any) -> bool:
    return isinstance(values, list) and all(isinstance(v, dict) for v in values)


def _metadata_of(data: dict[str, Any]) -> dict[str, Any] | None:
    meta = data.get("metadata")
    return meta if isinstance(meta, dict) else None


def _decode_array(data: Any) -> ParsedDocument | None:
    if not _all_records(data):
        return None
    return ParsedDocument(shape=DocumentShape.ARRAY, records=list(data))


def _decode_flat(data: Any) -> ParsedDocument | None:
    if not isinstance(data, dict) or not _all_records(data.get("items")):
        return None
    return ParsedDocument(shape=DocumentShape.FLAT, records=list(data["items"]), metadata=_metadata_of(data))


def _decode_grouped(data: Any) -> ParsedDocument | None:
    if not isinstance(data, dict):
        return None
    groups = data.get("itemsByType")
    if not isinstance(groups, dict) or not all(_all_records(v) for v in groups.values()):
        return None
    records = [r for group in groups.values() for r in group]
    return ParsedDocument(
        shape=DocumentShape.GROUPED,
        records=records,
        metadata=_metadata_of(data),
        entity_types=len(groups),
    )


# Tried in order; the first decoder that accepts the document wins.
SHAPE_DECODERS: tuple[tuple[DocumentShape, Callable[[Any], ParsedDocument | None]], ...] = (
    (DocumentShape.ARRAY, _decode_array),
    (DocumentShape.FLAT, _decode_flat),
    (DocumentShape.GROUPED, _decode_grouped),
)


class ImportReader:
    def parse(self, raw: bytes | str) -> ParsedDocument:
        try:
            text = raw.decode("utf-8-sig") if isinstance(raw, (bytes, bytearray)) else str(raw)
            data = json.loads(text, parse_float=Decimal, parse_constant=Decimal)
        except (UnicodeDecodeError, ValueError) as e:
            raise FormatError(message=f"Invalid JSON document: {e}") from e

        for _shape, decode in SHAPE_DECODERS:
            parsed = decode(data)
            if parsed is not None:
                return parsed

        raise FormatError(
            message="Invalid file format. Expected array of items or export format with 'items' or 'itemsByType' field."
        )
