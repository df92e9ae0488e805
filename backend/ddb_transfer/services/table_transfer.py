"""
Export a whole table to a JSON document and import such a document back.

Export is all-or-nothing: the table is drained into memory first and the file
is only written once the scan has finished, so a failed scan never leaves a
truncated export behind. Import is best-effort: each chunk is written and
accounted for independently and a failed chunk does not stop the run. Only an
unreachable store (DdbUnavailable) aborts an import.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from pydantic import BaseModel, Field

from ..db.dynamodb.client import botocore_config, dynamodb_resource
from ..db.dynamodb.errors import DdbError, DdbUnavailable
from ..db.dynamodb.retry import RetryPolicy
from ..infrastructure.local_files import LocalFiles
from ..observability.logging import get_logger
from ..settings import Settings, get_settings
from .batch_writer import (
    BATCH_WRITE_CEILING,
    DEFAULT_PACING_S,
    BatchWriter,
    BatchWriteResult,
    WriteFailure,
    WriteMode,
    chunked,
)
from .clock import Clock, SystemClock, iso_timestamp
from .entity_classifier import EntityClassifier
from .export_document import (
    ExportMetadata,
    ExportWriter,
    GroupedExportMetadata,
    ImportReader,
    default_filename,
)
from .scan_pager import ScanPager, ScanRequest
from .store import DynamoStore, StoreClient, record_key
from .ttl_cache import ExpiringCache

log = get_logger("table_transfer")


class ExportOptions(BaseModel):
    output_file: str | None = None
    output_dir: str | None = None
    filter_expression: str | None = None
    expression_attribute_names: dict[str, str] | None = None
    expression_attribute_values: dict[str, Any] | None = None
    limit: int | None = Field(default=None, ge=1)
    pretty: bool = True
    include_metadata: bool = True


class ImportOptions(BaseModel):
    dry_run: bool = False
    # Clamped to the BatchWriteItem ceiling when chunking.
    batch_size: int = Field(default=BATCH_WRITE_CEILING, ge=1)
    overwrite: bool = True


@dataclass(slots=True)
class ImportFailure:
    key: dict[str, Any]
    reason: str


@dataclass(slots=True)
class ImportResult:
    imported: int = 0
    failed: int = 0
    skipped: int = 0
    failures: list[ImportFailure] = field(default_factory=list)
    total: int = 0
    chunks: int = 0
    dry_run: bool = False
    sample: dict[str, Any] | None = None
    duration_s: float = 0.0

    @property
    def throughput(self) -> float:
        if self.duration_s <= 0:
            return 0.0
        return self.imported / self.duration_s


@dataclass(slots=True)
class ExportSummary:
    path: Path
    item_count: int
    scanned_count: int
    pages: int
    size_bytes: int
    duration_s: float
    entity_counts: dict[str, int] | None = None


class TableTransfer:
    """Export/import/count for one table through one store handle.

    Use as a context manager so the store client is released on every exit path.
    """

    def __init__(
        self,
        *,
        table_name: str,
        store: StoreClient,
        files: LocalFiles | None = None,
        clock: Clock | None = None,
        classifier: EntityClassifier | None = None,
        export_options: ExportOptions | None = None,
        pacing_s: float = DEFAULT_PACING_S,
        ceiling: int = BATCH_WRITE_CEILING,
    ):
        self.table_name = str(table_name)
        self.store = store
        self.files = files or LocalFiles()
        self.clock = clock or SystemClock()
        self.classifier = classifier or EntityClassifier()
        self.export_options = export_options or ExportOptions()
        self.writer = BatchWriter(store, self.table_name, ceiling=ceiling, pacing_s=pacing_s, clock=self.clock)
        self._key_names: tuple[str, ...] | None = None
        self._closed = False

    def __enter__(self) -> TableTransfer:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def region(self) -> str:
        return str(getattr(self.store, "region", "") or "")

    # --- export ---

    def _pager(self) -> ScanPager:
        opts = self.export_options
        return ScanPager(
            self.store,
            self.table_name,
            ScanRequest(
                filter_expression=opts.filter_expression,
                attribute_names=opts.expression_attribute_names,
                attribute_values=opts.expression_attribute_values,
                limit=opts.limit,
            ),
        )

    def output_path(self) -> Path:
        opts = self.export_options
        name = opts.output_file or default_filename(self.table_name, self.clock.now())
        return self.files.resolve(name, base_dir=opts.output_dir)

    def export(self, path: Path | None = None) -> ExportSummary:
        started = self.clock.monotonic()
        path = path or self.output_path()
        log.info(
            "export_started",
            table=self.table_name,
            region=self.region,
            output=str(path),
            filter_expression=self.export_options.filter_expression,
        )

        pager = self._pager()
        items: list[dict[str, Any]] = []
        scanned = 0
        for page in pager:
            items.extend(page.items)
            scanned += page.scanned_count
            log.info("scan_page_fetched", page=pager.pages_fetched, items=len(page.items), total=len(items))

        metadata = ExportMetadata(
            sourceName=self.table_name,
            exportedAt=iso_timestamp(self.clock.now()),
            itemCount=len(items),
            scannedCount=scanned,
            sourceRegion=self.region,
            filterExpression=self.export_options.filter_expression,
        )
        exporter = ExportWriter(self.files)
        doc = exporter.build_flat(items, metadata=metadata, include_metadata=self.export_options.include_metadata)
        size = exporter.write(doc, path, pretty=self.export_options.pretty)

        summary = ExportSummary(
            path=path,
            item_count=len(items),
            scanned_count=scanned,
            pages=pager.pages_fetched,
            size_bytes=size,
            duration_s=self.clock.monotonic() - started,
        )
        log.info(
            "export_completed",
            table=self.table_name,
            items=summary.item_count,
            scanned=summary.scanned_count,
            pages=summary.pages,
            bytes=summary.size_bytes,
            duration_s=round(summary.duration_s, 3),
        )
        return summary

    def export_grouped(self, path: Path | None = None) -> ExportSummary:
        started = self.clock.monotonic()
        path = path or self.output_path()
        log.info("export_grouped_started", table=self.table_name, region=self.region, output=str(path))

        pager = self._pager()
        items_by_type: dict[str, list[dict[str, Any]]] = {}
        total = 0
        scanned = 0
        for page in pager:
            for item in page.items:
                items_by_type.setdefault(self.classifier.classify(item), []).append(item)
            total += len(page.items)
            scanned += page.scanned_count
            log.info("scan_page_fetched", page=pager.pages_fetched, items=len(page.items), total=total)

        metadata = GroupedExportMetadata(
            sourceName=self.table_name,
            exportedAt=iso_timestamp(self.clock.now()),
            totalItems=total,
            entityTypes=len(items_by_type),
            scannedCount=scanned,
            sourceRegion=self.region,
            filterExpression=self.export_options.filter_expression,
        )
        exporter = ExportWriter(self.files)
        doc = exporter.build_grouped(
            items_by_type, metadata=metadata, include_metadata=self.export_options.include_metadata
        )
        size = exporter.write(doc, path, pretty=self.export_options.pretty)

        counts = {k: len(v) for k, v in sorted(items_by_type.items(), key=lambda kv: -len(kv[1]))}
        summary = ExportSummary(
            path=path,
            item_count=total,
            scanned_count=scanned,
            pages=pager.pages_fetched,
            size_bytes=size,
            duration_s=self.clock.monotonic() - started,
            entity_counts=counts,
        )
        log.info(
            "export_grouped_completed",
            table=self.table_name,
            items=total,
            entity_types=len(counts),
            breakdown=counts,
            bytes=size,
            duration_s=round(summary.duration_s, 3),
        )
        return summary

    # --- count ---

    def count(self) -> int:
        pager = self._pager()
        n = pager.count_only()
        log.info("count_completed", table=self.table_name, count=n, pages=pager.pages_fetched)
        return n

    # --- import ---

    def import_file(self, path: str | Path, options: ImportOptions | None = None) -> ImportResult:
        resolved = self.files.resolve(path)
        raw = self.files.read_bytes(resolved)
        parsed = ImportReader().parse(raw)
        meta = parsed.metadata or {}
        log.info(
            "import_document_parsed",
            path=str(resolved),
            shape=parsed.shape.value,
            records=len(parsed.records),
            entity_types=parsed.entity_types,
            exported_at=meta.get("exportedAt"),
            source=meta.get("sourceName") or meta.get("tableName"),
        )
        return self.import_records(parsed.records, options)

    def import_records(self, records: Sequence[dict[str, Any]], options: ImportOptions | None = None) -> ImportResult:
        opts = options or ImportOptions()
        size = min(int(opts.batch_size), self.writer.ceiling)
        total = len(records)
        result = ImportResult(total=total, dry_run=opts.dry_run)

        if total == 0:
            log.warning("import_empty", table=self.table_name)
            return result

        result.chunks = math.ceil(total / size)

        if opts.dry_run:
            result.skipped = total
            result.sample = dict(records[0])
            log.info("import_dry_run", table=self.table_name, records=total, chunks=result.chunks, batch_size=size)
            return result

        mode = WriteMode.OVERWRITE if opts.overwrite else WriteMode.INSERT_ONLY
        started = self.clock.monotonic()
        log.info("import_started", table=self.table_name, records=total, chunks=result.chunks, mode=mode.value)

        for index, chunk in enumerate(chunked(records, size), start=1):
            outcome = self._write_chunk(chunk, mode)
            result.imported += outcome.succeeded
            result.skipped += outcome.skipped
            result.failed += len(outcome.failed)
            for failure in outcome.failed:
                result.failures.append(ImportFailure(key=self._failure_key(failure.record), reason=failure.error))

            log.info(
                "import_chunk_written",
                chunk=index,
                of=result.chunks,
                records=len(chunk),
                succeeded=outcome.succeeded,
                skipped=outcome.skipped,
                failed=len(outcome.failed),
            )
            if index < result.chunks:
                self.writer.pause()

        result.duration_s = self.clock.monotonic() - started
        log.info(
            "import_completed",
            table=self.table_name,
            imported=result.imported,
            failed=result.failed,
            skipped=result.skipped,
            duration_s=round(result.duration_s, 3),
        )
        return result

    def _write_chunk(self, chunk: list[dict[str, Any]], mode: WriteMode) -> BatchWriteResult:
        try:
            return self.writer.write_batch(chunk, mode)
        except DdbUnavailable:
            raise
        except DdbError as e:
            log.warning("import_chunk_failed", table=self.table_name, records=len(chunk), error=str(e))
            return BatchWriteResult(failed=[WriteFailure(record=r, error=str(e)) for r in chunk])

    def _failure_key(self, record: dict[str, Any]) -> dict[str, Any]:
        if self._key_names is None:
            try:
                self._key_names = tuple(self.store.key_names(self.table_name))
            except DdbUnavailable:
                raise
            except DdbError:
                self._key_names = ("PK", "SK")
        return record_key(record, self._key_names)

    # --- lifecycle ---

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.store.close()


def open_transfer(
    table_name: str,
    *,
    region: str | None = None,
    settings: Settings | None = None,
    clock: Clock | None = None,
    files: LocalFiles | None = None,
    export_options: ExportOptions | None = None,
) -> TableTransfer:
    s = settings or get_settings()
    reg = s.resolve_region(region)
    clk = clock or SystemClock()
    resource = dynamodb_resource(
        region=reg,
        config=botocore_config(connect_timeout=s.ddb_connect_timeout_s, read_timeout=s.ddb_read_timeout_s),
    )
    store = DynamoStore(
        resource=resource,
        region=reg,
        key_cache=ExpiringCache(ttl_s=s.key_schema_cache_ttl_s, clock=clk),
        retry_policy=RetryPolicy(max_attempts=s.ddb_max_attempts),
    )
    return TableTransfer(
        table_name=table_name,
        store=store,
        files=files,
        clock=clk,
        export_options=export_options,
        pacing_s=s.import_pacing_seconds,
    )
