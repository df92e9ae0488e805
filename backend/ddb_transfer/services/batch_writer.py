from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Sequence

from ..db.dynamodb.errors import DdbError, DdbUnavailable
from ..observability.logging import get_logger
from .clock import Clock, SystemClock
from .store import PutOutcome, PutResult, StoreClient

log = get_logger("batch_writer")

# BatchWriteItem accepts at most 25 put/delete requests per call.
BATCH_WRITE_CEILING = 25
DEFAULT_PACING_S = 0.1


class WriteMode(str, Enum):
    OVERWRITE = "overwrite"
    INSERT_ONLY = "insert_only"


@dataclass(slots=True)
class WriteFailure:
    record: dict[str, Any]
    error: str


@dataclass(slots=True)
class BatchWriteResult:
    succeeded: int = 0
    skipped: int = 0
    failed: list[WriteFailure] = field(default_factory=list)


def chunked(records: Sequence[dict[str, Any]], size: int) -> Iterator[list[dict[str, Any]]]:
    step = max(1, int(size))
    for i in range(0, len(records), step):
        yield list(records[i : i + step])


class BatchWriter:
    def __init__(
        self,
        store: StoreClient,
        table: str,
        *,
        ceiling: int = BATCH_WRITE_CEILING,
        pacing_s: float = DEFAULT_PACING_S,
        clock: Clock | None = None,
    ):
        self.store = store
        self.table = str(table)
        self.ceiling = max(1, int(ceiling))
        self.pacing_s = max(0.0, float(pacing_s))
        self.clock = clock or SystemClock()

    def write_batch(self, records: Sequence[dict[str, Any]], mode: WriteMode) -> BatchWriteResult:
        """
        Write one chunk. Callers split their input to at most `ceiling` records.

        Overwrite: a single BatchWriteItem; any failure (call-level or an item the
        store left unprocessed) fails the whole chunk.
        Insert-only: one conditional put per record; an existing key is a skip and
        other errors fail only that record.
        """
        if len(records) > self.ceiling:
            raise ValueError(f"chunk of {len(records)} records exceeds batch ceiling {self.ceiling}")
        if not records:
            return BatchWriteResult()

        if mode == WriteMode.OVERWRITE:
            return self._write_overwrite(records)
        return self._write_insert_only(records)

    def _write_overwrite(self, records: Sequence[dict[str, Any]]) -> BatchWriteResult:
        outcomes = self.store.batch_put(self.table, records)
        errors = [o.error for o in outcomes if not o.ok]
        if not errors:
            return BatchWriteResult(succeeded=len(records))

        reason = f"batch write failed: {errors[0]}"
        if len(errors) > 1:
            reason += f" (+{len(errors) - 1} more)"
        log.warning("batch_write_failed", table=self.table, records=len(records), item_errors=len(errors), error=errors[0])
        return BatchWriteResult(failed=[WriteFailure(record=r, error=reason) for r in records])

    def _write_insert_only(self, records: Sequence[dict[str, Any]]) -> BatchWriteResult:
        out = BatchWriteResult()
        for record in records:
            try:
                res = self.store.conditional_put(self.table, record)
            except DdbUnavailable:
                raise
            except DdbError as e:
                # Records already written in this chunk stay counted.
                res = PutResult(outcome=PutOutcome.ERROR, error=str(e))
            if res.outcome == PutOutcome.SUCCESS:
                out.succeeded += 1
            elif res.outcome == PutOutcome.CONDITION_FAILED:
                out.skipped += 1
            else:
                out.failed.append(WriteFailure(record=record, error=res.error or "conditional put failed"))
        if out.failed:
            log.warning("conditional_put_failures", table=self.table, failed=len(out.failed), records=len(records))
        return out

    def pause(self) -> None:
        """Fixed delay between chunks to stay under the table's write throughput."""
        self.clock.sleep(self.pacing_s)
