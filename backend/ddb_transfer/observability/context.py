from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

run_id_var: ContextVar[str | None] = ContextVar("run_id", default=None)


def get_run_id() -> str | None:
    return run_id_var.get()


@contextmanager
def bind_run_id(run_id: str | None = None) -> Iterator[str]:
    """
    Tag every log line emitted inside the block with one run id, so the lines of
    a single export/import invocation can be grouped.
    """
    rid = (str(run_id).strip() if run_id else "") or uuid.uuid4().hex[:12]
    token = run_id_var.set(rid)
    try:
        yield rid
    finally:
        run_id_var.reset(token)
