from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class DdbError(Exception):
    """Base error for DynamoDB operations.

    Raised by `ddb_call` after mapping botocore failures, so callers only ever
    deal with this hierarchy.
    """

    message: str
    operation: str | None = None
    table_name: str | None = None
    key: dict[str, Any] | None = None
    aws_request_id: str | None = None
    error_code: str | None = None
    retryable: bool = False
    cause: Exception | None = None

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class DdbConditionFailed(DdbError):
    pass


@dataclass(slots=True)
class DdbValidation(DdbError):
    pass


@dataclass(slots=True)
class DdbThrottled(DdbError):
    pass


@dataclass(slots=True)
class DdbUnavailable(DdbError):
    """The store cannot be reached or used at all (network, auth, missing table)."""


@dataclass(slots=True)
class DdbNotFound(DdbUnavailable):
    pass


@dataclass(slots=True)
class DdbInternal(DdbError):
    pass
