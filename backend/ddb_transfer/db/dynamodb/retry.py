from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from botocore.exceptions import BotoCoreError, ClientError

from .errors import (
    DdbConditionFailed,
    DdbError,
    DdbInternal,
    DdbNotFound,
    DdbThrottled,
    DdbUnavailable,
    DdbValidation,
)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    # Single attempt by default: bulk transfers surface failures to the caller,
    # which records them (import) or aborts (export).
    max_attempts: int = 1
    base_delay_s: float = 0.05
    max_delay_s: float = 1.5

    def backoff_s(self, attempt: int) -> float:
        # Full jitter exponential backoff.
        ceiling = min(self.max_delay_s, self.base_delay_s * (2 ** max(0, attempt - 1)))
        return random.random() * ceiling


_THROTTLE_CODES = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "ThrottlingException",
        "RequestLimitExceeded",
        "InternalServerError",
        "ServiceUnavailable",
    }
)

_ACCESS_CODES = frozenset(
    {
        "AccessDeniedException",
        "UnrecognizedClientException",
        "InvalidSignatureException",
        "ExpiredTokenException",
        "MissingAuthenticationTokenException",
    }
)

_VALIDATION_CODES = frozenset(
    {
        "ValidationException",
        "ParamValidationError",
        "ItemCollectionSizeLimitExceededException",
    }
)


@dataclass(frozen=True, slots=True)
class _ErrorInfo:
    code: str
    message: str | None
    request_id: str | None

    @classmethod
    def of(cls, e: ClientError) -> _ErrorInfo:
        resp = e.response if isinstance(e.response, dict) else {}
        err = resp.get("Error") or {}
        meta = resp.get("ResponseMetadata") or {}
        return cls(
            code=str(err.get("Code") or ""),
            message=err.get("Message"),
            request_id=meta.get("RequestId"),
        )


def _map_client_error(info: _ErrorInfo, *, table_name: str | None) -> tuple[type[DdbError], str, bool]:
    code = info.code
    if code == "ConditionalCheckFailedException":
        return DdbConditionFailed, "DynamoDB conditional check failed", False
    if code in _VALIDATION_CODES:
        return DdbValidation, f"DynamoDB request validation failed: {info.message or code}", False
    if code == "ResourceNotFoundException":
        return DdbNotFound, f"DynamoDB table not found: {table_name or '?'}", False
    if code in _ACCESS_CODES:
        return DdbUnavailable, f"DynamoDB access denied ({code})", False
    if code in _THROTTLE_CODES:
        return DdbThrottled, f"DynamoDB request throttled ({code})", True
    return DdbInternal, f"DynamoDB request failed ({code or 'ClientError'})", False


def map_botocore_error(
    *,
    operation: str,
    table_name: str | None,
    key: dict[str, Any] | None,
    exc: Exception,
) -> DdbError:
    if isinstance(exc, DdbError):
        return exc

    if isinstance(exc, ClientError):
        info = _ErrorInfo.of(exc)
        cls, message, retryable = _map_client_error(info, table_name=table_name)
        return cls(
            message=message,
            operation=operation,
            table_name=table_name,
            key=key,
            aws_request_id=info.request_id,
            error_code=info.code or None,
            retryable=retryable,
            cause=exc,
        )

    # Connection, timeout and credential problems never reached the service.
    if isinstance(exc, BotoCoreError):
        return DdbUnavailable(
            message=f"DynamoDB client error: {exc}",
            operation=operation,
            table_name=table_name,
            key=key,
            retryable=True,
            cause=exc,
        )

    return DdbInternal(
        message=f"Unexpected DynamoDB error: {exc}",
        operation=operation,
        table_name=table_name,
        key=key,
        cause=exc,
    )


def ddb_call(
    operation: str,
    fn: Callable[[], T],
    *,
    table_name: str | None = None,
    key: dict[str, Any] | None = None,
    retry_policy: RetryPolicy | None = None,
) -> T:
    """Run one store call, translating any failure into the DdbError hierarchy."""
    policy = retry_policy or RetryPolicy()
    attempts = max(1, int(policy.max_attempts))

    attempt = 1
    while True:
        try:
            return fn()
        except Exception as e:  # noqa: BLE001
            mapped = map_botocore_error(operation=operation, table_name=table_name, key=key, exc=e)
            if not mapped.retryable or attempt >= attempts:
                if mapped is e:
                    raise
                raise mapped from e
        time.sleep(policy.backoff_s(attempt))
        attempt += 1
