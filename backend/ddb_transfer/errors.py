from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class TransferError(Exception):
    """Base error for export/import failures that are not store errors."""

    message: str
    path: str | None = None

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class FormatError(TransferError):
    """Input document matches none of the accepted shapes."""


@dataclass(slots=True)
class DocumentNotFound(TransferError):
    pass
