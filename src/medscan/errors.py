"""Error kinds raised by the pipeline and its collaborators."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    UNPARSEABLE_DATE = "unparseable_date"
    OCR_FAILED = "ocr_failed"
    STORAGE_FAILED = "storage_failed"
    PROCESSING_FAILED = "processing_failed"


class MedscanError(Exception):
    kind: ErrorKind = ErrorKind.PROCESSING_FAILED


class UnparseableDateError(MedscanError, ValueError):
    """A present expiry token could not be turned into a calendar date."""

    kind = ErrorKind.UNPARSEABLE_DATE

    def __init__(self, token: str, reason: str) -> None:
        super().__init__(f"Unparseable expiry date {token!r}: {reason}")
        self.token = token
        self.reason = reason


class OcrError(MedscanError):
    kind = ErrorKind.OCR_FAILED


class StorageError(MedscanError):
    kind = ErrorKind.STORAGE_FAILED


class ProcessingFailed(MedscanError):
    """Boundary failure of the upload flow, carrying the underlying cause."""

    kind = ErrorKind.PROCESSING_FAILED

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause
