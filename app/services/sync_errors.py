"""Typed errors raised by the Drive -> wiki sync pipeline.

Each error carries an ``ErrorKind`` assigned where the failure happens, so run
statistics can count causes without inspecting message text.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Advisory cause categories surfaced to operators."""

    RATE_LIMIT = "rateLimit"
    PERMISSION = "permission"
    NETWORK = "network"
    QUOTA = "apiQuota"
    FILE_SIZE = "fileSize"
    OTHER = "other"


class SyncError(Exception):
    """Base class for every pipeline error."""

    default_kind = ErrorKind.OTHER

    def __init__(self, message: str, kind: Optional[ErrorKind] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.kind = kind or self.default_kind
        self.status_code = status_code


class ConfigurationError(SyncError):
    """Missing API keys or folder id; aborts the run."""


class CallBudgetExceeded(SyncError):
    """The run used up its outbound call budget."""

    def __init__(self, calls_made: int, max_calls: int):
        super().__init__(f"API call budget exhausted ({calls_made}/{max_calls} requests)")
        self.calls_made = calls_made
        self.max_calls = max_calls


class ThrottlingDetected(SyncError):
    """Drive kept throttling after every retry."""

    default_kind = ErrorKind.RATE_LIMIT


class TransportError(SyncError):
    """Non-2xx response or connection failure after retries."""

    default_kind = ErrorKind.NETWORK


class DownloadFailed(SyncError):
    """A single file could not be downloaded."""


class ContentTooShort(SyncError):
    """Normalized content is below the minimum useful length."""


class EmbeddingUnavailable(SyncError):
    """The embedding API returned an error."""


class StoreWriteFailed(SyncError):
    """Upserting a document into the store failed."""


class FolderListingFailed(SyncError):
    """Listing a Drive folder failed; the folder contributes no files."""


def kind_for_status(status_code: Optional[int]) -> ErrorKind:
    """Map an HTTP status to an error kind (throttling is detected separately)."""
    if status_code is None:
        return ErrorKind.NETWORK
    if status_code in (401, 403):
        return ErrorKind.PERMISSION
    if status_code == 413:
        return ErrorKind.FILE_SIZE
    if status_code == 429:
        return ErrorKind.RATE_LIMIT
    if status_code >= 500:
        return ErrorKind.NETWORK
    return ErrorKind.OTHER
