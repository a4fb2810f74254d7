"""Classify offline-save errors and turn them into user-facing messages."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

import httpx

from taleforge.storage.local_store import StorageUnavailableError
from taleforge.sync.service import OfflineError

logger = logging.getLogger(__name__)


class ErrorCategory(str, Enum):
    NETWORK = "network"
    STORAGE = "storage"
    PERMISSION = "permission"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


NETWORK_ERROR_PATTERNS = (
    "network error",
    "failed to fetch",
    "connection refused",
    "timeout",
    "timed out",
    "offline",
    "socket hang up",
    "econnrefused",
    "enotfound",
    "etimedout",
)

STORAGE_ERROR_PATTERNS = (
    "quota exceeded",
    "not enough space",
    "storage full",
    "disk full",
    "database is locked",
    "disk i/o error",
    "unable to open database",
    "readonly database",
)

PERMISSION_ERROR_PATTERNS = (
    "permission denied",
    "not allowed",
    "unauthorized",
    "forbidden",
    "access denied",
)


@dataclass
class HandledError:
    """An error with its classification and the message to show."""

    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    user_message: str


def categorize_error(error: BaseException) -> ErrorCategory:
    if isinstance(error, (OfflineError, httpx.TransportError)):
        return ErrorCategory.NETWORK
    if isinstance(error, StorageUnavailableError):
        return ErrorCategory.STORAGE

    # Wrapped driver errors carry the useful text on the cause
    text = " ".join(
        str(e).lower() for e in (error, error.__cause__) if e is not None
    )
    if any(pattern in text for pattern in NETWORK_ERROR_PATTERNS):
        return ErrorCategory.NETWORK
    if any(pattern in text for pattern in STORAGE_ERROR_PATTERNS):
        return ErrorCategory.STORAGE
    if any(pattern in text for pattern in PERMISSION_ERROR_PATTERNS):
        return ErrorCategory.PERMISSION
    if "validation" in text or "constraint" in text:
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


def determine_severity(category: ErrorCategory, error: BaseException) -> ErrorSeverity:
    text = str(error).lower()
    if category == ErrorCategory.NETWORK:
        return ErrorSeverity.WARNING
    if category == ErrorCategory.STORAGE:
        if "quota" in text or "full" in text:
            return ErrorSeverity.CRITICAL
        return ErrorSeverity.ERROR
    if category == ErrorCategory.VALIDATION:
        return ErrorSeverity.WARNING
    return ErrorSeverity.ERROR


def user_message(category: ErrorCategory, severity: ErrorSeverity) -> str:
    if category == ErrorCategory.NETWORK:
        return (
            "You appear to be offline. Your story has been saved locally "
            "and will be synced when you're back online."
        )
    if category == ErrorCategory.STORAGE:
        if severity == ErrorSeverity.CRITICAL:
            return (
                "Your device is running out of storage space. Please free up some "
                "space to make sure your stories can be saved."
            )
        return "Couldn't save your story offline. Please retry."
    if category == ErrorCategory.PERMISSION:
        return "We don't have permission to save your story. Please check your settings and try again."
    if category == ErrorCategory.VALIDATION:
        return (
            "There was an issue with the story data. It has been kept locally, "
            "but some features may not work correctly."
        )
    return "An unexpected error occurred while saving your story. Please retry."


def handle_error(error: BaseException, *, context: str = "offline save") -> HandledError:
    """Classify, log and describe an error raised by the offline layer."""
    category = categorize_error(error)
    severity = determine_severity(category, error)
    handled = HandledError(
        category=category,
        severity=severity,
        message=str(error),
        user_message=user_message(category, severity),
    )
    logger.error(
        f"{context} error [{category.value}/{severity.value}]: {error}",
        extra={"error_category": category.value, "error_severity": severity.value},
    )
    return handled
