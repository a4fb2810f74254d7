"""Story-facing services built on the local store and sync coordinator.

Services:
- offline_stories: start, extend and manage stories written offline
- recovery: offer unsynced stories for resume or discard on start-up
- error_handler: classify offline errors into user-facing messages
- media_cache: per-session cache of generated media URLs
"""

from .error_handler import (
    ErrorCategory,
    ErrorSeverity,
    HandledError,
    categorize_error,
    determine_severity,
    handle_error,
    user_message,
)
from .media_cache import MediaUrlCache, MediaUrls
from .offline_stories import OfflineStoryService, StorySyncSummary
from .recovery import RecoveryAction, RecoveryOffer, RecoveryOutcome, StoryRecoveryService

__all__ = [
    # Offline stories
    "OfflineStoryService",
    "StorySyncSummary",
    # Recovery
    "StoryRecoveryService",
    "RecoveryOffer",
    "RecoveryOutcome",
    "RecoveryAction",
    # Errors
    "ErrorCategory",
    "ErrorSeverity",
    "HandledError",
    "categorize_error",
    "determine_severity",
    "handle_error",
    "user_message",
    # Media
    "MediaUrlCache",
    "MediaUrls",
]
