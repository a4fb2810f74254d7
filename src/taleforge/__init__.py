"""Tale Forge offline - keep stories safe while the network is away.

Stories, story segments and pending remote mutations live in a local SQLite
database. A sync coordinator replays the queued mutations against Supabase
when the device is online, and a recovery flow offers stories that never
reached the server back to the user on start-up.

Quick Start:
    from taleforge import LocalStore, OperationQueue, StoryRecoveryService

    store = await LocalStore.open("sqlite+aiosqlite:///./taleforge_offline.db")
    queue = OperationQueue(store)

    recovery = StoryRecoveryService(store)
    offer = await recovery.check_for_unsaved()
    if offer:
        await recovery.discard(offer.story_id)

Architecture:
    OfflineStoryService → LocalStore + OperationQueue
    SyncService → RemoteBackend (Supabase), driven by NetworkMonitor
    StoryRecoveryService → LocalStore, hands resumed stories to SyncService
"""

__version__ = "0.1.0"

from taleforge.services import (
    OfflineStoryService,
    RecoveryOffer,
    RecoveryOutcome,
    StoryRecoveryService,
)
from taleforge.storage import LocalStore, OperationQueue, RetryPolicy
from taleforge.sync import NetworkMonitor, SupabaseBackend, SyncOptions, SyncService

__all__ = [
    # Version
    "__version__",
    # Storage
    "LocalStore",
    "OperationQueue",
    "RetryPolicy",
    # Sync
    "SyncService",
    "SyncOptions",
    "SupabaseBackend",
    "NetworkMonitor",
    # Services
    "OfflineStoryService",
    "StoryRecoveryService",
    "RecoveryOffer",
    "RecoveryOutcome",
]
