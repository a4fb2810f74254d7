"""Synchronization with the remote Supabase backend.

This module contains:
- RemoteBackend protocol and the Supabase implementation
- NetworkMonitor for connectivity tracking
- SyncService, the executor and reconciler for queued work
"""

from .network import NetworkEventType, NetworkMonitor, NetworkStatus
from .remote import RemoteBackend, SupabaseBackend
from .service import (
    ConflictStrategy,
    InvalidTableError,
    OfflineError,
    SyncError,
    SyncEventType,
    SyncOptions,
    SyncResult,
    SyncService,
)

__all__ = [
    # Network
    "NetworkMonitor",
    "NetworkStatus",
    "NetworkEventType",
    # Remote
    "RemoteBackend",
    "SupabaseBackend",
    # Sync
    "SyncService",
    "SyncOptions",
    "SyncResult",
    "SyncEventType",
    "ConflictStrategy",
    "SyncError",
    "OfflineError",
    "InvalidTableError",
]
