# ZenSync Sync Module
# Core synchronization engine and components

from zensync.sync.changes import ChangeKind, ChangeSet, PendingChange
from zensync.sync.engine import SyncEngine, SyncMode, SyncResult
from zensync.sync.file_store import FileSnapshotStore
from zensync.sync.merge import Reconciliation, SnapshotDelta, build_delta, reconcile
from zensync.sync.store import MemorySnapshotStore, Snapshot, SnapshotStore, Tombstone

__all__ = [
    # Changes
    "ChangeKind",
    "ChangeSet",
    "PendingChange",
    # Store
    "Snapshot",
    "SnapshotStore",
    "MemorySnapshotStore",
    "FileSnapshotStore",
    "Tombstone",
    # Merge
    "SnapshotDelta",
    "Reconciliation",
    "build_delta",
    "reconcile",
    # Engine
    "SyncEngine",
    "SyncMode",
    "SyncResult",
]
