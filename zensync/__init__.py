"""ZenSync - local mirror of a ZenMoney account.

Keeps a cached snapshot consistent with the server through the checkpointed
diff protocol, queues local changes, and offers snapshot-consistent queries.
"""

__version__ = "1.0.0"

__all__ = [
    "__version__",
    "SyncEngine",
    "SyncResult",
    "ChangeSet",
    "MemorySnapshotStore",
    "FileSnapshotStore",
    "QueryView",
    "HttpTransport",
]


def __getattr__(name: str):
    """Lazy import to avoid loading dependencies during setup."""
    if name in ("SyncEngine", "SyncResult", "ChangeSet", "MemorySnapshotStore", "FileSnapshotStore"):
        from zensync import sync

        return getattr(sync, name)
    if name == "QueryView":
        from zensync.query import QueryView

        return QueryView
    if name == "HttpTransport":
        from zensync.transport.http import HttpTransport

        return HttpTransport
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
