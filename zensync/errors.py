# ZenSync Errors
# Exception hierarchy shared by the sync core, transports and stores

from typing import Optional


class ZenSyncError(Exception):
    """Base class for all ZenSync errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class TransportFailure(ZenSyncError):
    """Network or HTTP-layer error. Never mutates local state; safe to retry."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(message)


class MalformedResponse(ZenSyncError):
    """Server response violates the diff protocol; the merge was aborted."""


class StorageFailure(ZenSyncError):
    """Snapshot store could not commit or read a batch."""


class ConflictingChange(ZenSyncError):
    """Mutually exclusive pending changes were staged for the same id."""

    def __init__(self, message: str, entity_type: str = "", entity_id: str = ""):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(message)


class SyncInProgress(ZenSyncError):
    """Another sync or push is already running against the same store."""


class UnknownEntityType(ZenSyncError, ValueError):
    """Entity type name is not part of the diff protocol."""
