# ZenSync Sync Engine
# Incremental sync, full sync and push over a snapshot store

import logging
import time
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from zensync.config.schema import ConcurrencyPolicy, StorageBackend, ZenSyncConfig
from zensync.errors import SyncInProgress
from zensync.models.diff import Deletion, DiffRequest, DiffResponse
from zensync.models.entities import NUMERIC_ID_TYPES, model_for
from zensync.models.ids import RawId, TempId
from zensync.query import QueryView
from zensync.sync.changes import ChangeKind, ChangeSet, Draft, PendingChange
from zensync.sync.file_store import FileSnapshotStore
from zensync.sync.merge import build_delta, reconcile
from zensync.sync.store import MemorySnapshotStore, Snapshot, SnapshotStore
from zensync.transport.base import Transport

logger = logging.getLogger(__name__)


class SyncMode(str, Enum):
    """Kind of sync run."""

    INCREMENTAL = "incremental"
    FULL = "full"


@dataclass
class SyncResult:
    """Result of one sync run."""

    mode: SyncMode
    checkpoint_before: int
    checkpoint_after: int
    upserted: int = 0
    deleted: int = 0
    evicted: int = 0
    skipped_deletions: int = 0
    sent: int = 0
    confirmed: int = 0
    pending: int = 0
    ambiguous: int = 0
    resolved: dict[str, str] = field(default_factory=dict)
    staged: list[str] = field(default_factory=list)
    response: Optional[DiffResponse] = None

    @property
    def advanced(self) -> bool:
        """Whether the checkpoint moved forward."""
        return self.checkpoint_after > self.checkpoint_before

    @property
    def has_pending(self) -> bool:
        return self.pending > 0


class SyncEngine:
    """
    Main synchronization engine.

    Owns the merge algorithm and the checkpoint lifecycle for one store.
    Only one sync, full sync or push runs per store at a time; the
    concurrency policy decides whether a second caller waits or fails.
    """

    def __init__(
        self,
        store: SnapshotStore,
        transport: Transport,
        changes: Optional[ChangeSet] = None,
        *,
        policy: ConcurrencyPolicy = ConcurrencyPolicy.REJECT,
        full_sync_absence_deletes: bool = True,
        force_fetch: Optional[list[str]] = None,
        tombstone_retention: int = 0,
        clock=time.time,
    ):
        """
        Initialize sync engine.

        Args:
            store: Snapshot store to merge into.
            transport: Transport used for diff requests.
            changes: Pending change queue (creates a new one if not provided).
            policy: Behaviour of a concurrent sync attempt.
            full_sync_absence_deletes: Evict records a full listing omits.
            force_fetch: Entity types requested in full on full sync.
            tombstone_retention: Seconds of server time a tombstone is kept (0 keeps them).
            clock: Source of unix time, replaceable in tests.
        """
        self.store = store
        self.transport = transport
        self.changes = changes or ChangeSet(clock=clock)
        self.policy = policy
        self.full_sync_absence_deletes = full_sync_absence_deletes
        self.force_fetch = list(force_fetch or [])
        self.tombstone_retention = tombstone_retention
        self._clock = clock

    @classmethod
    def from_config(
        cls,
        config: ZenSyncConfig,
        transport: Transport,
        store: Optional[SnapshotStore] = None,
    ) -> "SyncEngine":
        """Build an engine with the store and policies described by the configuration."""
        if store is None:
            if config.storage.backend == StorageBackend.MEMORY:
                store = MemorySnapshotStore()
            else:
                store = FileSnapshotStore(Path(config.storage.path))
        return cls(
            store,
            transport,
            policy=config.sync.concurrency,
            full_sync_absence_deletes=config.sync.full_sync_absence_deletes,
            force_fetch=config.sync.force_fetch,
            tombstone_retention=config.sync.tombstone_retention,
        )

    # Staging

    def create(self, entity_type: str, draft: Draft) -> TempId:
        return self.changes.stage_create(entity_type, draft)

    def update(self, entity_type: str, entity_id: RawId, patch: Mapping[str, Any]) -> None:
        self.changes.stage_update(entity_type, entity_id, patch)

    def delete(self, entity_type: str, entity_id: RawId) -> None:
        self.changes.stage_delete(entity_type, entity_id)

    # Sync operations

    def incremental_sync(self) -> SyncResult:
        """
        Send pending changes and merge everything since the stored checkpoint.

        Raises:
            SyncInProgress: If another sync holds the store (reject policy).
            TransportFailure: If the request failed. Nothing was changed.
            MalformedResponse: If the response broke the protocol. Nothing was changed.
            StorageFailure: If the batch could not be committed. Nothing was changed.
        """
        with self._exclusive("incremental sync"):
            return self._run(SyncMode.INCREMENTAL)

    def full_sync(self) -> SyncResult:
        """
        Fetch everything from checkpoint 0 and treat the listing as authoritative.

        For every entity type present in the response, cached records that are
        neither listed nor tombstoned are evicted (when enabled).
        """
        with self._exclusive("full sync"):
            return self._run(SyncMode.FULL)

    def push(self, operations: Iterable[tuple]) -> SyncResult:
        """
        Stage a list of operations, then run an incremental sync.

        Operations are tuples: ("create", type, draft), ("update", type, id,
        patch) or ("delete", type, id). Staged changes stay queued if the sync
        itself fails.
        """
        staged: list[str] = []
        for operation in operations:
            kind, entity_type, *args = operation
            if kind == ChangeKind.CREATE:
                staged.append(self.create(entity_type, *args))
            elif kind == ChangeKind.UPDATE:
                self.update(entity_type, *args)
            elif kind == ChangeKind.DELETE:
                self.delete(entity_type, *args)
            else:
                raise ValueError(f"Unknown operation {kind!r}")

        result = self.incremental_sync()
        result.staged = staged
        return result

    def reset(self) -> None:
        """Drop the cached snapshot and checkpoint. Pending changes are kept."""
        with self._exclusive("reset"):
            self.store.clear()

    def query(self) -> QueryView:
        """Read view over the latest committed snapshot."""
        return QueryView(self.store.read_snapshot())

    @contextmanager
    def _exclusive(self, operation: str) -> Iterator[None]:
        lock = self.store.sync_lock
        if self.policy == ConcurrencyPolicy.BLOCK:
            lock.acquire()
        elif not lock.acquire(blocking=False):
            raise SyncInProgress(f"Cannot start {operation}: another sync is in progress")
        try:
            yield
        finally:
            lock.release()

    def _run(self, mode: SyncMode) -> SyncResult:
        full = mode == SyncMode.FULL
        before = self.store.read_snapshot()
        sent = self.changes.begin_send()
        try:
            request = self._build_request(before, sent, full=full)

            logger.debug(
                "Starting %s sync from checkpoint %d with %d pending change(s)",
                mode.value,
                request.server_timestamp,
                len(sent),
            )

            # Only blocking point; a failure here leaves everything untouched.
            payload = self.transport.diff(request.to_wire())

            response = DiffResponse.parse(payload)
            delta = build_delta(
                response,
                before,
                full=full,
                absence_deletes=self.full_sync_absence_deletes,
            )
            after = self.store.apply_batch(
                delta.upserts,
                delta.tombstones,
                delta.checkpoint,
                evictions=delta.evictions,
                prune_tombstones_before=self._prune_horizon(delta.checkpoint),
            )

            outcome = reconcile(sent, response, before, after)
            confirmed = self.changes.confirm(outcome.confirmed, outcome.resolved)
        finally:
            self.changes.end_send()

        for change in outcome.ambiguous:
            logger.warning("Left %s %s pending: server echo was ambiguous", change.entity_type, change.key)

        result = SyncResult(
            mode=mode,
            checkpoint_before=before.checkpoint,
            checkpoint_after=after.checkpoint,
            upserted=len(delta.upserts),
            deleted=len(delta.tombstones),
            evicted=len(delta.evictions),
            skipped_deletions=delta.skipped_deletions,
            sent=len(sent),
            confirmed=confirmed,
            pending=len(self.changes),
            ambiguous=len(outcome.ambiguous),
            resolved=dict(outcome.resolved),
            response=response,
        )
        logger.info(
            "%s sync done: checkpoint %d -> %d, %d upserted, %d deleted, %d evicted, %d pending",
            mode.value.capitalize(),
            result.checkpoint_before,
            result.checkpoint_after,
            result.upserted,
            result.deleted,
            result.evicted,
            result.pending,
        )
        return result

    def _prune_horizon(self, checkpoint: int) -> int:
        if self.tombstone_retention <= 0:
            return 0
        return max(checkpoint - self.tombstone_retention, 0)

    def _build_request(self, snapshot: Snapshot, sent: list[PendingChange], *, full: bool) -> DiffRequest:
        request = DiffRequest(
            current_client_timestamp=int(self._clock()),
            server_timestamp=0 if full else snapshot.checkpoint,
            force_fetch=list(self.force_fetch) if full else [],
        )
        user_id = _current_user_id(snapshot)

        for change in sent:
            if change.kind == ChangeKind.DELETE:
                request.deletion.append(
                    Deletion(id=change.key, object=change.entity_type, stamp=change.staged_at, user=user_id)
                )
            else:
                request.add(change.entity_type, _outgoing_object(snapshot, change, user_id))

        return request


def _current_user_id(snapshot: Snapshot) -> Optional[int]:
    """Id of the first cached user, if any."""
    user = next(snapshot.records("user"), None)
    return getattr(user, "id", None)


def _identity_fields(entity_type: str, key: str) -> dict[str, Any]:
    """Wire fields that identify a record the snapshot does not hold."""
    if entity_type == "budget":
        user, tag, date = key.split(":", 2)
        return {"user": int(user), "tag": tag or None, "date": date}
    if entity_type in NUMERIC_ID_TYPES:
        return {"id": int(key)}
    return {"id": key}


def _outgoing_object(snapshot: Snapshot, change: PendingChange, user_id: Optional[int]) -> dict[str, Any]:
    """Full wire object for a create or update."""
    model = model_for(change.entity_type)

    if change.kind == ChangeKind.CREATE:
        obj = dict(change.fields)
    else:
        record = snapshot.get(change.entity_type, change.key)
        obj = record.to_wire() if record is not None else _identity_fields(change.entity_type, change.key)
        obj.update(change.fields)

    if "changed" in model.model_fields:
        obj["changed"] = change.staged_at
    if user_id is not None and "user" in model.model_fields and "user" not in obj:
        obj["user"] = user_id
    return obj
