# ZenSync Snapshot Store
# Immutable snapshots and the store contract the sync engine commits into

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Optional

from zensync.errors import StorageFailure
from zensync.models.entities import ENTITY_TYPES, EntityRecord, model_for

logger = logging.getLogger(__name__)

SNAPSHOT_FORMAT_VERSION = 1


@dataclass(frozen=True)
class Tombstone:
    """Server-confirmed deletion of one record."""

    entity_type: str
    id: str
    stamp: int = 0


class Snapshot:
    """
    Immutable view of the cached account.

    A snapshot is never modified in place; committing a batch produces a new
    snapshot and the store swaps its reference. Readers holding an older
    snapshot keep seeing exactly what was committed when they took it.
    """

    def __init__(
        self,
        checkpoint: int = 0,
        records: Optional[Mapping[str, Mapping[str, EntityRecord]]] = None,
        tombstones: Optional[Mapping[str, Mapping[str, Tombstone]]] = None,
    ):
        self._checkpoint = checkpoint
        self._records = MappingProxyType({t: MappingProxyType(dict(m)) for t, m in (records or {}).items() if m})
        self._tombstones = MappingProxyType(
            {t: MappingProxyType(dict(m)) for t, m in (tombstones or {}).items() if m}
        )

    @property
    def checkpoint(self) -> int:
        return self._checkpoint

    def types(self) -> list[str]:
        """Entity types with at least one live record."""
        return list(self._records.keys())

    def records(self, entity_type: str) -> Iterator[EntityRecord]:
        return iter(self._records.get(entity_type, {}).values())

    def keys(self, entity_type: str) -> frozenset[str]:
        return frozenset(self._records.get(entity_type, {}).keys())

    def get(self, entity_type: str, key: str) -> Optional[EntityRecord]:
        return self._records.get(entity_type, {}).get(str(key))

    def count(self, entity_type: Optional[str] = None) -> int:
        if entity_type is not None:
            return len(self._records.get(entity_type, {}))
        return sum(len(m) for m in self._records.values())

    def tombstones(self, entity_type: str) -> list[Tombstone]:
        return list(self._tombstones.get(entity_type, {}).values())

    def has_tombstone(self, entity_type: str, key: str) -> bool:
        return str(key) in self._tombstones.get(entity_type, {})

    def with_batch(
        self,
        upserts: Iterable[EntityRecord],
        tombstones: Iterable[Tombstone],
        checkpoint: int,
        evictions: Iterable[tuple[str, str]] = (),
        prune_tombstones_before: int = 0,
    ) -> "Snapshot":
        """
        Return a new snapshot with the batch applied.

        Evictions drop records without leaving a tombstone. Tombstones drop the
        record and are remembered. Upserts replace records and clear any older
        tombstone for the same key. Tombstones stamped before
        `prune_tombstones_before` are forgotten.
        """
        records = {t: dict(m) for t, m in self._records.items()}
        dead = {t: dict(m) for t, m in self._tombstones.items()}

        for entity_type, key in evictions:
            records.get(entity_type, {}).pop(key, None)

        for stone in tombstones:
            records.get(stone.entity_type, {}).pop(stone.id, None)
            dead.setdefault(stone.entity_type, {})[stone.id] = stone

        for record in upserts:
            records.setdefault(record.entity_type, {})[record.key] = record
            dead.get(record.entity_type, {}).pop(record.key, None)

        if prune_tombstones_before > 0:
            dead = {t: {k: s for k, s in m.items() if s.stamp >= prune_tombstones_before} for t, m in dead.items()}

        return Snapshot(checkpoint=checkpoint, records=records, tombstones=dead)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serialisable dictionary."""
        return {
            "version": SNAPSHOT_FORMAT_VERSION,
            "checkpoint": self._checkpoint,
            "records": {t: [r.to_wire() for r in m.values()] for t, m in self._records.items()},
            "tombstones": {
                t: [{"id": s.id, "stamp": s.stamp} for s in m.values()] for t, m in self._tombstones.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Snapshot":
        """Create from dictionary. Unknown entity types are dropped."""
        records: dict[str, dict[str, EntityRecord]] = {}
        for entity_type, items in data.get("records", {}).items():
            if entity_type not in ENTITY_TYPES:
                logger.warning("Dropping cached records of unknown type %r", entity_type)
                continue
            model = model_for(entity_type)
            parsed = [model.from_wire(item) for item in items]
            records[entity_type] = {r.key: r for r in parsed}

        tombstones: dict[str, dict[str, Tombstone]] = {}
        for entity_type, items in data.get("tombstones", {}).items():
            tombstones[entity_type] = {
                str(item["id"]): Tombstone(entity_type, str(item["id"]), int(item.get("stamp", 0))) for item in items
            }

        return cls(checkpoint=int(data.get("checkpoint", 0)), records=records, tombstones=tombstones)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Snapshot):
            return NotImplemented
        return (
            self._checkpoint == other._checkpoint
            and self._records == other._records
            and self._tombstones == other._tombstones
        )

    def __repr__(self) -> str:
        return f"Snapshot(checkpoint={self._checkpoint}, records={self.count()})"


class SnapshotStore(ABC):
    """
    Persists the snapshot and the sync checkpoint.

    Subclasses implement `_persist`, which must either durably store the new
    snapshot or raise. The in-memory reference is swapped only after
    `_persist` returns, so readers never see a batch that failed to commit.
    """

    def __init__(self, initial: Optional[Snapshot] = None):
        self._snapshot = initial or Snapshot()
        self._commit_lock = threading.Lock()
        # Held by the sync engine for the whole request/merge cycle.
        self.sync_lock = threading.Lock()

    def get_checkpoint(self) -> int:
        return self._snapshot.checkpoint

    def read_snapshot(self) -> Snapshot:
        """Latest committed snapshot. Never blocks on an in-flight sync."""
        return self._snapshot

    def apply_batch(
        self,
        upserts: Iterable[EntityRecord],
        tombstones: Iterable[Tombstone],
        new_checkpoint: int,
        *,
        evictions: Iterable[tuple[str, str]] = (),
        prune_tombstones_before: int = 0,
    ) -> Snapshot:
        """
        Atomically apply a batch and advance the checkpoint.

        Returns:
            The newly committed snapshot.

        Raises:
            StorageFailure: If the batch could not be committed. The previous
                snapshot and checkpoint remain in place.
        """
        with self._commit_lock:
            try:
                candidate = self._snapshot.with_batch(
                    upserts, tombstones, new_checkpoint, evictions, prune_tombstones_before
                )
                self._persist(candidate)
            except StorageFailure:
                raise
            except (OSError, ValueError, TypeError) as e:
                raise StorageFailure(f"Could not commit snapshot batch: {e}") from e
            self._snapshot = candidate
            return candidate

    def clear(self) -> None:
        """Drop every record and tombstone and reset the checkpoint to 0."""
        with self._commit_lock:
            empty = Snapshot()
            try:
                self._persist(empty)
            except StorageFailure:
                raise
            except OSError as e:
                raise StorageFailure(f"Could not clear snapshot: {e}") from e
            self._snapshot = empty

    @abstractmethod
    def _persist(self, snapshot: Snapshot) -> None:
        """Durably store a snapshot or raise."""


class MemorySnapshotStore(SnapshotStore):
    """Store that keeps the snapshot in process memory only."""

    def _persist(self, snapshot: Snapshot) -> None:
        return None
