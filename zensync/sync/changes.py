# ZenSync Change Set
# Staged create/update/delete calls waiting for the next sync

import itertools
import logging
import threading
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Optional, Union

from zensync.errors import ConflictingChange
from zensync.models.entities import EntityRecord, model_for, normalize_key
from zensync.models.ids import RawId, TempId

logger = logging.getLogger(__name__)

TEMP_ID_PREFIX = "tmp-"


class ChangeKind(str, Enum):
    """Kind of staged mutation."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class PendingChange:
    """
    One staged mutation.

    `key` is the temporary id for creates and the target id otherwise.
    `fields` holds the draft or patch in wire names; it is empty for deletes.
    `revision` changes whenever the entry is coalesced with a newer call.
    """

    kind: ChangeKind
    entity_type: str
    key: str
    revision: int
    fields: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    staged_at: int = 0

    @property
    def slot(self) -> tuple[str, str]:
        return (self.entity_type, self.key)


Draft = Union[Mapping[str, Any], EntityRecord]


class ChangeSet:
    """
    Queue of pending changes plus the temp id -> confirmed id mapping.

    All methods are safe to call while a sync is running: a change staged or
    coalesced after a request was built keeps a newer revision and therefore
    survives the reconciliation of that request.
    """

    def __init__(self, clock=time.time):
        self._clock = clock
        self._lock = threading.RLock()
        self._pending: dict[tuple[str, str], PendingChange] = {}
        self._temp_ids: set[str] = set()
        self._resolved: dict[str, str] = {}
        self._in_flight: set[tuple[str, str]] = set()
        self._temp_counter = itertools.count(1)
        self._revisions = itertools.count(1)

    def stage_create(self, entity_type: str, draft: Draft) -> TempId:
        """
        Stage a new entity.

        Args:
            entity_type: Wire type name, e.g. "account".
            draft: Field values (wire or python names) or a record instance.

        Returns:
            Temporary id usable with update/delete/resolve until confirmed.

        Raises:
            UnknownEntityType: If the type is not part of the protocol.
            ValueError: If the draft carries its own id.
        """
        model = model_for(entity_type)
        if isinstance(draft, EntityRecord):
            values = draft.to_wire()
            values.pop("id", None)
        else:
            values = model.to_wire_fields(draft)
            if "id" in values:
                raise ValueError("Drafts must not carry an id; the server assigns it")

        with self._lock:
            temp_id = TempId(f"{TEMP_ID_PREFIX}{next(self._temp_counter)}")
            self._temp_ids.add(temp_id)
            self._put(ChangeKind.CREATE, entity_type, temp_id, values)
            return temp_id

    def stage_update(self, entity_type: str, entity_id: RawId, patch: Mapping[str, Any]) -> None:
        """
        Stage field changes for an existing entity (or a still-pending create).

        Repeated updates before a sync coalesce; the latest value of each field wins.

        Raises:
            ConflictingChange: If the id is already staged for deletion.
            ValueError: If the patch is empty or the id is invalid.
        """
        model = model_for(entity_type)
        values = model.to_wire_fields(patch)
        if not values:
            raise ValueError("Update patch is empty")
        values.pop("id", None)

        with self._lock:
            key = self._target_key(entity_type, entity_id)
            current = self._pending.get((entity_type, key))

            if current is None:
                self._put(ChangeKind.UPDATE, entity_type, key, values)
            elif current.kind == ChangeKind.DELETE:
                raise ConflictingChange(
                    f"{entity_type} {key} is staged for deletion and cannot be updated",
                    entity_type=entity_type,
                    entity_id=key,
                )
            else:
                self._put(current.kind, entity_type, key, {**current.fields, **values})

    def stage_delete(self, entity_type: str, entity_id: RawId) -> None:
        """
        Stage deletion of an entity.

        A delete replaces a pending update. Deleting a temporary id whose
        create has not been sent yet simply cancels the create. If the create
        is part of a request still in flight, the delete waits under the
        temporary id and moves to the server id once the create is confirmed.
        """
        model_for(entity_type)
        with self._lock:
            key = self._target_key(entity_type, entity_id)
            current = self._pending.get((entity_type, key))

            if current is not None and current.kind == ChangeKind.CREATE:
                if (entity_type, key) in self._in_flight:
                    self._put(ChangeKind.DELETE, entity_type, key, {})
                else:
                    del self._pending[(entity_type, key)]
                return
            if current is not None and current.kind == ChangeKind.DELETE:
                return
            self._put(ChangeKind.DELETE, entity_type, key, {})

    def pending(self) -> list[PendingChange]:
        """Snapshot of the queue in staging order."""
        with self._lock:
            return list(self._pending.values())

    def get(self, entity_type: str, key: str) -> Optional[PendingChange]:
        with self._lock:
            return self._pending.get((entity_type, str(key)))

    def resolve(self, temp_id: str) -> Optional[str]:
        """Server id assigned to a temporary id, or None while unconfirmed."""
        with self._lock:
            return self._resolved.get(temp_id)

    @property
    def resolved(self) -> dict[str, str]:
        with self._lock:
            return dict(self._resolved)

    def begin_send(self) -> list[PendingChange]:
        """
        Changes to put in the next request, in staging order.

        Creates in the result count as in flight until `end_send`. Deletes
        still waiting on an unconfirmed temporary id are not sendable.
        """
        with self._lock:
            outgoing = [
                change
                for change in self._pending.values()
                if not (change.kind == ChangeKind.DELETE and change.key in self._temp_ids)
            ]
            self._in_flight = {change.slot for change in outgoing if change.kind == ChangeKind.CREATE}
            return outgoing

    def end_send(self) -> None:
        """
        Close the request opened by `begin_send`, whether or not it succeeded.

        A delete staged against a create that was in flight and never got
        confirmed has nothing left to target, so it is dropped like a delete
        of an unsent create.
        """
        with self._lock:
            orphaned = [s for s, c in self._pending.items() if c.kind == ChangeKind.DELETE and c.key in self._temp_ids]
            for slot in orphaned:
                logger.warning("Dropping delete of %s %s: its create was never confirmed", *slot)
                del self._pending[slot]
            self._in_flight = set()

    def confirm(self, changes: Iterable[PendingChange], resolved: Optional[Mapping[str, str]] = None) -> int:
        """
        Discard confirmed changes and record resolved temporary ids.

        An entry is only discarded if it still has the revision that was sent;
        a newer coalesced version stays queued. For a confirmed create the
        newer version moves to the server id: a delete stays a delete, and a
        changed draft becomes an update carrying the fields that differ from
        what was sent.

        Returns:
            Number of entries discarded or moved to their server id.
        """
        count = 0
        resolved = dict(resolved or {})
        with self._lock:
            self._resolved.update(resolved)
            for change in changes:
                current = self._pending.get(change.slot)
                if current is None:
                    continue
                if current.revision == change.revision:
                    del self._pending[change.slot]
                    count += 1
                elif change.kind == ChangeKind.CREATE and change.key in resolved:
                    del self._pending[change.slot]
                    self._rekey(current, change, resolved[change.key])
                    count += 1
        return count

    def abandon(self, entity_type: str, key: RawId) -> bool:
        """Drop a pending change on purpose. Returns True if one was dropped."""
        with self._lock:
            return self._pending.pop((entity_type, str(key)), None) is not None

    def abandon_all(self) -> int:
        with self._lock:
            count = len(self._pending)
            self._pending.clear()
            return count

    def is_temp_id(self, value: str) -> bool:
        return value in self._temp_ids

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def _target_key(self, entity_type: str, entity_id: RawId) -> str:
        raw = str(entity_id)
        if raw in self._temp_ids:
            if (entity_type, raw) in self._pending:
                return raw
            confirmed = self._resolved.get(raw)
            if confirmed is None:
                raise ValueError(f"Temporary id {raw} has no pending create and was never confirmed")
            return confirmed
        return normalize_key(entity_type, entity_id)

    def _rekey(self, current: PendingChange, sent: PendingChange, server_id: str) -> None:
        if current.kind == ChangeKind.DELETE:
            self._put(ChangeKind.DELETE, current.entity_type, server_id, {})
            return
        patch = {k: v for k, v in current.fields.items() if k not in sent.fields or sent.fields[k] != v}
        if patch:
            self._put(ChangeKind.UPDATE, current.entity_type, server_id, patch)

    def _put(self, kind: ChangeKind, entity_type: str, key: str, values: Mapping[str, Any]) -> None:
        self._pending[(entity_type, key)] = PendingChange(
            kind=kind,
            entity_type=entity_type,
            key=key,
            revision=next(self._revisions),
            fields=MappingProxyType(dict(values)),
            staged_at=int(self._clock()),
        )
