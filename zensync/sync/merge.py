# ZenSync Merge
# Turns a diff response into a validated batch and reconciles pending changes

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from zensync.errors import MalformedResponse
from zensync.models.diff import DiffResponse
from zensync.models.entities import ENTITY_TYPES, EntityRecord, normalize_key
from zensync.sync.changes import ChangeKind, PendingChange
from zensync.sync.store import Snapshot, Tombstone

logger = logging.getLogger(__name__)


@dataclass
class SnapshotDelta:
    """Everything one response changes, built before anything is committed."""

    checkpoint: int
    upserts: list[EntityRecord] = field(default_factory=list)
    tombstones: list[Tombstone] = field(default_factory=list)
    evictions: list[tuple[str, str]] = field(default_factory=list)
    skipped_deletions: int = 0

    @property
    def is_empty(self) -> bool:
        return not (self.upserts or self.tombstones or self.evictions)


@dataclass
class Reconciliation:
    """Outcome of matching sent pending changes against a merged response."""

    confirmed: list[PendingChange] = field(default_factory=list)
    resolved: dict[str, str] = field(default_factory=dict)
    ambiguous: list[PendingChange] = field(default_factory=list)


def build_delta(
    response: DiffResponse,
    base: Snapshot,
    *,
    full: bool = False,
    absence_deletes: bool = True,
) -> SnapshotDelta:
    """
    Build and validate the batch for a response.

    Args:
        response: Parsed diff response.
        base: Snapshot the batch will be applied to.
        full: Treat each included type's array as the complete listing.
        absence_deletes: With `full`, evict cached records missing from the listing.

    Raises:
        MalformedResponse: If the checkpoint moves backwards, a deletion id is
            invalid, or one id is both upserted and deleted.
    """
    if response.server_timestamp < base.checkpoint:
        raise MalformedResponse(
            f"Server checkpoint {response.server_timestamp} is older than local checkpoint {base.checkpoint}"
        )

    delta = SnapshotDelta(checkpoint=response.server_timestamp)
    live: dict[str, set[str]] = {}
    for entity_type in ENTITY_TYPES:
        records = response.records(entity_type)
        delta.upserts.extend(records)
        live[entity_type] = {r.key for r in records}

    dead: dict[str, set[str]] = {}
    for deletion in response.deletion:
        if deletion.object not in ENTITY_TYPES:
            logger.warning("Skipping deletion of unknown type %r (id %s)", deletion.object, deletion.id)
            delta.skipped_deletions += 1
            continue
        try:
            key = normalize_key(deletion.object, deletion.id)
        except ValueError as e:
            raise MalformedResponse(f"Invalid {deletion.object} id in deletion: {deletion.id!r}") from e
        delta.tombstones.append(Tombstone(deletion.object, key, deletion.stamp))
        dead.setdefault(deletion.object, set()).add(key)

    for entity_type, keys in dead.items():
        clash = keys & live.get(entity_type, set())
        if clash:
            raise MalformedResponse(
                f"Response both updates and deletes {entity_type} {', '.join(sorted(clash))}"
            )

    if full and absence_deletes:
        for entity_type in response.included_types:
            keep = live.get(entity_type, set()) | dead.get(entity_type, set())
            delta.evictions.extend((entity_type, key) for key in base.keys(entity_type) if key not in keep)

    return delta


def _matches(wire: Mapping[str, Any], wanted: Mapping[str, Any]) -> bool:
    return all(k in wire and wire[k] == v for k, v in wanted.items())


def _signature(change: PendingChange) -> tuple:
    return (change.entity_type, tuple(sorted((k, repr(v)) for k, v in change.fields.items())))


def reconcile(
    sent: list[PendingChange],
    response: DiffResponse,
    before: Snapshot,
    after: Snapshot,
) -> Reconciliation:
    """
    Decide which sent changes the merged state confirms.

    Creates are correlated by content: a new id in the response whose fields
    equal every draft field. Identical drafts are paired with identical new
    records in order. Any other multi-match is ambiguous and stays pending.
    Updates are confirmed once the merged record carries every patched value,
    deletes once the record is gone.
    """
    result = Reconciliation()

    # Creates, grouped so identical drafts are handled together.
    groups: dict[tuple, list[PendingChange]] = {}
    for change in sent:
        if change.kind == ChangeKind.CREATE:
            groups.setdefault(_signature(change), []).append(change)

    claimed: set[tuple[str, str]] = set()
    for creates in groups.values():
        entity_type = creates[0].entity_type
        known = before.keys(entity_type)
        candidates = [
            record
            for record in response.records(entity_type)
            if record.key not in known
            and (entity_type, record.key) not in claimed
            and _matches(record.to_wire(), creates[0].fields)
        ]
        if not candidates:
            continue
        if len(candidates) != len(creates):
            logger.warning(
                "Ambiguous echo for %d staged %s create(s): %d matching new records; leaving pending",
                len(creates),
                entity_type,
                len(candidates),
            )
            result.ambiguous.extend(creates)
            continue
        for change, record in zip(creates, candidates):
            claimed.add((entity_type, record.key))
            result.resolved[change.key] = record.key
            result.confirmed.append(change)

    for change in sent:
        if change.kind == ChangeKind.UPDATE:
            record = after.get(change.entity_type, change.key)
            if record is not None and _matches(record.to_wire(), change.fields):
                result.confirmed.append(change)
        elif change.kind == ChangeKind.DELETE:
            if after.get(change.entity_type, change.key) is None:
                result.confirmed.append(change)

    return result
