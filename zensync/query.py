# ZenSync Query View
# Read-only, snapshot-consistent filters over cached entities

import datetime as dt
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Optional

from zensync.models.entities import EntityRecord, Instrument, model_for, normalize_key
from zensync.models.ids import InstrumentId, MerchantId, RawId, TagId

if TYPE_CHECKING:
    from zensync.sync.store import Snapshot, SnapshotStore

Predicate = Callable[[EntityRecord], bool]


def is_active(record: EntityRecord) -> bool:
    return not record.is_archived


def is_archived(record: EntityRecord) -> bool:
    return record.is_archived


def in_date_range(start: dt.date, end: dt.date) -> Predicate:
    """Both bounds inclusive. Records without a date never match."""

    def predicate(record: EntityRecord) -> bool:
        value = record.record_date
        return value is not None and start <= value <= end

    return predicate


def has_tag(tag_id: TagId) -> Predicate:
    return lambda record: tag_id in record.tag_ids


def has_merchant(merchant_id: MerchantId) -> Predicate:
    return lambda record: record.merchant_id == merchant_id


def for_account(account_id: str) -> Predicate:
    """Matches either side of a transfer."""
    return lambda record: account_id in record.account_ids


def payee_contains(text: str) -> Predicate:
    """Case-insensitive substring match on the payee."""
    needle = text.lower()

    def predicate(record: EntityRecord) -> bool:
        payee = record.payee_text
        return payee is not None and needle in payee.lower()

    return predicate


def amount_between(minimum: float, maximum: float) -> Predicate:
    """Both bounds inclusive. Records without an amount never match."""

    def predicate(record: EntityRecord) -> bool:
        value = record.amount
        return value is not None and minimum <= value <= maximum

    return predicate


class Query:
    """
    Immutable, lazily evaluated filter over one entity type.

    Every filter method returns a new query; predicates are AND-combined, so
    their order never changes the result.
    """

    def __init__(self, snapshot: "Snapshot", entity_type: str, predicates: tuple[Predicate, ...] = ()):
        self._snapshot = snapshot
        self._entity_type = entity_type
        self._predicates = predicates

    @property
    def entity_type(self) -> str:
        return self._entity_type

    def where(self, predicate: Predicate) -> "Query":
        return Query(self._snapshot, self._entity_type, self._predicates + (predicate,))

    def active(self) -> "Query":
        return self.where(is_active)

    def archived(self) -> "Query":
        return self.where(is_archived)

    def in_date_range(self, start: dt.date, end: dt.date) -> "Query":
        if start > end:
            raise ValueError(f"Date range start {start} is after end {end}")
        return self.where(in_date_range(start, end))

    def has_tag(self, tag_id: TagId) -> "Query":
        return self.where(has_tag(tag_id))

    def has_merchant(self, merchant_id: MerchantId) -> "Query":
        return self.where(has_merchant(merchant_id))

    def for_account(self, account_id: str) -> "Query":
        return self.where(for_account(account_id))

    def payee_contains(self, text: str) -> "Query":
        return self.where(payee_contains(text))

    def amount_between(self, minimum: float, maximum: float) -> "Query":
        if minimum > maximum:
            raise ValueError(f"Amount range minimum {minimum} is above maximum {maximum}")
        return self.where(amount_between(minimum, maximum))

    def __iter__(self) -> Iterator[EntityRecord]:
        for record in self._snapshot.records(self._entity_type):
            if all(predicate(record) for predicate in self._predicates):
                yield record

    def all(self) -> list[EntityRecord]:
        return list(self)

    def count(self) -> int:
        return sum(1 for _ in self)

    def first(self) -> Optional[EntityRecord]:
        return next(iter(self), None)

    def total(self) -> float:
        """Sum of record amounts; 0.0 for an empty result."""
        return float(sum(record.amount or 0.0 for record in self))

    def __repr__(self) -> str:
        return f"Query({self._entity_type!r}, predicates={len(self._predicates)})"


class QueryView:
    """
    Read-only view pinned to one committed snapshot.

    Taking a view never waits for a running sync, and a sync that commits
    later does not change what an existing view returns.
    """

    def __init__(self, snapshot: "Snapshot"):
        self._snapshot = snapshot

    @classmethod
    def latest(cls, store: "SnapshotStore") -> "QueryView":
        return cls(store.read_snapshot())

    @property
    def checkpoint(self) -> int:
        return self._snapshot.checkpoint

    @property
    def snapshot(self) -> "Snapshot":
        return self._snapshot

    def by_type(self, entity_type: str) -> Query:
        model_for(entity_type)
        return Query(self._snapshot, entity_type)

    def get(self, entity_type: str, entity_id: RawId) -> Optional[EntityRecord]:
        return self._snapshot.get(entity_type, normalize_key(entity_type, entity_id))

    def find_by_title(self, entity_type: str, title: str) -> Optional[EntityRecord]:
        """First record whose title equals `title`, ignoring case."""
        wanted = title.lower()
        return self.by_type(entity_type).where(
            lambda record: (record.title_text or "").lower() == wanted
        ).first()

    def instrument(self, instrument_id: InstrumentId) -> Optional[Instrument]:
        return self.get("instrument", instrument_id)

    # Shortcuts for the common listings

    def accounts(self) -> Query:
        return self.by_type("account")

    def transactions(self) -> Query:
        return self.by_type("transaction")

    def tags(self) -> Query:
        return self.by_type("tag")

    def merchants(self) -> Query:
        return self.by_type("merchant")
