# ZenSync Diff Envelope
# Request/response models for the /v8/diff/ and /v8/suggest/ endpoints

from collections.abc import Mapping
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel, to_snake

from zensync.errors import MalformedResponse
from zensync.models.entities import (
    ENTITY_TYPES,
    Account,
    Budget,
    Company,
    Country,
    EntityRecord,
    Instrument,
    Merchant,
    Reminder,
    ReminderMarker,
    Tag,
    Transaction,
    User,
)

# Wire type name -> python attribute name on the envelope models.
TYPE_FIELDS: dict[str, str] = {name: to_snake(name) for name in ENTITY_TYPES}


class _Envelope(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Deletion(_Envelope):
    """Tombstone as carried on the wire."""

    id: str
    object: str
    stamp: int = 0
    user: Optional[int] = None

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v: Any) -> Any:
        """Numeric types send integer ids; keep them as strings here."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class DiffRequest(_Envelope):
    """Outgoing diff: checkpoint plus staged local changes."""

    current_client_timestamp: int
    server_timestamp: int
    force_fetch: list[str] = Field(default_factory=list)
    instrument: list[dict[str, Any]] = Field(default_factory=list)
    company: list[dict[str, Any]] = Field(default_factory=list)
    country: list[dict[str, Any]] = Field(default_factory=list)
    user: list[dict[str, Any]] = Field(default_factory=list)
    account: list[dict[str, Any]] = Field(default_factory=list)
    tag: list[dict[str, Any]] = Field(default_factory=list)
    merchant: list[dict[str, Any]] = Field(default_factory=list)
    transaction: list[dict[str, Any]] = Field(default_factory=list)
    reminder: list[dict[str, Any]] = Field(default_factory=list)
    reminder_marker: list[dict[str, Any]] = Field(default_factory=list)
    budget: list[dict[str, Any]] = Field(default_factory=list)
    deletion: list[Deletion] = Field(default_factory=list)

    def add(self, entity_type: str, wire_object: dict[str, Any]) -> None:
        """Append an outgoing entity object to its per-type array."""
        getattr(self, TYPE_FIELDS[entity_type]).append(wire_object)

    @property
    def change_count(self) -> int:
        return sum(len(getattr(self, attr)) for attr in TYPE_FIELDS.values()) + len(self.deletion)

    def to_wire(self) -> dict[str, Any]:
        """JSON body; empty arrays are omitted."""
        body = self.model_dump(by_alias=True, exclude={"deletion"})
        body["deletion"] = [d.to_wire() for d in self.deletion]
        return {k: v for k, v in body.items() if v != []}


class DiffResponse(_Envelope):
    """Incoming diff: next checkpoint plus server-side changes."""

    server_timestamp: int
    instrument: list[Instrument] = Field(default_factory=list)
    company: list[Company] = Field(default_factory=list)
    country: list[Country] = Field(default_factory=list)
    user: list[User] = Field(default_factory=list)
    account: list[Account] = Field(default_factory=list)
    tag: list[Tag] = Field(default_factory=list)
    merchant: list[Merchant] = Field(default_factory=list)
    transaction: list[Transaction] = Field(default_factory=list)
    reminder: list[Reminder] = Field(default_factory=list)
    reminder_marker: list[ReminderMarker] = Field(default_factory=list)
    budget: list[Budget] = Field(default_factory=list)
    deletion: list[Deletion] = Field(default_factory=list)

    def records(self, entity_type: str) -> list[EntityRecord]:
        """Records of one type carried by this response."""
        return getattr(self, TYPE_FIELDS[entity_type])

    @property
    def included_types(self) -> list[str]:
        """Entity types whose array was present in the payload, even if empty."""
        return [name for name, attr in TYPE_FIELDS.items() if attr in self.model_fields_set]

    @classmethod
    def parse(cls, payload: Mapping[str, Any]) -> "DiffResponse":
        """
        Validate a decoded response body.

        Raises:
            MalformedResponse: If the checkpoint is missing or any record fails
                validation.
        """
        if not isinstance(payload, Mapping):
            raise MalformedResponse(f"Diff response must be an object, got {type(payload).__name__}")
        if "serverTimestamp" not in payload:
            raise MalformedResponse("Diff response has no serverTimestamp")
        try:
            return cls.model_validate(dict(payload))
        except ValidationError as e:
            raise MalformedResponse(f"Invalid diff response: {e}") from e


class SuggestRequest(_Envelope):
    payee: Optional[str] = None
    comment: Optional[str] = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class SuggestResponse(_Envelope):
    """Normalised payee, merchant and tags suggested by the server."""

    payee: Optional[str] = None
    merchant: Optional[str] = None
    tag: Optional[list[str]] = None
