# ZenSync Entity Models
# One pydantic model per entity type carried by the diff protocol

import datetime as dt
from collections.abc import Mapping
from typing import Any, ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_core import to_jsonable_python

from zensync.errors import UnknownEntityType
from zensync.models.enums import AccountType, Interval, PayoffInterval, ReminderMarkerState


class EntityRecord(BaseModel):
    """
    Base class for every cached entity.

    Records are immutable. Only the identifying fields are required; unknown
    wire fields are kept so a record survives a round trip unchanged.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        frozen=True,
    )

    entity_type: ClassVar[str] = ""

    @property
    def key(self) -> str:
        """Type-scoped identity of the record, as a string."""
        return str(getattr(self, "id"))

    @property
    def amount(self) -> Optional[float]:
        return None

    @property
    def record_date(self) -> Optional[dt.date]:
        return None

    @property
    def is_archived(self) -> bool:
        return False

    @property
    def tag_ids(self) -> tuple[str, ...]:
        return ()

    @property
    def merchant_id(self) -> Optional[str]:
        return None

    @property
    def account_ids(self) -> tuple[str, ...]:
        return ()

    @property
    def payee_text(self) -> Optional[str]:
        return None

    @property
    def title_text(self) -> Optional[str]:
        return getattr(self, "title", None)

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the JSON shape used on the wire."""
        return self.model_dump(by_alias=True, mode="json", exclude_unset=True)

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "EntityRecord":
        """Validate a wire object into a record."""
        return cls.model_validate(dict(data))

    @classmethod
    def wire_name(cls, name: str) -> str:
        """Map a python field name to its wire name; wire names pass through."""
        field = cls.model_fields.get(name)
        if field is not None and field.alias:
            return field.alias
        return name

    @classmethod
    def to_wire_fields(cls, values: Mapping[str, Any]) -> dict[str, Any]:
        """Normalise a draft or patch to wire names and JSON-compatible values."""
        return {cls.wire_name(k): to_jsonable_python(v) for k, v in values.items()}


class _FlowRecord(EntityRecord):
    """Shared fields of transactions, reminders and reminder markers."""

    income: Optional[float] = None
    outcome: Optional[float] = None
    income_account: Optional[str] = None
    outcome_account: Optional[str] = None
    income_instrument: Optional[int] = None
    outcome_instrument: Optional[int] = None
    tag: Optional[list[str]] = None
    merchant: Optional[str] = None
    payee: Optional[str] = None
    comment: Optional[str] = None

    @property
    def amount(self) -> Optional[float]:
        return max(self.income or 0.0, self.outcome or 0.0)

    @property
    def tag_ids(self) -> tuple[str, ...]:
        return tuple(self.tag or ())

    @property
    def merchant_id(self) -> Optional[str]:
        return self.merchant

    @property
    def account_ids(self) -> tuple[str, ...]:
        return tuple(a for a in (self.income_account, self.outcome_account) if a)

    @property
    def payee_text(self) -> Optional[str]:
        return self.payee


class Instrument(EntityRecord):
    """Currency with its exchange rate."""

    entity_type: ClassVar[str] = "instrument"

    id: int
    changed: Optional[int] = None
    title: Optional[str] = None
    short_title: Optional[str] = None
    symbol: Optional[str] = None
    rate: Optional[float] = None


class Company(EntityRecord):
    """Bank or other financial organisation."""

    entity_type: ClassVar[str] = "company"

    id: int
    changed: Optional[int] = None
    title: Optional[str] = None
    full_title: Optional[str] = None
    www: Optional[str] = None
    country: Optional[int] = None
    country_code: Optional[str] = None
    deleted: Optional[bool] = None

    @property
    def is_archived(self) -> bool:
        return bool(self.deleted)


class Country(EntityRecord):
    entity_type: ClassVar[str] = "country"

    id: int
    title: Optional[str] = None
    currency: Optional[int] = None
    domain: Optional[str] = None


class User(EntityRecord):
    entity_type: ClassVar[str] = "user"

    id: int
    changed: Optional[int] = None
    login: Optional[str] = None
    currency: Optional[int] = None
    parent: Optional[int] = None
    country: Optional[int] = None
    country_code: Optional[str] = None
    email: Optional[str] = None
    is_forecast_enabled: Optional[bool] = None
    month_start_day: Optional[int] = None
    paid_till: Optional[int] = None
    subscription: Optional[str] = None

    @property
    def title_text(self) -> Optional[str]:
        return self.login


class Account(EntityRecord):
    """Financial account (cash, card, loan, deposit...)."""

    entity_type: ClassVar[str] = "account"

    id: str
    changed: Optional[int] = None
    user: Optional[int] = None
    role: Optional[int] = None
    instrument: Optional[int] = None
    company: Optional[int] = None
    kind: Optional[AccountType] = Field(default=None, alias="type")
    title: Optional[str] = None
    sync_id: Optional[list[str]] = Field(default=None, alias="syncID")
    balance: Optional[float] = None
    start_balance: Optional[float] = None
    credit_limit: Optional[float] = None
    in_balance: Optional[bool] = None
    savings: Optional[bool] = None
    enable_correction: Optional[bool] = None
    enable_sms: Optional[bool] = Field(default=None, alias="enableSMS")
    archive: bool = False
    capitalization: Optional[bool] = None
    percent: Optional[float] = None
    start_date: Optional[dt.date] = None
    end_date_offset: Optional[int] = None
    end_date_offset_interval: Optional[PayoffInterval] = None
    payoff_step: Optional[int] = None
    payoff_interval: Optional[PayoffInterval] = None

    @property
    def amount(self) -> Optional[float]:
        return self.balance

    @property
    def is_archived(self) -> bool:
        return self.archive


class Tag(EntityRecord):
    """Transaction category."""

    entity_type: ClassVar[str] = "tag"

    id: str
    changed: Optional[int] = None
    user: Optional[int] = None
    title: Optional[str] = None
    parent: Optional[str] = None
    icon: Optional[str] = None
    picture: Optional[str] = None
    color: Optional[int] = None
    show_income: Optional[bool] = None
    show_outcome: Optional[bool] = None
    budget_income: Optional[bool] = None
    budget_outcome: Optional[bool] = None
    required: Optional[bool] = None


class Merchant(EntityRecord):
    entity_type: ClassVar[str] = "merchant"

    id: str
    changed: Optional[int] = None
    user: Optional[int] = None
    title: Optional[str] = None


class Transaction(_FlowRecord):
    """Money movement between accounts."""

    entity_type: ClassVar[str] = "transaction"

    id: str
    changed: Optional[int] = None
    created: Optional[int] = None
    user: Optional[int] = None
    deleted: bool = False
    hold: Optional[bool] = None
    original_payee: Optional[str] = None
    date: Optional[dt.date] = None
    mcc: Optional[int] = None
    reminder_marker: Optional[str] = None
    op_income: Optional[float] = None
    op_income_instrument: Optional[int] = None
    op_outcome: Optional[float] = None
    op_outcome_instrument: Optional[int] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    income_bank_id: Optional[str] = Field(default=None, alias="incomeBankID")
    outcome_bank_id: Optional[str] = Field(default=None, alias="outcomeBankID")
    qr_code: Optional[str] = None
    source: Optional[str] = None
    viewed: Optional[bool] = None

    @property
    def record_date(self) -> Optional[dt.date]:
        return self.date

    @property
    def is_archived(self) -> bool:
        return self.deleted


class Reminder(_FlowRecord):
    """Recurring planned transaction."""

    entity_type: ClassVar[str] = "reminder"

    id: str
    changed: Optional[int] = None
    user: Optional[int] = None
    interval: Optional[Interval] = None
    step: Optional[int] = None
    points: Optional[list[int]] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    notify: Optional[bool] = None

    @property
    def record_date(self) -> Optional[dt.date]:
        return self.start_date


class ReminderMarker(_FlowRecord):
    """Single occurrence of a reminder."""

    entity_type: ClassVar[str] = "reminderMarker"

    id: str
    changed: Optional[int] = None
    user: Optional[int] = None
    date: Optional[dt.date] = None
    reminder: Optional[str] = None
    state: Optional[ReminderMarkerState] = None
    notify: Optional[bool] = None
    is_forecast: Optional[bool] = None

    @property
    def record_date(self) -> Optional[dt.date]:
        return self.date

    @property
    def is_archived(self) -> bool:
        return self.state == ReminderMarkerState.DELETED


class Budget(EntityRecord):
    """Monthly budget target for a tag. Keyed by user, tag and month."""

    entity_type: ClassVar[str] = "budget"

    changed: Optional[int] = None
    user: int
    tag: Optional[str] = None
    date: dt.date
    income: Optional[float] = None
    income_lock: Optional[bool] = None
    outcome: Optional[float] = None
    outcome_lock: Optional[bool] = None
    is_income_forecast: Optional[bool] = None
    is_outcome_forecast: Optional[bool] = None

    @property
    def key(self) -> str:
        return f"{self.user}:{self.tag or ''}:{self.date.isoformat()}"

    @property
    def amount(self) -> Optional[float]:
        return self.outcome

    @property
    def record_date(self) -> Optional[dt.date]:
        return self.date

    @property
    def tag_ids(self) -> tuple[str, ...]:
        return (self.tag,) if self.tag else ()


# Order matters: referenced types come before the types that point at them.
ENTITY_TYPES: dict[str, type[EntityRecord]] = {
    model.entity_type: model
    for model in (
        Instrument,
        Country,
        Company,
        User,
        Account,
        Tag,
        Merchant,
        Reminder,
        ReminderMarker,
        Transaction,
        Budget,
    )
}

# Types whose ids are integers on the wire.
NUMERIC_ID_TYPES = frozenset({"instrument", "company", "country", "user"})


def model_for(entity_type: str) -> type[EntityRecord]:
    """Return the record model for a wire type name."""
    try:
        return ENTITY_TYPES[entity_type]
    except KeyError:
        raise UnknownEntityType(f"Unknown entity type: {entity_type!r}") from None


def normalize_key(entity_type: str, raw_id: Any) -> str:
    """
    Canonical string key for an id.

    Numeric types must parse as integers so that "12" and 12 compare equal.

    Raises:
        ValueError: If a numeric type id is not an integer.
    """
    if entity_type in NUMERIC_ID_TYPES:
        return str(int(raw_id))
    return str(raw_id)
