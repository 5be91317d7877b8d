# ZenSync Models
# Entity records, identifiers and the diff envelope

from zensync.models.diff import (
    TYPE_FIELDS,
    Deletion,
    DiffRequest,
    DiffResponse,
    SuggestRequest,
    SuggestResponse,
)
from zensync.models.entities import (
    ENTITY_TYPES,
    NUMERIC_ID_TYPES,
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
    model_for,
    normalize_key,
)
from zensync.models.enums import AccountType, Interval, PayoffInterval, ReminderMarkerState
from zensync.models.ids import (
    AccountId,
    CompanyId,
    CountryId,
    InstrumentId,
    MerchantId,
    RawId,
    ReminderId,
    ReminderMarkerId,
    TagId,
    TempId,
    TransactionId,
    UserId,
)

__all__ = [
    # Records
    "EntityRecord",
    "Account",
    "Budget",
    "Company",
    "Country",
    "Instrument",
    "Merchant",
    "Reminder",
    "ReminderMarker",
    "Tag",
    "Transaction",
    "User",
    "ENTITY_TYPES",
    "NUMERIC_ID_TYPES",
    "model_for",
    "normalize_key",
    # Enums
    "AccountType",
    "Interval",
    "PayoffInterval",
    "ReminderMarkerState",
    # Ids
    "AccountId",
    "CompanyId",
    "CountryId",
    "InstrumentId",
    "MerchantId",
    "RawId",
    "ReminderId",
    "ReminderMarkerId",
    "TagId",
    "TempId",
    "TransactionId",
    "UserId",
    # Envelope
    "TYPE_FIELDS",
    "Deletion",
    "DiffRequest",
    "DiffResponse",
    "SuggestRequest",
    "SuggestResponse",
]
