# ZenSync Enumerations
# Constrained values used by the entity models

from enum import Enum


class AccountType(str, Enum):
    """Type of a financial account."""

    CASH = "cash"
    CREDIT_CARD = "ccard"
    CHECKING = "checking"
    LOAN = "loan"
    DEPOSIT = "deposit"
    EMONEY = "emoney"
    DEBT = "debt"


class Interval(str, Enum):
    """Time interval unit for reminders and account offsets."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class PayoffInterval(str, Enum):
    """Payoff interval for loan and deposit accounts."""

    MONTH = "month"
    YEAR = "year"


class ReminderMarkerState(str, Enum):
    """State of a reminder marker instance."""

    PLANNED = "planned"
    PROCESSED = "processed"
    DELETED = "deleted"
