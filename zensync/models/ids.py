# ZenSync Identifiers
# Per-type id aliases so account ids and tag ids are not mixed up

from typing import NewType, Union

AccountId = NewType("AccountId", str)
TransactionId = NewType("TransactionId", str)
TagId = NewType("TagId", str)
MerchantId = NewType("MerchantId", str)
ReminderId = NewType("ReminderId", str)
ReminderMarkerId = NewType("ReminderMarkerId", str)

InstrumentId = NewType("InstrumentId", int)
CompanyId = NewType("CompanyId", int)
CountryId = NewType("CountryId", int)
UserId = NewType("UserId", int)

# Temporary ids handed out for staged creates, e.g. "tmp-1".
TempId = NewType("TempId", str)

# Raw id as it appears on the wire (string or integer).
RawId = Union[str, int]
