"""
Ledger error kinds.

Business-rule violations are returned to the caller as LedgerError values;
only infrastructure faults are raised.
"""

from dataclasses import dataclass
from enum import Enum


class LedgerErrorKind(Enum):
    """Recoverable validation failures"""
    INVALID_AMOUNT = "invalid_amount"
    INVALID_TRANSACTION_TYPE = "invalid_transaction_type"
    FIRST_TRANSACTION_WITHDRAWAL = "first_transaction_withdrawal"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    SEQUENCE_EXHAUSTED = "sequence_exhausted"
    INVALID_RATE = "invalid_rate"
    INVALID_PERIOD = "invalid_period"


@dataclass(frozen=True)
class LedgerError:
    """A rejected operation; the ledger and rule table are left unchanged"""
    kind: LedgerErrorKind
    message: str

    def __str__(self) -> str:
        return self.message


class StorageUnavailableError(Exception):
    """The storage backend could not complete a read or write"""
