"""
Account Ledger Engine

Append-only, per-account transaction log. Transactions are immutable once
recorded and balances are always derived from them, never stored. The ledger
hydrates from storage once and afterwards answers every balance and
sequence check from the transactions it owns; storage only receives writes.
"""

from bisect import bisect_right
from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union
from enum import Enum
import logging

from .errors import LedgerError, LedgerErrorKind, StorageUnavailableError
from .money import ZERO, to_decimal, quantize_amount, has_cents_precision, format_amount
from .storage import LedgerStorage


logger = logging.getLogger(__name__)

MAX_DAILY_SEQUENCE = 99


class TransactionType(Enum):
    """Kinds of ledger transactions"""
    DEPOSIT = "D"
    WITHDRAWAL = "W"

    @classmethod
    def parse(cls, value) -> Optional['TransactionType']:
        """Accept a TransactionType or its code ("D"/"W", any case)"""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            code = value.strip().upper()
            for member in cls:
                if member.value == code:
                    return member
        return None


def format_transaction_id(txn_date: date, sequence: int) -> str:
    """Build a YYYYMMdd-NN transaction id"""
    return f"{txn_date.year:04d}{txn_date.month:02d}{txn_date.day:02d}-{sequence:02d}"


@dataclass(frozen=True)
class Transaction:
    """
    A single deposit or withdrawal on one account.
    Immutable once created; only Ledger.record creates them.
    """
    txn_id: str
    account_id: str
    txn_date: date
    txn_type: TransactionType
    amount: Decimal
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if not isinstance(self.txn_type, TransactionType):
            raise ValueError(f"Unknown transaction type: {self.txn_type!r}")
        if self.amount <= ZERO:
            raise ValueError("Transaction amount must be positive")
        if not has_cents_precision(self.amount):
            raise ValueError("Transaction amount cannot have more than 2 decimal places")

    @property
    def sequence(self) -> int:
        """Per-account, per-day sequence number encoded in the id"""
        return int(self.txn_id.rsplit('-', 1)[1])

    @property
    def signed_amount(self) -> Decimal:
        """Effect of this transaction on the balance"""
        if self.txn_type == TransactionType.WITHDRAWAL:
            return -self.amount
        return self.amount

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary for storage"""
        return {
            'txn_id': self.txn_id,
            'account_id': self.account_id,
            'txn_date': self.txn_date.isoformat(),
            'txn_type': self.txn_type.value,
            'amount': str(self.amount),
            'created_at': self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> 'Transaction':
        """Create instance from a storage dictionary"""
        return cls(
            txn_id=data['txn_id'],
            account_id=data['account_id'],
            txn_date=date.fromisoformat(data['txn_date']),
            txn_type=TransactionType(data['txn_type']),
            amount=Decimal(data['amount']),
            created_at=datetime.fromisoformat(data['created_at']),
        )


class Ledger:
    """
    Per-account transaction ledger.

    Each account's transactions are kept ordered by date and, within a date,
    by sequence number. The balance never goes negative and the first
    transaction on an account is never a withdrawal.
    """

    def __init__(self, storage: LedgerStorage):
        self.storage = storage
        self._accounts: Dict[str, List[Transaction]] = {}
        self._load()

    def _load(self) -> None:
        """Hydrate owned transaction lists from storage"""
        for account_id in self.storage.list_accounts():
            self._accounts.setdefault(account_id, [])
        for data in self.storage.load_all_transactions():
            transaction = Transaction.from_dict(data)
            self._accounts.setdefault(transaction.account_id, []).append(transaction)
        for history in self._accounts.values():
            history.sort(key=lambda t: (t.txn_date, t.sequence))

    def record(
        self,
        account_id: str,
        txn_date: date,
        txn_type: Union[TransactionType, str],
        amount
    ) -> Union[Transaction, LedgerError]:
        """
        Record a deposit or withdrawal.

        Args:
            account_id: Account to post to; created on first use
            txn_date: Calendar day of the transaction
            txn_type: TransactionType or its code ("D"/"W")
            amount: Positive amount with at most 2 decimal places

        Returns:
            The new Transaction, or a LedgerError describing why nothing
            was recorded

        Raises:
            StorageUnavailableError: If the transaction could not be persisted;
                the ledger is left unchanged
        """
        parsed_type = TransactionType.parse(txn_type)
        if parsed_type is None:
            return self._reject(
                account_id, LedgerErrorKind.INVALID_TRANSACTION_TYPE,
                "Invalid transaction type. Use 'D' for deposit or 'W' for withdrawal."
            )

        value = to_decimal(amount)
        if value is None or value <= ZERO or not has_cents_precision(value):
            return self._reject(
                account_id, LedgerErrorKind.INVALID_AMOUNT,
                "Invalid amount. Please enter a positive number with at most 2 decimal places."
            )
        value = quantize_amount(value)

        history = self._accounts.get(account_id, [])

        if parsed_type == TransactionType.WITHDRAWAL:
            if not history:
                return self._reject(
                    account_id, LedgerErrorKind.FIRST_TRANSACTION_WITHDRAWAL,
                    "The first transaction on an account cannot be a withdrawal."
                )
            if self._lowest_balance_from(history, txn_date) < value:
                return self._reject(
                    account_id, LedgerErrorKind.INSUFFICIENT_FUNDS,
                    f"Insufficient balance to withdraw {format_amount(value)}."
                )

        sequence = 1 + sum(1 for t in history if t.txn_date == txn_date)
        if sequence > MAX_DAILY_SEQUENCE:
            return self._reject(
                account_id, LedgerErrorKind.SEQUENCE_EXHAUSTED,
                f"No more than {MAX_DAILY_SEQUENCE} transactions per account per day."
            )

        transaction = Transaction(
            txn_id=format_transaction_id(txn_date, sequence),
            account_id=account_id,
            txn_date=txn_date,
            txn_type=parsed_type,
            amount=value
        )

        try:
            self.storage.append_transaction(transaction.to_dict())
        except StorageUnavailableError:
            logger.error(f"Could not persist transaction {transaction.txn_id} for account {account_id}")
            raise

        # Insert after every transaction on or before this date
        bucket = self._accounts.setdefault(account_id, [])
        position = bisect_right([t.txn_date for t in bucket], txn_date)
        bucket.insert(position, transaction)

        logger.info(
            f"Recorded {parsed_type.name.lower()} {transaction.txn_id} of "
            f"{format_amount(value)} on account {account_id}"
        )
        return transaction

    def _lowest_balance_from(self, history: List[Transaction], txn_date: date) -> Decimal:
        """Lowest running balance from the end of txn_date onward"""
        running = ZERO
        lowest: Optional[Decimal] = None
        for transaction in history:
            if transaction.txn_date > txn_date and lowest is None:
                lowest = running
            running += transaction.signed_amount
            if lowest is not None:
                lowest = min(lowest, running)
        if lowest is None:
            return running
        return lowest

    def _reject(self, account_id: str, kind: LedgerErrorKind, message: str) -> LedgerError:
        logger.warning(f"Rejected transaction on account {account_id}: {kind.value}")
        return LedgerError(kind=kind, message=message)

    def balance(self, account_id: str, as_of: Optional[date] = None) -> Decimal:
        """
        Derive the balance from transactions.

        Args:
            account_id: Account to sum
            as_of: Only count transactions dated on or before this day

        Returns:
            Deposits minus withdrawals; zero for unknown accounts
        """
        total = ZERO
        for transaction in self._accounts.get(account_id, []):
            if as_of is not None and transaction.txn_date > as_of:
                break
            total += transaction.signed_amount
        return total

    def balance_before(self, account_id: str, day: date) -> Decimal:
        """Balance carried into day, i.e. over transactions dated strictly earlier"""
        total = ZERO
        for transaction in self._accounts.get(account_id, []):
            if transaction.txn_date >= day:
                break
            total += transaction.signed_amount
        return total

    def transactions(self, account_id: str) -> List[Transaction]:
        """Full ordered history of an account"""
        return list(self._accounts.get(account_id, []))

    def transactions_in_range(self, account_id: str, start_date: date, end_date: date) -> List[Transaction]:
        """Transactions dated within [start_date, end_date], in date then sequence order"""
        return [
            t for t in self._accounts.get(account_id, [])
            if start_date <= t.txn_date <= end_date
        ]

    def running_balances(
        self,
        account_id: str,
        start_date: date,
        end_date: date
    ) -> List[Tuple[Transaction, Decimal]]:
        """Transactions in range paired with the balance after each one"""
        balance = self.balance_before(account_id, start_date)
        rows = []
        for transaction in self.transactions_in_range(account_id, start_date, end_date):
            balance += transaction.signed_amount
            rows.append((transaction, balance))
        return rows

    def account_exists(self, account_id: str) -> bool:
        """Check if the ledger knows this account"""
        return account_id in self._accounts

    def ensure_account(self, account_id: str) -> None:
        """Create an empty bucket for an unknown account; no-op otherwise"""
        if account_id in self._accounts:
            return
        self.storage.ensure_account(account_id)
        self._accounts[account_id] = []
        logger.info(f"Opened account {account_id}")

    def account_ids(self) -> List[str]:
        """Known account ids, sorted"""
        return sorted(self._accounts)
