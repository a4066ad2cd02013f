"""
Monthly Statements

Builds the ordered rows of an account statement for one calendar month:
every transaction in the month with its running balance, followed by a
single interest line dated the last day of the month when interest accrued.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union
from enum import Enum
import calendar
import logging

from .errors import LedgerError, LedgerErrorKind
from .interest import AccrualEngine, AccrualResult
from .ledger import Ledger, Transaction
from .money import ZERO, format_amount


logger = logging.getLogger(__name__)


class StatementRowType(Enum):
    """Row kinds on a statement"""
    DEPOSIT = "D"
    WITHDRAWAL = "W"
    INTEREST = "I"


@dataclass(frozen=True)
class StatementRow:
    """One display line of a statement"""
    row_date: date
    txn_id: Optional[str]  # None for the interest line
    row_type: StatementRowType
    amount: Decimal
    balance: Decimal

    @classmethod
    def from_transaction(cls, transaction: Transaction, balance: Decimal) -> 'StatementRow':
        return cls(
            row_date=transaction.txn_date,
            txn_id=transaction.txn_id,
            row_type=StatementRowType(transaction.txn_type.value),
            amount=transaction.amount,
            balance=balance
        )


@dataclass(frozen=True)
class Statement:
    """Statement for one account and month"""
    account_id: str
    year: int
    month: int
    period_start: date
    period_end: date
    opening_balance: Decimal
    closing_balance: Decimal
    interest: Decimal
    rows: Tuple[StatementRow, ...]
    accrual: Optional[AccrualResult] = None

    @property
    def transaction_rows(self) -> List[StatementRow]:
        return [row for row in self.rows if row.row_type != StatementRowType.INTEREST]

    @property
    def interest_row(self) -> Optional[StatementRow]:
        for row in self.rows:
            if row.row_type == StatementRowType.INTEREST:
                return row
        return None


def month_bounds(year: int, month: int) -> Optional[Tuple[date, date]]:
    """First and last day of the month, or None if it is not a valid month"""
    if not isinstance(year, int) or not isinstance(month, int):
        return None
    if not 1 <= month <= 12 or not 1 <= year <= 9999:
        return None
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


class StatementBuilder:
    """Composes ledger history and accrued interest into statements"""

    def __init__(self, ledger: Ledger, accrual_engine: AccrualEngine):
        self.ledger = ledger
        self.accrual_engine = accrual_engine

    def build(self, account_id: str, year: int, month: int) -> Union[Statement, LedgerError]:
        """
        Build the statement for account_id in the given month.

        Returns:
            Statement, or an INVALID_PERIOD LedgerError when (year, month)
            is not a calendar month
        """
        bounds = month_bounds(year, month)
        if bounds is None:
            logger.warning(f"Rejected statement for account {account_id}: invalid period {year!r}-{month!r}")
            return LedgerError(
                kind=LedgerErrorKind.INVALID_PERIOD,
                message="Invalid year and month. Please use YYYYMM format with a month from 01 to 12."
            )
        period_start, period_end = bounds

        opening_balance = self.ledger.balance_before(account_id, period_start)
        rows = [
            StatementRow.from_transaction(transaction, balance)
            for transaction, balance in self.ledger.running_balances(account_id, period_start, period_end)
        ]
        closing_balance = rows[-1].balance if rows else opening_balance

        accrual = self.accrual_engine.accrue(account_id, period_start, period_end)
        interest = accrual.interest
        if interest > ZERO:
            closing_balance = closing_balance + interest
            rows.append(StatementRow(
                row_date=period_end,
                txn_id=None,
                row_type=StatementRowType.INTEREST,
                amount=interest,
                balance=closing_balance
            ))

        logger.info(
            f"Built statement for account {account_id} {year:04d}-{month:02d}: "
            f"{len(rows)} row(s), interest {format_amount(interest)}"
        )
        return Statement(
            account_id=account_id,
            year=year,
            month=month,
            period_start=period_start,
            period_end=period_end,
            opening_balance=opening_balance,
            closing_balance=closing_balance,
            interest=interest,
            rows=tuple(rows),
            accrual=accrual
        )
