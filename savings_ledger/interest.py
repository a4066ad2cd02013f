"""
Interest Accrual Engine

Computes simple interest over a date interval from the piecewise-constant
balance and rate history. Each day's balance is the end-of-day balance, so a
transaction counts from its own date. Contributions are kept unrounded and
only the period total is rounded to cents.
"""

from decimal import Decimal
from datetime import date, timedelta
from dataclasses import dataclass
from typing import Dict, List, Tuple
import logging

from .ledger import Ledger
from .money import ZERO, quantize_amount
from .rates import InterestRuleTable


logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class AccrualSegment:
    """Days [start, end] at a constant balance and annual percent rate"""
    start: date
    end: date
    balance: Decimal
    rate: Decimal
    interest: Decimal  # Unrounded contribution

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


@dataclass(frozen=True)
class AccrualResult:
    """Interest accrued on one account over [period_start, period_end]"""
    account_id: str
    period_start: date
    period_end: date
    segments: Tuple[AccrualSegment, ...]

    @property
    def raw_interest(self) -> Decimal:
        """Sum of unrounded segment contributions"""
        return sum((segment.interest for segment in self.segments), ZERO)

    @property
    def interest(self) -> Decimal:
        """Period interest rounded half-up to cents"""
        return quantize_amount(self.raw_interest)


class AccrualEngine:
    """
    Splits a period into maximal runs of constant balance and rate and sums
    balance * rate/100 * days/basis over the runs.
    """

    def __init__(self, ledger: Ledger, rules: InterestRuleTable, day_count_basis: int = 365):
        if day_count_basis <= 0:
            raise ValueError("Day count basis must be positive")
        self.ledger = ledger
        self.rules = rules
        self.day_count_basis = day_count_basis

    def accrue(self, account_id: str, period_start: date, period_end: date) -> AccrualResult:
        """
        Accrue interest for account_id over the inclusive period.

        An empty period (end before start) accrues nothing.
        """
        if period_end < period_start:
            return AccrualResult(account_id, period_start, period_end, ())

        segments: List[AccrualSegment] = []
        for start, end, balance, rate in self._runs(account_id, period_start, period_end):
            if segments and segments[-1].balance == balance and segments[-1].rate == rate:
                previous = segments.pop()
                start = previous.start
            segments.append(AccrualSegment(
                start=start,
                end=end,
                balance=balance,
                rate=rate,
                interest=self._interest(balance, rate, (end - start).days + 1)
            ))

        result = AccrualResult(account_id, period_start, period_end, tuple(segments))
        logger.debug(
            f"Accrued {result.raw_interest} on account {account_id} for "
            f"{period_start.isoformat()}..{period_end.isoformat()} over {len(segments)} segment(s)"
        )
        return result

    def _runs(self, account_id: str, period_start: date, period_end: date):
        """Yield (start, end, balance, rate) between consecutive change points"""
        balance_changes: Dict[date, Decimal] = {}
        for transaction, balance_after in self.ledger.running_balances(account_id, period_start, period_end):
            balance_changes[transaction.txn_date] = balance_after

        change_points = {period_start}
        change_points.update(balance_changes)
        change_points.update(self.rules.change_dates(period_start, period_end))
        ordered = sorted(change_points)

        balance = self.ledger.balance_before(account_id, period_start)
        for index, start in enumerate(ordered):
            if index + 1 < len(ordered):
                end = ordered[index + 1] - ONE_DAY
            else:
                end = period_end
            balance = balance_changes.get(start, balance)
            yield start, end, balance, self.rules.rate_on(start)

    def _interest(self, balance: Decimal, rate: Decimal, days: int) -> Decimal:
        # balance * (rate / 100) * (days / basis), divided once
        return balance * rate * days / (Decimal(100) * self.day_count_basis)
