"""
Interest Rule Table

Dated annual interest rates. A rule applies from its effective date
(inclusive) until the next rule takes over; at most one rule exists per date.
"""

from bisect import bisect_left, bisect_right
from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Dict, List, Optional, Union
import logging
import uuid

from .errors import LedgerError, LedgerErrorKind, StorageUnavailableError
from .money import ZERO, to_decimal
from .storage import LedgerStorage


logger = logging.getLogger(__name__)

MAX_RATE = Decimal('100')


@dataclass
class InterestRule:
    """Annual percentage rate in force from effective_date"""
    id: str
    created_at: datetime
    updated_at: datetime
    effective_date: date
    rate: Decimal                  # Annual percent, e.g. Decimal('1.95')
    rule_id: Optional[str] = None  # Display label, e.g. "RULE01"

    def __post_init__(self):
        if not ZERO < self.rate < MAX_RATE:
            raise ValueError("Interest rate must be greater than 0 and less than 100")

    def to_dict(self) -> Dict[str, Optional[str]]:
        """Convert to dictionary for storage"""
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'effective_date': self.effective_date.isoformat(),
            'rate': str(self.rate),
            'rule_id': self.rule_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Optional[str]]) -> 'InterestRule':
        """Create instance from a storage dictionary"""
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            effective_date=date.fromisoformat(data['effective_date']),
            rate=Decimal(data['rate']),
            rule_id=data.get('rule_id'),
        )


class InterestRuleTable:
    """
    Sorted set of interest rules keyed by effective date.

    rate_on(day) answers with the rate currently in force on that day, so a
    rule dated after the day never applies.
    """

    def __init__(self, storage: LedgerStorage):
        self.storage = storage
        self._rules: List[InterestRule] = [
            InterestRule.from_dict(data) for data in storage.load_rules()
        ]
        self._rules.sort(key=lambda r: r.effective_date)

    def _dates(self) -> List[date]:
        return [rule.effective_date for rule in self._rules]

    def upsert(
        self,
        effective_date: date,
        rate: Union[Decimal, str, int],
        rule_id: Optional[str] = None
    ) -> Union[InterestRule, LedgerError]:
        """
        Insert a rule, or replace the rate and label of the rule already
        defined for effective_date.

        Returns:
            The stored InterestRule, or an INVALID_RATE LedgerError

        Raises:
            StorageUnavailableError: If the rule could not be persisted; the
                table is left unchanged
        """
        value = to_decimal(rate)
        if value is None or not ZERO < value < MAX_RATE:
            logger.warning(f"Rejected interest rule for {effective_date.isoformat()}: invalid rate {rate!r}")
            return LedgerError(
                kind=LedgerErrorKind.INVALID_RATE,
                message="Invalid interest rate. Rate should be greater than 0 and less than 100."
            )

        now = datetime.now(timezone.utc)
        position = bisect_left(self._dates(), effective_date)
        existing = None
        if position < len(self._rules) and self._rules[position].effective_date == effective_date:
            existing = self._rules[position]

        if existing is not None:
            rule = InterestRule(
                id=existing.id,
                created_at=existing.created_at,
                updated_at=now,
                effective_date=effective_date,
                rate=value,
                rule_id=rule_id
            )
        else:
            rule = InterestRule(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                effective_date=effective_date,
                rate=value,
                rule_id=rule_id
            )

        try:
            self.storage.save_rule(rule.to_dict())
        except StorageUnavailableError:
            logger.error(f"Could not persist interest rule for {effective_date.isoformat()}")
            raise

        if existing is not None:
            existing.rate = rule.rate
            existing.rule_id = rule.rule_id
            existing.updated_at = rule.updated_at
            rule = existing
            logger.info(f"Replaced interest rule for {effective_date.isoformat()} with rate {value}")
        else:
            self._rules.insert(position, rule)
            logger.info(f"Added interest rule for {effective_date.isoformat()} with rate {value}")

        return rule

    def rule_on(self, day: date) -> Optional[InterestRule]:
        """The rule in force on day, if any"""
        position = bisect_right(self._dates(), day)
        if position == 0:
            return None
        return self._rules[position - 1]

    def rate_on(self, day: date) -> Decimal:
        """Annual percent rate in force on day; zero before the first rule"""
        rule = self.rule_on(day)
        if rule is None:
            return ZERO
        return rule.rate

    def change_dates(self, start: date, end: date) -> List[date]:
        """Effective dates inside (start, end], where the rate may change"""
        return [d for d in self._dates() if start < d <= end]

    def all_rules_ordered(self) -> List[InterestRule]:
        """All rules ascending by effective date"""
        return list(self._rules)
