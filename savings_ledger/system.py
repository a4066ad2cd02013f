"""
Ledger system wiring.

Builds storage, ledger, rule table, accrual engine and statement builder
once and hands them to the console and HTTP front ends.
"""

from datetime import date
from typing import List, Optional, Union

from .config import LedgerConfig, get_config
from .interest import AccrualEngine
from .ledger import Ledger, Transaction, TransactionType
from .errors import LedgerError
from .logging_config import get_logger, log_action
from .rates import InterestRule, InterestRuleTable
from .statements import Statement, StatementBuilder
from .storage import LedgerStorage, create_storage


logger = get_logger(__name__)


class LedgerSystem:
    """Ledger components initialized against one storage backend"""

    def __init__(self, storage: Optional[LedgerStorage] = None, config: Optional[LedgerConfig] = None):
        self.config = config or get_config()
        if storage is None:
            storage = create_storage(self.config.storage_backend, self.config.sqlite_path)
        self.storage = storage

        self.ledger = Ledger(self.storage)
        self.rules = InterestRuleTable(self.storage)
        self.accrual_engine = AccrualEngine(self.ledger, self.rules, self.config.day_count_basis)
        self.statement_builder = StatementBuilder(self.ledger, self.accrual_engine)

    def record_transaction(
        self,
        account_id: str,
        txn_date: date,
        txn_type: Union[TransactionType, str],
        amount
    ) -> Union[Transaction, LedgerError]:
        result = self.ledger.record(account_id, txn_date, txn_type, amount)
        if isinstance(result, Transaction):
            log_action(
                logger, "info", "Transaction recorded",
                action="record_transaction", account_id=account_id, txn_id=result.txn_id,
                details={"type": result.txn_type.value, "amount": str(result.amount)}
            )
        return result

    def define_interest_rule(
        self,
        effective_date: date,
        rate,
        rule_id: Optional[str] = None
    ) -> Union[InterestRule, LedgerError]:
        result = self.rules.upsert(effective_date, rate, rule_id)
        if isinstance(result, InterestRule):
            log_action(
                logger, "info", "Interest rule defined",
                action="define_interest_rule", effective_date=effective_date,
                details={"rate": str(result.rate), "rule_id": result.rule_id}
            )
        return result

    def interest_rules(self) -> List[InterestRule]:
        return self.rules.all_rules_ordered()

    def build_statement(self, account_id: str, year: int, month: int) -> Union[Statement, LedgerError]:
        return self.statement_builder.build(account_id, year, month)

    def close(self) -> None:
        self.storage.close()
