"""
Test suite for ledger module

Tests transaction recording, the non-negative balance invariant, transaction
id allocation and balance/range queries.
"""

import pytest
from decimal import Decimal
from datetime import date

from savings_ledger.errors import LedgerError, LedgerErrorKind, StorageUnavailableError
from savings_ledger.ledger import (
    Ledger, Transaction, TransactionType, format_transaction_id, MAX_DAILY_SEQUENCE
)
from savings_ledger.storage import InMemoryStorage


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def ledger(storage):
    return Ledger(storage)


class TestTransaction:
    """Test the immutable transaction record"""

    def test_valid_transaction(self):
        """Test creation and derived properties"""
        txn = Transaction(
            txn_id="20230601-02",
            account_id="AC001",
            txn_date=date(2023, 6, 1),
            txn_type=TransactionType.WITHDRAWAL,
            amount=Decimal('25.50')
        )

        assert txn.sequence == 2
        assert txn.signed_amount == Decimal('-25.50')

    def test_transaction_is_immutable(self):
        """Test that a recorded transaction cannot be changed"""
        txn = Transaction("20230601-01", "AC001", date(2023, 6, 1), TransactionType.DEPOSIT, Decimal('10.00'))

        with pytest.raises(AttributeError):
            txn.amount = Decimal('20.00')

    def test_non_positive_amount_rejected(self):
        """Test direct construction guards"""
        with pytest.raises(ValueError, match="must be positive"):
            Transaction("20230601-01", "AC001", date(2023, 6, 1), TransactionType.DEPOSIT, Decimal('0'))

        with pytest.raises(ValueError, match="2 decimal places"):
            Transaction("20230601-01", "AC001", date(2023, 6, 1), TransactionType.DEPOSIT, Decimal('1.001'))

    def test_dict_round_trip(self):
        """Test storage serialization keeps every field"""
        txn = Transaction("20230601-01", "AC001", date(2023, 6, 1), TransactionType.DEPOSIT, Decimal('10.00'))

        data = txn.to_dict()
        assert data['amount'] == "10.00"
        assert data['txn_type'] == "D"
        assert Transaction.from_dict(data) == txn

    def test_transaction_type_parse(self):
        """Test parsing of type codes"""
        assert TransactionType.parse("d") == TransactionType.DEPOSIT
        assert TransactionType.parse(" W ") == TransactionType.WITHDRAWAL
        assert TransactionType.parse(TransactionType.DEPOSIT) == TransactionType.DEPOSIT
        assert TransactionType.parse("X") is None
        assert TransactionType.parse(None) is None


class TestTransactionIds:
    """Test YYYYMMdd-NN id allocation"""

    def test_format(self):
        assert format_transaction_id(date(2023, 1, 1), 1) == "20230101-01"
        assert format_transaction_id(date(2023, 12, 31), 12) == "20231231-12"

    def test_same_day_sequence(self, ledger):
        """Test two deposits on one day get consecutive ids"""
        first = ledger.record("A", date(2023, 1, 1), "D", "100.00")
        second = ledger.record("A", date(2023, 1, 1), "D", "50.00")

        assert first.txn_id == "20230101-01"
        assert second.txn_id == "20230101-02"

    def test_sequence_independent_across_accounts_and_dates(self, ledger):
        """Test numbering restarts per account and per date"""
        ledger.record("A", date(2023, 1, 1), "D", "100.00")
        other_account = ledger.record("B", date(2023, 1, 1), "D", "100.00")
        other_date = ledger.record("A", date(2023, 1, 2), "D", "100.00")

        assert other_account.txn_id == "20230101-01"
        assert other_date.txn_id == "20230102-01"

    def test_sequence_exhausted(self, ledger):
        """Test the two-digit sequence limit"""
        for _ in range(MAX_DAILY_SEQUENCE):
            assert isinstance(ledger.record("A", date(2023, 1, 1), "D", "1.00"), Transaction)

        result = ledger.record("A", date(2023, 1, 1), "D", "1.00")

        assert isinstance(result, LedgerError)
        assert result.kind == LedgerErrorKind.SEQUENCE_EXHAUSTED
        assert len(ledger.transactions("A")) == MAX_DAILY_SEQUENCE


class TestLedgerRecord:
    """Test recording rules and error kinds"""

    def test_deposit_creates_account(self, ledger, storage):
        """Test that the first deposit opens the account"""
        assert not ledger.account_exists("AC001")

        txn = ledger.record("AC001", date(2023, 6, 1), TransactionType.DEPOSIT, Decimal('100'))

        assert isinstance(txn, Transaction)
        assert txn.amount == Decimal('100.00')
        assert ledger.account_exists("AC001")
        assert ledger.balance("AC001") == Decimal('100.00')
        assert len(storage.load_transactions("AC001")) == 1

    @pytest.mark.parametrize("amount", [
        "0", "-25", "abc", "1.001", "NaN", None, "100000000000000000000000000", "1e26"
    ])
    def test_invalid_amount(self, ledger, amount):
        """Test that bad amounts are rejected without side effects"""
        result = ledger.record("AC001", date(2023, 6, 1), "D", amount)

        assert isinstance(result, LedgerError)
        assert result.kind == LedgerErrorKind.INVALID_AMOUNT
        assert not ledger.account_exists("AC001")

    def test_largest_representable_amount(self, ledger):
        result = ledger.record("AC001", date(2023, 6, 1), "D", "99999999999999999999999999.99")

        assert isinstance(result, Transaction)
        assert result.amount == Decimal('99999999999999999999999999.99')

    def test_invalid_type(self, ledger):
        result = ledger.record("AC001", date(2023, 6, 1), "X", "10.00")

        assert isinstance(result, LedgerError)
        assert result.kind == LedgerErrorKind.INVALID_TRANSACTION_TYPE

    def test_first_transaction_withdrawal(self, ledger):
        """Test that a fresh account cannot start with a withdrawal"""
        result = ledger.record("AC001", date(2023, 6, 1), "W", "10.00")

        assert isinstance(result, LedgerError)
        assert result.kind == LedgerErrorKind.FIRST_TRANSACTION_WITHDRAWAL
        assert ledger.balance("AC001") == Decimal('0')
        assert ledger.transactions("AC001") == []

    def test_first_transaction_withdrawal_on_ensured_account(self, ledger):
        """Test an empty ensured account still has no first transaction"""
        ledger.ensure_account("AC001")

        result = ledger.record("AC001", date(2023, 6, 1), "W", "10.00")

        assert result.kind == LedgerErrorKind.FIRST_TRANSACTION_WITHDRAWAL

    def test_insufficient_funds(self, ledger):
        """Test that withdrawals cannot overdraw"""
        ledger.record("AC001", date(2023, 6, 1), "D", "100.00")

        result = ledger.record("AC001", date(2023, 6, 2), "W", "100.01")

        assert isinstance(result, LedgerError)
        assert result.kind == LedgerErrorKind.INSUFFICIENT_FUNDS
        assert ledger.balance("AC001") == Decimal('100.00')
        assert len(ledger.transactions("AC001")) == 1

    def test_withdraw_entire_balance(self, ledger):
        ledger.record("AC001", date(2023, 6, 1), "D", "100.00")

        result = ledger.record("AC001", date(2023, 6, 2), "W", "100.00")

        assert isinstance(result, Transaction)
        assert ledger.balance("AC001") == Decimal('0.00')

    def test_backdated_withdrawal_cannot_overdraw_history(self, ledger):
        """Test that a back-dated withdrawal is checked against the balance on its date"""
        ledger.record("AC001", date(2023, 6, 1), "D", "50.00")
        ledger.record("AC001", date(2023, 6, 20), "D", "100.00")

        result = ledger.record("AC001", date(2023, 6, 10), "W", "80.00")

        assert isinstance(result, LedgerError)
        assert result.kind == LedgerErrorKind.INSUFFICIENT_FUNDS

    def test_backdated_withdrawal_cannot_break_later_balances(self, ledger):
        """Test that later running balances stay non-negative"""
        ledger.record("AC001", date(2023, 6, 1), "D", "100.00")
        ledger.record("AC001", date(2023, 6, 20), "W", "90.00")

        result = ledger.record("AC001", date(2023, 6, 10), "W", "20.00")

        assert result.kind == LedgerErrorKind.INSUFFICIENT_FUNDS

    def test_backdated_transaction_is_ordered_by_date(self, ledger):
        """Test insertion keeps date then sequence order"""
        ledger.record("AC001", date(2023, 6, 20), "D", "10.00")
        ledger.record("AC001", date(2023, 6, 1), "D", "20.00")
        ledger.record("AC001", date(2023, 6, 1), "D", "30.00")

        ids = [t.txn_id for t in ledger.transactions("AC001")]
        assert ids == ["20230601-01", "20230601-02", "20230620-01"]

    def test_storage_failure_leaves_ledger_unchanged(self, ledger, storage):
        """Test that a storage fault is raised and nothing is appended"""
        ledger.record("AC001", date(2023, 6, 1), "D", "100.00")
        storage.close()

        with pytest.raises(StorageUnavailableError):
            ledger.record("AC001", date(2023, 6, 2), "D", "10.00")

        assert ledger.balance("AC001") == Decimal('100.00')
        assert len(ledger.transactions("AC001")) == 1

    def test_balance_invariant_over_mixed_sequence(self, ledger):
        """Test balance equals deposits minus withdrawals and never dips below zero"""
        operations = [
            ("D", "100.00"), ("W", "30.00"), ("W", "80.00"), ("D", "5.25"),
            ("W", "75.25"), ("W", "0.01"), ("D", "12.00"), ("W", "12.00"),
        ]
        deposits = Decimal('0')
        withdrawals = Decimal('0')
        for day, (kind, amount) in enumerate(operations, start=1):
            result = ledger.record("AC001", date(2023, 7, day), kind, amount)
            if isinstance(result, Transaction):
                if kind == "D":
                    deposits += Decimal(amount)
                else:
                    withdrawals += Decimal(amount)
            assert ledger.balance("AC001") >= 0

        assert ledger.balance("AC001") == deposits - withdrawals
        assert ledger.balance("AC001") == Decimal('0.00')


class TestLedgerQueries:
    """Test balance and range queries"""

    @pytest.fixture
    def populated(self, ledger):
        ledger.record("AC001", date(2023, 5, 31), "D", "200.00")
        ledger.record("AC001", date(2023, 6, 1), "D", "100.00")
        ledger.record("AC001", date(2023, 6, 15), "W", "50.00")
        ledger.record("AC001", date(2023, 6, 15), "D", "10.00")
        ledger.record("AC001", date(2023, 7, 1), "W", "60.00")
        return ledger

    def test_balance_as_of(self, populated):
        assert populated.balance("AC001", date(2023, 5, 30)) == Decimal('0')
        assert populated.balance("AC001", date(2023, 5, 31)) == Decimal('200.00')
        assert populated.balance("AC001", date(2023, 6, 15)) == Decimal('260.00')
        assert populated.balance("AC001") == Decimal('200.00')

    def test_balance_before(self, populated):
        assert populated.balance_before("AC001", date(2023, 6, 1)) == Decimal('200.00')
        assert populated.balance_before("AC001", date(2023, 5, 31)) == Decimal('0')

    def test_unknown_account_balance(self, ledger):
        assert ledger.balance("NOPE") == Decimal('0')

    def test_transactions_in_range_inclusive(self, populated):
        """Test inclusive bounds and date/sequence ordering"""
        txns = populated.transactions_in_range("AC001", date(2023, 6, 1), date(2023, 6, 30))

        assert [t.txn_id for t in txns] == ["20230601-01", "20230615-01", "20230615-02"]

    def test_transactions_in_range_empty(self, populated, ledger):
        assert populated.transactions_in_range("AC001", date(2023, 8, 1), date(2023, 8, 31)) == []
        assert ledger.transactions_in_range("NOPE", date(2023, 8, 1), date(2023, 8, 31)) == []

    def test_running_balances(self, populated):
        """Test running balances start from the carried-in balance"""
        rows = populated.running_balances("AC001", date(2023, 6, 1), date(2023, 6, 30))

        assert [balance for _, balance in rows] == [
            Decimal('300.00'), Decimal('250.00'), Decimal('260.00')
        ]

    def test_ensure_account_idempotent(self, ledger, storage):
        ledger.ensure_account("AC009")
        ledger.ensure_account("AC009")

        assert ledger.account_exists("AC009")
        assert storage.account_exists("AC009")
        assert ledger.account_ids() == ["AC009"]

    def test_hydrates_from_storage(self, populated, storage):
        """Test a new ledger over the same storage sees the same history"""
        reloaded = Ledger(storage)

        assert reloaded.balance("AC001") == Decimal('200.00')
        assert [t.txn_id for t in reloaded.transactions("AC001")] == [
            t.txn_id for t in populated.transactions("AC001")
        ]
        next_txn = reloaded.record("AC001", date(2023, 6, 15), "D", "1.00")
        assert next_txn.txn_id == "20230615-03"
