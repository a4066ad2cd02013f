"""
Console front end

Interactive text menu over a LedgerSystem: input transactions, define
interest rules and print monthly statements. Streams are injectable so the
menu can be driven from tests.
"""

from datetime import date, datetime
from typing import List, Optional, TextIO
import sys

from .config import get_config
from .errors import LedgerError, StorageUnavailableError
from .ledger import Transaction
from .logging_config import get_logger, setup_logging
from .money import format_amount
from .rates import InterestRule
from .statements import Statement
from .system import LedgerSystem


logger = get_logger(__name__)

DATE_FORMAT = "%Y%m%d"


def parse_date(value: str) -> Optional[date]:
    """Parse a YYYYMMdd date; None if malformed"""
    if len(value) != 8 or not value.isdigit():
        return None
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        return None


def format_date(value: date) -> str:
    return f"{value.year:04d}{value.month:02d}{value.day:02d}"


def render_transactions(account_id: str, transactions: List[Transaction]) -> List[str]:
    lines = [
        f"Account: {account_id}",
        "| Date     | Txn Id      | Type | Amount |",
    ]
    for t in transactions:
        lines.append(
            f"| {format_date(t.txn_date)} | {t.txn_id:<11} | {t.txn_type.value:<4} | {format_amount(t.amount):>6} |"
        )
    return lines


def render_rules(rules: List[InterestRule]) -> List[str]:
    lines = [
        "Interest rules:",
        "| Date     | RuleId | Rate (%) |",
    ]
    for rule in rules:
        lines.append(
            f"| {format_date(rule.effective_date)} | {(rule.rule_id or ''):<6} | {format_amount(rule.rate):>8} |"
        )
    return lines


def render_statement(statement: Statement) -> List[str]:
    lines = [
        f"Account: {statement.account_id}",
        "| Date     | Txn Id      | Type | Amount | Balance |",
    ]
    for row in statement.rows:
        lines.append(
            f"| {format_date(row.row_date)} | {(row.txn_id or ''):<11} | {row.row_type.value:<4} "
            f"| {format_amount(row.amount):>6} | {format_amount(row.balance):>7} |"
        )
    return lines


class ConsoleApp:
    """Text menu loop"""

    def __init__(self, system: LedgerSystem, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None):
        self.system = system
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout

    def _write(self, *lines: str) -> None:
        for line in lines:
            print(line, file=self.stdout)

    def _prompt(self) -> Optional[str]:
        """Read one line; None at end of input"""
        self.stdout.write("> ")
        self.stdout.flush()
        line = self.stdin.readline()
        if line == "":
            return None
        return line.strip()

    def run(self) -> None:
        greeting = "Welcome to the savings ledger! What would you like to do?"
        while True:
            self._write(
                greeting,
                "[T] Input transactions",
                "[I] Define interest rules",
                "[P] Print statement",
                "[Q] Quit",
            )
            choice = self._prompt()
            if choice is None:
                self.quit()
                return
            choice = choice.upper()

            try:
                if choice == "T":
                    self.input_transactions()
                elif choice == "I":
                    self.define_interest_rules()
                elif choice == "P":
                    self.print_statement()
                elif choice == "Q":
                    self.quit()
                    return
                elif choice:
                    self._write("Invalid input. Please try again.")
            except StorageUnavailableError as e:
                logger.error(f"Storage unavailable during menu choice {choice}: {e}")
                self._write(f"Storage is unavailable, nothing was saved: {e}")
            greeting = "Is there anything else you'd like to do?"

    def input_transactions(self) -> None:
        while True:
            self._write(
                "Please enter transaction details in <Date> <Account> <Type> <Amount> format",
                "(or enter blank to go back to main menu):",
            )
            line = self._prompt()
            if not line:
                return

            parts = line.split()
            if len(parts) != 4:
                self._write("Invalid input format. Please use <Date> <Account> <Type> <Amount>.")
                continue
            txn_date = parse_date(parts[0])
            if txn_date is None:
                self._write("Invalid date format. Please use YYYYMMdd format.")
                continue
            account_id = parts[1]

            result = self.system.record_transaction(account_id, txn_date, parts[2], parts[3])
            if isinstance(result, LedgerError):
                self._write(result.message)
                continue
            self._write(*render_transactions(account_id, self.system.ledger.transactions(account_id)))

    def define_interest_rules(self) -> None:
        while True:
            self._write(
                "Please enter interest rules details in <Date> <RuleId> <Rate in %> format",
                "(or enter blank to go back to main menu):",
            )
            line = self._prompt()
            if not line:
                return

            parts = line.split()
            if len(parts) != 3:
                self._write("Invalid input format. Please use <Date> <RuleId> <Rate in %>.")
                continue
            effective_date = parse_date(parts[0])
            if effective_date is None:
                self._write("Invalid date format. Please use YYYYMMdd format.")
                continue

            in_force = self.system.rules.rule_on(effective_date)
            replacing = in_force is not None and in_force.effective_date == effective_date

            result = self.system.define_interest_rule(effective_date, parts[2], rule_id=parts[1])
            if isinstance(result, LedgerError):
                self._write(result.message)
                continue
            if replacing:
                self._write("An interest rule already exists for this date. The latest rule will be kept.")
            self._write(*render_rules(self.system.interest_rules()))

    def print_statement(self) -> None:
        while True:
            self._write(
                "Please enter account and month to generate the statement <Account> <Year><Month>",
                "(or enter blank to go back to main menu):",
            )
            line = self._prompt()
            if not line:
                return

            parts = line.split()
            if len(parts) != 2 or len(parts[1]) != 6 or not parts[1].isdigit():
                self._write("Invalid input format. Please use <Account> <YYYYMM>.")
                continue

            result = self.system.build_statement(parts[0], int(parts[1][:4]), int(parts[1][4:]))
            if isinstance(result, LedgerError):
                self._write(result.message)
                continue
            self._write(*render_statement(result))
            return

    def quit(self) -> None:
        self._write(
            "Thank you for banking with us.",
            "Have a nice day!",
        )


def main() -> int:
    """Run the console against a system built from configuration"""
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format)
    system = LedgerSystem(config=config)
    try:
        ConsoleApp(system).run()
    except KeyboardInterrupt:
        print()
    finally:
        system.close()
    return 0
