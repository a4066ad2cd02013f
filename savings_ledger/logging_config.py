"""
Structured Logging Configuration Module

JSON (or plain text) log output for ledger operations. Ledger events carry
the account, transaction id or rule date they touched as top-level fields
so log lines can be filtered per account or per rule.
"""

import logging
import json
from datetime import date, datetime, timezone
from typing import Optional


TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Record attributes promoted to top-level JSON keys, in output order
LEDGER_FIELDS = ("action", "account_id", "txn_id", "effective_date")


class JSONFormatter(logging.Formatter):
    """One JSON object per line with the ledger fields present on the record"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in LEDGER_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value
        if getattr(record, 'details', None):
            log_entry['details'] = record.details

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO", logger_name: str = "savings_ledger",
                  log_format: str = "json") -> logging.Logger:
    """
    Attach a single stderr handler to the package logger.

    Module loggers (savings_ledger.ledger, savings_ledger.rates, ...) inherit
    it; calling again replaces the handler rather than adding another.
    """
    logger = logging.getLogger(logger_name)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    if log_format == "text":
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    else:
        handler.setFormatter(JSONFormatter())

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False

    return logger


def get_logger(name: str = "savings_ledger") -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               action: Optional[str] = None, account_id: Optional[str] = None,
               txn_id: Optional[str] = None, effective_date: Optional[date] = None,
               details: Optional[dict] = None):
    """
    Log a ledger event with structured fields.

    Args:
        logger: Logger instance
        level: Log level name (info, warning, ...)
        message: Human readable message
        action: Operation name, e.g. "record_transaction"
        account_id: Account the event touched
        txn_id: Transaction id assigned by the ledger
        effective_date: Effective date of the interest rule involved
        details: Any other values (amounts, rates) as a flat dict
    """
    levelno = getattr(logging, level.upper())
    if not logger.isEnabledFor(levelno):
        return

    record = logger.makeRecord(logger.name, levelno, __name__, 0, message, (), None)
    record.action = action
    record.account_id = account_id
    record.txn_id = txn_id
    record.effective_date = effective_date.isoformat() if effective_date else None
    record.details = details

    logger.handle(record)
