"""
Savings Ledger

A single-currency account ledger with dated interest rules, piecewise
interest accrual and monthly statements. All amounts use Decimal.
"""

__version__ = "1.0.0"
