"""
ATM Banking Simulator

An in-memory account ledger with deposits, withdrawals, atomic transfers
and transaction history, driven by an interactive ATM console session.
All monetary values use Decimal precision.
"""

__version__ = "1.0.0"
