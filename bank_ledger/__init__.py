"""
Ledger Engine

Named accounts with non-negative balances, an append-only transaction log
and an error journal that survives rolled-back operations. All amounts use
Decimal with two decimal places.
"""

__version__ = "1.0.0"
