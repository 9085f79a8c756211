"""
SettleUp - Shared Expense Ledger

Tracks who owes whom between friends: lending, borrowing and split bills,
with balances derived from the stored transactions.

DESIGN PRINCIPLES:
1. One stored record per logical transaction, two consistent views of it
2. Balances are always recomputed, never cached
3. Validate before mutating
4. Every change is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "SettleUp Team"
