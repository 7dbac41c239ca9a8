"""
Custody Ledger

A custodial value ledger: deposits of a native value unit under a global
cap, per-depositor balances, and capped withdrawals that update state
before handing value back to the caller.
"""

__version__ = "1.0.0"
