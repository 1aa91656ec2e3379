"""
Budget Ledger - Source Package

The balance-consistency core of a personal finance application:
a ledger engine that applies transaction mutations atomically and
a materializer that turns recurring templates into transactions.

DESIGN PRINCIPLES:
1. A balance only ever moves together with the transaction that moves it
2. Fail early, fail visibly: a refused operation changes nothing
3. No silent corrections: discrepancies are reported, adjustments are transactions
4. Every mutation must be auditable
"""

__version__ = "1.0.0"
__author__ = "Budget Ledger Team"
