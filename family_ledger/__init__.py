"""
Family Ledger - Source Package

A shared household expense tracker for families and co-parents.
Members record expenses, decide who pays and whether the cost is
split, approve each other's entries and see who owes whom.

DESIGN PRINCIPLES:
1. Balances are informational - no money ever moves
2. Money is Decimal end to end, rounding only for display
3. Account context is always passed explicitly
4. Every state change is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Family Ledger Team"
