"""
Household Ledger - Source Package

The shared-finance core of a household organiser: members, expense
categories and a ledger of expenses and payments, kept in an in-memory
store that mirrors a remote data source, plus the balance engine that
derives who owes the group and who is owed.

DESIGN PRINCIPLES:
1. Apply locally first, confirm remotely, roll back on failure
2. Every failure is surfaced the same way (OperationResult)
3. Balances are derived, never stored
4. Every write is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Household Ledger Team"
