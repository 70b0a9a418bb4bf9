"""
Yatra Ledger - Source Package

Trip and expense tracking for travelers. Expense records arrive as a live
stream; the engine keeps trip analytics and reminders in step with it.

DESIGN PRINCIPLES:
1. Storage owns the records, the engine only derives from them
2. Every derived value is recomputed from a full snapshot
3. No fabricated financial data
4. Every step must be auditable
5. Collaborators (storage, notifications, images) are swappable
"""

__version__ = "1.0.0"
__author__ = "Yatra Ledger Team"
