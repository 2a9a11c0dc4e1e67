"""
Ledger Kernel - payment ledger and document-status reconciliation.

- Fixed-point money in integer minor units
- Pure status derivation (Pending / PartiallyPaid / Paid / Overdue)
- Atomic, document-locked payment writes
- Post-commit change notifications
"""

__version__ = "0.1.0"
