"""
Receivables Module.

Client invoices and the payments received against them.
"""

from ledger_modules.receivables.orm import (
    RECEIVABLES,
    ClientInvoiceModel,
    ClientPaymentModel,
)
from ledger_modules.receivables.service import ReceivablesService

__all__ = [
    "RECEIVABLES",
    "ClientInvoiceModel",
    "ClientPaymentModel",
    "ReceivablesService",
]
