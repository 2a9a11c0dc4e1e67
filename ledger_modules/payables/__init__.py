"""
Payables Module.

Supplier invoices and the payments made against them.
"""

from ledger_modules.payables.orm import (
    PAYABLES,
    SupplierInvoiceModel,
    SupplierPaymentModel,
)
from ledger_modules.payables.service import PayablesService

__all__ = [
    "PAYABLES",
    "PayablesService",
    "SupplierInvoiceModel",
    "SupplierPaymentModel",
]
