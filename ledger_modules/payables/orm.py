"""
Payables ORM Models (``ledger_modules.payables.orm``).

Responsibility
--------------
Supplier invoices and the payments made against them.  Same shape as the
receivables tables; bound into the ``PAYABLES`` ledger kind.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``ledger_kernel``.
"""

from sqlalchemy import Index

from ledger_kernel.db.base import TrackedBase
from ledger_kernel.models.ledger import DocumentMixin, LedgerKind, PaymentMixin
from ledger_kernel.models.party import PartyType

LEDGER_NAME = "payable"


class SupplierInvoiceModel(DocumentMixin, TrackedBase):
    """ORM model for invoices received from suppliers."""

    __tablename__ = "supplier_invoices"
    __ledger__ = LEDGER_NAME


class SupplierPaymentModel(PaymentMixin, TrackedBase):
    """ORM model for payments made to suppliers."""

    __tablename__ = "supplier_payments"
    __ledger__ = LEDGER_NAME
    __document_table__ = "supplier_invoices"

    __table_args__ = (
        Index("idx_supplier_payments_listing", "payment_date", "created_at"),
    )


PAYABLES = LedgerKind(
    name=LEDGER_NAME,
    document_model=SupplierInvoiceModel,
    payment_model=SupplierPaymentModel,
    party_type=PartyType.SUPPLIER,
)
