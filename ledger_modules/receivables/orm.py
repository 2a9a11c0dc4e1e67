"""
Receivables ORM Models (``ledger_modules.receivables.orm``).

Responsibility
--------------
Client invoices and the client payments applied against them.  All
columns come from the kernel mixins; this module only names the tables
and binds them into the ``RECEIVABLES`` ledger kind.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``ledger_kernel``.
MUST NOT be imported by ``ledger_kernel`` (except through the ORM registry).
"""

from sqlalchemy import Index

from ledger_kernel.db.base import TrackedBase
from ledger_kernel.models.ledger import DocumentMixin, LedgerKind, PaymentMixin
from ledger_kernel.models.party import PartyType

LEDGER_NAME = "receivable"


class ClientInvoiceModel(DocumentMixin, TrackedBase):
    """
    ORM model for invoices issued to clients.

    Guarantees:
        - party_id FK to parties.id (a CLIENT party).
        - number is unique among client invoices.
    """

    __tablename__ = "client_invoices"
    __ledger__ = LEDGER_NAME


class ClientPaymentModel(PaymentMixin, TrackedBase):
    """
    ORM model for payments received from clients.

    Guarantees:
        - document_id FK to client_invoices.id, NOT NULL.
    """

    __tablename__ = "client_payments"
    __ledger__ = LEDGER_NAME
    __document_table__ = "client_invoices"

    __table_args__ = (
        Index("idx_client_payments_listing", "payment_date", "created_at"),
    )


RECEIVABLES = LedgerKind(
    name=LEDGER_NAME,
    document_model=ClientInvoiceModel,
    payment_model=ClientPaymentModel,
    party_type=PartyType.CLIENT,
)
