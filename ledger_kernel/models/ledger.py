"""
Ledger models -- shared shape of every document table and payment table.

Responsibility:
    ``DocumentMixin`` and ``PaymentMixin`` declare the columns that client
    invoices / client payments and supplier invoices / supplier payments
    have in common.  ``LedgerKind`` binds one concrete document model, one
    payment model and a party type together; the Ledger Store and the
    Reconciliation Engine are written once against a LedgerKind.

Architecture position:
    Kernel > Models.  Concrete tables live in ``ledger_modules.receivables.orm``
    and ``ledger_modules.payables.orm``.

Invariants enforced:
    - Amounts are BIGINT minor units (total_minor, amount_minor).
    - payment.document_id is NOT NULL with a foreign key: a payment cannot
      exist unattached, and a document cannot be deleted under its payments.
    - status holds a DocumentStatus value written only by the engine.
"""

from dataclasses import dataclass
from datetime import date
from typing import ClassVar
from uuid import UUID

from sqlalchemy import Date, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from ledger_kernel.db.types import CurrencyCode, MinorUnits, ShortCode, StatusCode
from ledger_kernel.domain.dtos import PayableDocument, Payment
from ledger_kernel.domain.status import DocumentStatus
from ledger_kernel.domain.values import Money
from ledger_kernel.models.party import PartyType


class DocumentMixin:
    """Columns of a payable document (invoice or supplier invoice)."""

    __ledger__: ClassVar[str]

    @declared_attr
    def party_id(cls) -> Mapped[UUID]:
        return mapped_column(ForeignKey("parties.id"), nullable=False, index=True)

    number: Mapped[ShortCode] = mapped_column(nullable=False, unique=True)
    total_minor: Mapped[MinorUnits]
    currency: Mapped[CurrencyCode]
    status: Mapped[StatusCode] = mapped_column(
        default=DocumentStatus.PENDING.value, index=True
    )
    issue_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)

    @property
    def total(self) -> Money:
        return Money.from_minor(self.total_minor, self.currency)

    def to_dto(self) -> PayableDocument:
        """Convert ORM model to frozen dataclass."""
        return PayableDocument(
            id=self.id,
            ledger=self.__ledger__,
            party_id=self.party_id,
            number=self.number,
            total=self.total,
            status=DocumentStatus(self.status),
            issue_date=self.issue_date,
            due_date=self.due_date,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.number}: {self.status}>"


class PaymentMixin:
    """Columns of a payment applied against one document."""

    __ledger__: ClassVar[str]
    __document_table__: ClassVar[str]

    @declared_attr
    def document_id(cls) -> Mapped[UUID]:
        return mapped_column(
            ForeignKey(f"{cls.__document_table__}.id"), nullable=False, index=True
        )

    @declared_attr
    def party_id(cls) -> Mapped[UUID]:
        return mapped_column(ForeignKey("parties.id"), nullable=False, index=True)

    amount_minor: Mapped[MinorUnits]
    currency: Mapped[CurrencyCode]
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def amount(self) -> Money:
        return Money.from_minor(self.amount_minor, self.currency)

    def to_dto(self) -> Payment:
        """Convert ORM model to frozen dataclass."""
        return Payment(
            id=self.id,
            ledger=self.__ledger__,
            document_id=self.document_id,
            party_id=self.party_id,
            amount=self.amount,
            payment_date=self.payment_date,
            method=self.method,
            reference=self.reference,
            notes=self.notes,
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.amount} -> {self.document_id}>"


@dataclass(frozen=True)
class LedgerKind:
    """
    Binding of a document table, a payment table and a party type.

    Two instances exist: ``RECEIVABLES`` (client invoices, client payments)
    and ``PAYABLES`` (supplier invoices, supplier payments).
    """

    name: str
    document_model: type
    payment_model: type
    party_type: PartyType

    def __str__(self) -> str:
        return self.name
