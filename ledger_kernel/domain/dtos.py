"""
DTOs -- frozen data transfer objects returned by the ledger.

Responsibility:
    Immutable views of documents and payments handed to callers.  ORM
    instances never leave a transaction; these do.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any
from uuid import UUID

from ledger_kernel.domain.status import DocumentStatus
from ledger_kernel.domain.values import Money


@dataclass(frozen=True)
class PayableDocument:
    """An invoice (receivable) or supplier invoice (payable)."""

    id: UUID
    ledger: str
    party_id: UUID
    number: str
    total: Money
    status: DocumentStatus
    issue_date: date | None = None
    due_date: date | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "ledger": self.ledger,
            "party_id": str(self.party_id),
            "number": self.number,
            "total": str(self.total.amount),
            "currency": self.total.currency.code,
            "status": self.status.value,
            "issue_date": self.issue_date.isoformat() if self.issue_date else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
        }


@dataclass(frozen=True)
class Payment:
    """A payment applied against exactly one document."""

    id: UUID
    ledger: str
    document_id: UUID
    party_id: UUID
    amount: Money
    payment_date: date
    method: str | None = None
    reference: str | None = None
    notes: str | None = None
    created_at: datetime | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "ledger": self.ledger,
            "document_id": str(self.document_id),
            "party_id": str(self.party_id),
            "amount": str(self.amount.amount),
            "currency": self.amount.currency.code,
            "payment_date": self.payment_date.isoformat(),
            "method": self.method,
            "reference": self.reference,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class PaymentView:
    """A payment joined with its party name and document number, for listings."""

    payment: Payment
    party_name: str | None
    party_company: str | None
    document_number: str | None

    def to_payload(self) -> dict[str, Any]:
        payload = self.payment.to_payload()
        payload.update(
            party_name=self.party_name,
            party_company=self.party_company,
            document_number=self.document_number,
        )
        return payload


@dataclass(frozen=True)
class DocumentBalance:
    """Paid / remaining figures of a document, as read by the PDF and UI layers."""

    document_id: UUID
    total: Money
    paid: Money
    status: DocumentStatus
    payment_count: int

    @property
    def remaining(self) -> Money:
        return self.total - self.paid

    def to_payload(self) -> dict[str, Any]:
        return {
            "document_id": str(self.document_id),
            "total": str(self.total.amount),
            "paid": str(self.paid.amount),
            "remaining": str(self.remaining.amount),
            "currency": self.total.currency.code,
            "status": self.status.value,
            "payment_count": self.payment_count,
        }
