"""
Payment query selector.

Read-only listings of payments and per-document balances for one ledger.

Key design decisions:
- Returns DTOs (PaymentView, DocumentBalance), not ORM models
- Listings are ordered newest first: payment_date DESC, created_at DESC
- Party name and document number are joined in, so the UI can render a
  payment row without a second lookup
- Balances are computed from the payment rows, never from a stored total
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import DocumentBalance, PaymentView
from ledger_kernel.domain.status import DocumentStatus
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import DocumentNotFoundError
from ledger_kernel.models.ledger import LedgerKind
from ledger_kernel.models.party import Party
from ledger_kernel.selectors.base import BaseSelector


class PaymentSelector(BaseSelector):
    """Listings and balances over one ledger kind."""

    def __init__(self, session: Session, kind: LedgerKind):
        super().__init__(session)
        self.kind = kind
        self._documents = kind.document_model
        self._payments = kind.payment_model

    def _listing(self):
        payments = self._payments
        documents = self._documents
        return (
            select(payments, Party.name, Party.company, documents.number)
            .outerjoin(Party, payments.party_id == Party.id)
            .outerjoin(documents, payments.document_id == documents.id)
            .order_by(payments.payment_date.desc(), payments.created_at.desc())
        )

    def _views(self, stmt) -> list[PaymentView]:
        return [
            PaymentView(
                payment=row[0].to_dto(),
                party_name=row[1],
                party_company=row[2],
                document_number=row[3],
            )
            for row in self.session.execute(stmt).all()
        ]

    def list_payments(self) -> list[PaymentView]:
        """Every payment of this ledger."""
        return self._views(self._listing())

    def list_for_document(self, document_id: UUID) -> list[PaymentView]:
        return self._views(
            self._listing().where(self._payments.document_id == document_id)
        )

    def list_for_party(self, party_id: UUID) -> list[PaymentView]:
        return self._views(
            self._listing().where(self._payments.party_id == party_id)
        )

    def get_balance(self, document_id: UUID) -> DocumentBalance:
        """
        Total, paid and status of one document.

        Raises:
            DocumentNotFoundError: If the document does not exist.
        """
        document = self.session.get(self._documents, document_id)
        if document is None:
            raise DocumentNotFoundError(str(document_id), self.kind.name)

        paid_minor, count = self.session.execute(
            select(
                func.coalesce(func.sum(self._payments.amount_minor), 0),
                func.count(self._payments.id),
            ).where(self._payments.document_id == document_id)
        ).one()

        return DocumentBalance(
            document_id=document.id,
            total=document.total,
            paid=Money.from_minor(int(paid_minor), document.currency),
            status=DocumentStatus(document.status),
            payment_count=int(count),
        )
