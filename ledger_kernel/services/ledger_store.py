"""
LedgerStore -- document-scoped persistence of documents and payments.

Responsibility:
    Reads and writes one ledger (receivables or payables) inside the
    caller's transaction.  Written once against a ``LedgerKind``; the
    concrete tables come from the kind.

Architecture position:
    Kernel > Services.  Used only by ReconciliationEngine, which owns the
    transaction.  Flush-only (see BaseService).

Invariants enforced:
    - ``get_document(for_update=True)`` / ``lock_documents`` take row locks
      BEFORE the payment sum is read, so the sum cannot change underneath
      the caller until it commits.
    - Multiple documents are always locked in ascending id order.
    - ``sum_payments`` is computed in SQL over integer minor units.

Failure modes:
    - DocumentNotFoundError / PaymentNotFoundError for unknown ids.
    - DuplicateDocumentNumberError when an insert collides with a document
      number committed by a concurrent transaction.
"""

from datetime import date
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import PayableDocument, Payment
from ledger_kernel.domain.status import DocumentStatus
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import (
    DocumentNotFoundError,
    DuplicateDocumentNumberError,
    PaymentNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.ledger import LedgerKind
from ledger_kernel.services.base import BaseService

logger = get_logger("services.ledger_store")

_UPDATABLE_PAYMENT_FIELDS = frozenset({
    "document_id",
    "party_id",
    "amount_minor",
    "payment_date",
    "method",
    "reference",
    "notes",
    "currency",
    "updated_by_id",
})


class LedgerStore(BaseService):
    """
    Persistence for one ledger kind.

    Contract:
        Every method runs inside the session's current transaction and
        only flushes.  Returned values are frozen DTOs, never ORM rows.
    """

    def __init__(self, session: Session, kind: LedgerKind):
        super().__init__(session)
        self.kind = kind
        self._documents = kind.document_model
        self._payments = kind.payment_model

    # =========================================================================
    # Documents
    # =========================================================================

    def _load_document(self, document_id: UUID, for_update: bool = False):
        stmt = select(self._documents).where(self._documents.id == document_id)
        if for_update:
            stmt = stmt.with_for_update()
        row = self.session.execute(stmt).scalar_one_or_none()
        if row is None:
            raise DocumentNotFoundError(str(document_id), self.kind.name)
        return row

    def get_document(self, document_id: UUID, for_update: bool = False) -> PayableDocument:
        """Load a document, optionally taking its row lock."""
        return self._load_document(document_id, for_update).to_dto()

    def lock_documents(self, document_ids: Iterable[UUID]) -> dict[UUID, PayableDocument]:
        """
        Lock several documents in ascending id order.

        Raises DocumentNotFoundError for the first unknown id.
        """
        locked: dict[UUID, PayableDocument] = {}
        for document_id in sorted(set(document_ids), key=str):
            locked[document_id] = self.get_document(document_id, for_update=True)
        return locked

    def insert_document(
        self,
        party_id: UUID,
        number: str,
        total: Money,
        status: DocumentStatus,
        issue_date: date | None = None,
        due_date: date | None = None,
        actor_id: UUID | None = None,
    ) -> PayableDocument:
        row = self._documents(
            party_id=party_id,
            number=number,
            total_minor=total.minor_units,
            currency=total.currency.code,
            status=status.value,
            issue_date=issue_date,
            due_date=due_date,
            created_by_id=actor_id,
        )
        # Savepoint so a concurrent insert of the same number can be
        # recognised without aborting the caller's transaction.
        savepoint = self.session.begin_nested()
        try:
            self.session.add(row)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            if self.document_number_exists(number):
                logger.warning(
                    "document_number_race_lost",
                    extra={"number": number, "ledger": self.kind.name},
                )
                raise DuplicateDocumentNumberError(number, self.kind.name) from None
            raise
        return row.to_dto()

    def set_document_status(
        self,
        document_id: UUID,
        status: DocumentStatus,
        actor_id: UUID | None = None,
    ) -> None:
        row = self._load_document(document_id)
        row.status = status.value
        if actor_id is not None:
            row.updated_by_id = actor_id
        self.session.flush()

    def document_number_exists(self, number: str) -> bool:
        stmt = select(self._documents.id).where(self._documents.number == number)
        return self.session.execute(stmt).first() is not None

    def list_open_document_ids(self) -> list[UUID]:
        """Ids of every document that is not fully paid."""
        stmt = (
            select(self._documents.id)
            .where(self._documents.status != DocumentStatus.PAID.value)
            .order_by(self._documents.id)
        )
        return list(self.session.execute(stmt).scalars())

    # =========================================================================
    # Payments
    # =========================================================================

    def _load_payment(self, payment_id: UUID, for_update: bool = False):
        stmt = select(self._payments).where(self._payments.id == payment_id)
        if for_update:
            stmt = stmt.with_for_update()
        row = self.session.execute(stmt).scalar_one_or_none()
        if row is None:
            raise PaymentNotFoundError(str(payment_id), self.kind.name)
        return row

    def get_payment(self, payment_id: UUID, for_update: bool = False) -> Payment:
        return self._load_payment(payment_id, for_update).to_dto()

    def sum_payments(
        self,
        document_id: UUID,
        currency: str,
        excluding_payment_id: UUID | None = None,
    ) -> Money:
        """
        Total paid against a document.

        ``excluding_payment_id`` leaves one payment out, so an update can
        compute "paid by the other payments" without counting the payment
        being modified against itself.
        """
        stmt = select(func.coalesce(func.sum(self._payments.amount_minor), 0)).where(
            self._payments.document_id == document_id
        )
        if excluding_payment_id is not None:
            stmt = stmt.where(self._payments.id != excluding_payment_id)
        minor = self.session.execute(stmt).scalar_one()
        return Money.from_minor(int(minor), currency)

    def insert_payment(
        self,
        document: PayableDocument,
        amount: Money,
        payment_date: date,
        method: str | None = None,
        reference: str | None = None,
        notes: str | None = None,
        actor_id: UUID | None = None,
    ) -> Payment:
        row = self._payments(
            document_id=document.id,
            party_id=document.party_id,
            amount_minor=amount.minor_units,
            currency=amount.currency.code,
            payment_date=payment_date,
            method=method,
            reference=reference,
            notes=notes,
            created_by_id=actor_id,
        )
        self.session.add(row)
        self.session.flush()
        logger.debug(
            "payment_row_inserted",
            extra={"payment_id": str(row.id), "document_id": str(document.id)},
        )
        return row.to_dto()

    def update_payment(self, payment_id: UUID, **fields: Any) -> Payment:
        """
        Overwrite columns of a payment row.

        Only payment columns may be written; ``id`` is fixed.  A payment
        moved to another document takes that document's currency.
        """
        unknown = set(fields) - _UPDATABLE_PAYMENT_FIELDS
        if unknown:
            raise ValueError(f"Cannot update payment fields: {sorted(unknown)}")
        row = self._load_payment(payment_id)
        for name, value in fields.items():
            setattr(row, name, value)
        self.session.flush()
        return row.to_dto()

    def delete_payment(self, payment_id: UUID) -> UUID:
        """Delete a payment row and return the document it was applied to."""
        row = self._load_payment(payment_id)
        document_id = row.document_id
        self.session.delete(row)
        self.session.flush()
        return document_id
