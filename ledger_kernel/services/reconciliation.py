"""
ReconciliationEngine -- the sole writer of payments and document status.

Responsibility:
    Applies payment create / update / delete operations to one ledger
    (receivables or payables) so that, after every commit, each document's
    stored status equals ``derive_status`` over its payment rows and no
    document is paid beyond its total.

Architecture position:
    Kernel > Services.  Owns the transaction boundary: every public write
    runs in exactly one ``session_scope`` and hands that session to
    LedgerStore (flush-only).  Written once against a LedgerKind;
    ``ledger_modules.receivables`` and ``ledger_modules.payables`` are the
    two instantiations.

Invariants enforced:
    - sum(payments of D) <= D.total after every committed operation.
    - The payment write and every status write it implies land in the same
      transaction; any failure after validation rolls back both.
    - Document rows are locked before their payment sum is read.  Several
      documents are locked in ascending id order.
    - A rejected overpayment performs no write at all.
    - Change events are published only after commit.

Failure modes:
    - InvalidAmountError: amount missing, non-numeric, excess precision,
      <= 0 or beyond the storable range.  Raised before any store access
      where the input allows.
    - MissingDocumentReferenceError: no document id given.
    - DocumentNotFoundError / PaymentNotFoundError / PartyNotFoundError.
    - CurrencyMismatchError: Money in a currency other than the document's.
    - OverpaymentRejectedError: carries remaining / total / already_paid.
    - ConcurrencyConflictError: lock contention persisted through
      ``max_conflict_retries`` retries.

Audit relevance:
    Every accepted and rejected write is logged with the ledger, document
    and payment ids bound through LogContext.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.db.engine import session_scope
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    DocumentBalance,
    PayableDocument,
    Payment,
    PaymentView,
)
from ledger_kernel.domain.events import ChangeEvent, ChangeOperation, EntityKind
from ledger_kernel.domain.status import DocumentStatus, derive_status
from ledger_kernel.domain.values import MAX_MINOR_UNITS, Money
from ledger_kernel.exceptions import (
    ConcurrencyConflictError,
    CurrencyMismatchError,
    DuplicateDocumentNumberError,
    InvalidAmountError,
    MissingDocumentReferenceError,
    OverpaymentRejectedError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.ledger import LedgerKind
from ledger_kernel.selectors.payment_selector import PaymentSelector
from ledger_kernel.services.ledger_store import LedgerStore
from ledger_kernel.services.notification import ChangeChannel
from ledger_kernel.services.party_service import PartyService

logger = get_logger("services.reconciliation")

T = TypeVar("T")

AmountInput = Money | Decimal | str | int


def _check_positive(amount: Any) -> None:
    """Reject missing, non-numeric and non-positive amounts up front."""
    if amount is None:
        raise InvalidAmountError(amount, "amount is required")
    if isinstance(amount, Money):
        if not amount.is_positive:
            raise InvalidAmountError(amount.amount)
        return
    if isinstance(amount, (bool, float)):
        raise InvalidAmountError(amount, "amount must be a Decimal, str or int")
    try:
        value = Decimal(str(amount).strip()) if isinstance(amount, str) else Decimal(amount)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError(amount, "amount is not a number") from None
    if not value.is_finite() or value <= 0:
        raise InvalidAmountError(amount)


def _check_storable(money: Money) -> None:
    if abs(money.minor_units) > MAX_MINOR_UNITS:
        raise InvalidAmountError(money.amount, "amount exceeds the storable range")


def _require_document_id(document_id: UUID | None, payment_id: UUID | None = None) -> None:
    if document_id is None or (isinstance(document_id, str) and not document_id.strip()):
        raise MissingDocumentReferenceError(payment_id)


class ReconciliationEngine:
    """
    Payment ledger and status reconciliation for one LedgerKind.

    Contract:
        Each public method opens its own session from ``session_factory``,
        so one engine instance may be shared between threads.  Write
        methods return frozen DTOs reflecting the committed state.

    Non-goals:
        - Does NOT mutate a document's total after registration.
        - Does NOT convert between currencies.
    """

    def __init__(
        self,
        kind: LedgerKind,
        session_factory: sessionmaker[Session],
        channel: ChangeChannel | None = None,
        clock: Clock | None = None,
        max_conflict_retries: int = 3,
    ):
        if max_conflict_retries < 0:
            raise ValueError("max_conflict_retries cannot be negative")
        self.kind = kind
        self._session_factory = session_factory
        self._channel = channel
        self._clock = clock or SystemClock()
        self._max_conflict_retries = max_conflict_retries

    @property
    def ledger(self) -> str:
        return self.kind.name

    # =========================================================================
    # Transaction plumbing
    # =========================================================================

    def _run(
        self,
        operation: str,
        work: Callable[[Session, list[ChangeEvent]], T],
    ) -> T:
        """
        Run ``work`` in one transaction, retrying on lock contention.

        ``work`` appends the events it wants published; they are delivered
        only once the transaction has committed.  Each retry starts from
        scratch with a fresh session and an empty event list.
        """
        attempts = self._max_conflict_retries + 1
        for attempt in range(1, attempts + 1):
            events: list[ChangeEvent] = []
            try:
                with session_scope(self._session_factory, operation) as session:
                    result = work(session, events)
            except ConcurrencyConflictError as exc:
                if attempt >= attempts:
                    logger.error(
                        "conflict_retries_exhausted",
                        extra={"operation": operation, "attempts": attempt},
                    )
                    raise ConcurrencyConflictError(
                        operation, attempts=attempt, reason=exc.reason
                    ) from exc
                logger.info(
                    "conflict_retry",
                    extra={"operation": operation, "attempt": attempt},
                )
                continue

            if self._channel is not None and events:
                self._channel.publish_all(events)
            return result

        # Unreachable: the loop either returns or raises.
        raise ConcurrencyConflictError(operation, attempts=attempts)

    def _read(self, operation: str, work: Callable[[Session], T]) -> T:
        return self._run(operation, lambda session, _events: work(session))

    def _event(
        self,
        entity_kind: EntityKind,
        operation: ChangeOperation,
        payload: dict[str, Any],
    ) -> ChangeEvent:
        return ChangeEvent(
            entity_kind=entity_kind,
            operation=operation,
            ledger=self.kind.name,
            payload=payload,
        )

    # =========================================================================
    # Validation helpers
    # =========================================================================

    def _to_money(self, amount: AmountInput, document: PayableDocument) -> Money:
        """Express ``amount`` in the document's currency, exactly."""
        currency = document.total.currency
        if isinstance(amount, Money):
            if amount.currency != currency:
                raise CurrencyMismatchError(currency.code, amount.currency.code)
            money = amount
        else:
            try:
                money = Money.of(amount, currency)
            except (TypeError, ValueError) as exc:
                raise InvalidAmountError(amount, str(exc)) from None
        _check_storable(money)
        return money

    def _check_remaining(
        self,
        document: PayableDocument,
        amount: Money,
        already_paid: Money,
    ) -> None:
        remaining = document.total - already_paid
        if amount > remaining:
            logger.warning(
                "overpayment_rejected",
                extra={
                    "amount": amount.amount,
                    "remaining": remaining.amount,
                    "total": document.total.amount,
                    "already_paid": already_paid.amount,
                },
            )
            raise OverpaymentRejectedError(
                document_id=str(document.id),
                amount=amount.amount,
                remaining=remaining.amount,
                total=document.total.amount,
                already_paid=already_paid.amount,
                currency=document.total.currency.code,
            )

    def _reconcile(
        self,
        store: LedgerStore,
        document: PayableDocument,
        actor_id: UUID | None = None,
    ) -> tuple[PayableDocument, DocumentStatus]:
        """
        Re-derive a locked document's status from its payment rows.

        Returns the refreshed document and the status it had before.
        """
        paid = store.sum_payments(document.id, document.total.currency.code)
        status = derive_status(document.total, paid, document.due_date, self._clock.today())
        if status != document.status:
            store.set_document_status(document.id, status, actor_id)
        return replace(document, status=status), document.status

    def _document_update_event(
        self,
        document: PayableDocument,
        previous_status: DocumentStatus,
    ) -> ChangeEvent:
        payload = document.to_payload()
        payload["previous_status"] = previous_status.value
        return self._event(EntityKind.DOCUMENT, ChangeOperation.UPDATE, payload)

    # =========================================================================
    # Documents
    # =========================================================================

    def register_document(
        self,
        party_id: UUID,
        number: str,
        total: Money,
        issue_date: date | None = None,
        due_date: date | None = None,
        actor_id: UUID | None = None,
    ) -> PayableDocument:
        """
        Register a document with no payments.

        The status is derived at registration: PENDING, or OVERDUE when
        the due date has already passed.
        """
        if not isinstance(total, Money):
            raise TypeError(f"total must be Money, got {type(total).__name__}")
        if not total.is_positive:
            raise InvalidAmountError(total.amount, "document total must be greater than zero")
        _check_storable(total)
        if not number or not number.strip():
            raise ValueError("Document number cannot be empty")
        number = number.strip()

        def work(session: Session, events: list[ChangeEvent]) -> PayableDocument:
            PartyService(session).require_party_type(party_id, self.kind.party_type)
            store = LedgerStore(session, self.kind)
            if store.document_number_exists(number):
                raise DuplicateDocumentNumberError(number, self.kind.name)
            status = derive_status(
                total, Money.zero(total.currency), due_date, self._clock.today()
            )
            document = store.insert_document(
                party_id=party_id,
                number=number,
                total=total,
                status=status,
                issue_date=issue_date,
                due_date=due_date,
                actor_id=actor_id,
            )
            events.append(
                self._event(EntityKind.DOCUMENT, ChangeOperation.CREATE, document.to_payload())
            )
            return document

        with LogContext.bind(ledger=self.kind.name, actor_id=actor_id):
            document = self._run("register_document", work)
            logger.info(
                "document_registered",
                extra={
                    "document_id": str(document.id),
                    "number": document.number,
                    "total": document.total.amount,
                    "status": document.status.value,
                },
            )
        return document

    def reconcile_document(
        self,
        document_id: UUID,
        actor_id: UUID | None = None,
    ) -> PayableDocument:
        """Re-derive and persist one document's status from its ledger."""

        def work(session: Session, events: list[ChangeEvent]) -> PayableDocument:
            store = LedgerStore(session, self.kind)
            locked = store.get_document(document_id, for_update=True)
            document, previous = self._reconcile(store, locked, actor_id)
            if document.status != previous:
                events.append(self._document_update_event(document, previous))
            return document

        with LogContext.bind(ledger=self.kind.name, document_id=document_id, actor_id=actor_id):
            document = self._run("reconcile_document", work)
            logger.info("document_reconciled", extra={"status": document.status.value})
        return document

    def refresh_statuses(self, actor_id: UUID | None = None) -> int:
        """
        Persist status changes caused by the passage of time.

        Sweeps every document that is not PAID (a PENDING or PARTIALLY_PAID
        document becomes OVERDUE once its due date passes).  Returns the
        number of documents whose status changed.
        """

        def work(session: Session, events: list[ChangeEvent]) -> int:
            store = LedgerStore(session, self.kind)
            changed = 0
            for document in store.lock_documents(store.list_open_document_ids()).values():
                refreshed, previous = self._reconcile(store, document, actor_id)
                if refreshed.status != previous:
                    changed += 1
                    events.append(self._document_update_event(refreshed, previous))
            return changed

        with LogContext.bind(ledger=self.kind.name, actor_id=actor_id):
            changed = self._run("refresh_statuses", work)
            logger.info("statuses_refreshed", extra={"changed": changed})
        return changed

    # =========================================================================
    # Payments
    # =========================================================================

    def create_payment(
        self,
        document_id: UUID,
        amount: AmountInput,
        payment_date: date | None = None,
        method: str | None = None,
        reference: str | None = None,
        notes: str | None = None,
        actor_id: UUID | None = None,
    ) -> Payment:
        """
        Apply a new payment to a document.

        Preconditions:
            - ``amount`` > 0, at no more precision than the document's
              currency allows.
            - ``amount`` <= the document's remaining balance.

        Postconditions:
            - One new payment row; document status re-derived.
            - ``payment/create`` and ``document/update`` published.

        Raises:
            InvalidAmountError, MissingDocumentReferenceError,
            DocumentNotFoundError, CurrencyMismatchError,
            OverpaymentRejectedError, ConcurrencyConflictError.
        """
        _require_document_id(document_id)
        _check_positive(amount)

        def work(session: Session, events: list[ChangeEvent]) -> Payment:
            store = LedgerStore(session, self.kind)
            document = store.get_document(document_id, for_update=True)
            money = self._to_money(amount, document)
            already_paid = store.sum_payments(document.id, document.total.currency.code)
            self._check_remaining(document, money, already_paid)

            payment = store.insert_payment(
                document,
                money,
                payment_date or self._clock.today(),
                method=method,
                reference=reference,
                notes=notes,
                actor_id=actor_id,
            )
            refreshed, previous = self._reconcile(store, document, actor_id)

            events.append(
                self._event(EntityKind.PAYMENT, ChangeOperation.CREATE, payment.to_payload())
            )
            events.append(self._document_update_event(refreshed, previous))
            return payment

        with LogContext.bind(ledger=self.kind.name, document_id=document_id, actor_id=actor_id):
            payment = self._run("create_payment", work)
            logger.info(
                "payment_created",
                extra={"payment_id": str(payment.id), "amount": payment.amount.amount},
            )
        return payment

    def update_payment(
        self,
        payment_id: UUID,
        document_id: UUID,
        amount: AmountInput,
        payment_date: date | None = None,
        method: str | None = None,
        reference: str | None = None,
        notes: str | None = None,
        actor_id: UUID | None = None,
    ) -> Payment:
        """
        Rewrite a payment, possibly moving it to another document.

        The new amount is validated against the target document's balance
        excluding this payment.  Both the document the payment left and the
        one it joined are reconciled in the same transaction.

        ``payment_date=None`` keeps the existing date; ``method``,
        ``reference`` and ``notes`` are replaced as given.
        """
        _require_document_id(document_id, payment_id)
        _check_positive(amount)

        def work(session: Session, events: list[ChangeEvent]) -> Payment:
            store = LedgerStore(session, self.kind)
            current = store.get_payment(payment_id, for_update=True)
            locked = store.lock_documents({current.document_id, document_id})
            target = locked[document_id]

            money = self._to_money(amount, target)
            paid_by_others = store.sum_payments(
                target.id,
                target.total.currency.code,
                excluding_payment_id=payment_id,
            )
            self._check_remaining(target, money, paid_by_others)

            payment = store.update_payment(
                payment_id,
                document_id=target.id,
                party_id=target.party_id,
                amount_minor=money.minor_units,
                currency=money.currency.code,
                payment_date=payment_date or current.payment_date,
                method=method,
                reference=reference,
                notes=notes,
                updated_by_id=actor_id,
            )

            events.append(
                self._event(EntityKind.PAYMENT, ChangeOperation.UPDATE, payment.to_payload())
            )
            for document in locked.values():
                refreshed, previous = self._reconcile(store, document, actor_id)
                events.append(self._document_update_event(refreshed, previous))
            return payment

        with LogContext.bind(
            ledger=self.kind.name,
            payment_id=payment_id,
            document_id=document_id,
            actor_id=actor_id,
        ):
            payment = self._run("update_payment", work)
            logger.info("payment_updated", extra={"amount": payment.amount.amount})
        return payment

    def delete_payment(self, payment_id: UUID, actor_id: UUID | None = None) -> None:
        """
        Delete a payment and re-derive its document's status.

        A document that loses its only payment returns to PENDING, or
        OVERDUE when past due.
        """

        def work(session: Session, events: list[ChangeEvent]) -> UUID:
            store = LedgerStore(session, self.kind)
            payment = store.get_payment(payment_id, for_update=True)
            document = store.get_document(payment.document_id, for_update=True)
            store.delete_payment(payment_id)
            refreshed, previous = self._reconcile(store, document, actor_id)

            events.append(
                self._event(EntityKind.PAYMENT, ChangeOperation.DELETE, payment.to_payload())
            )
            events.append(self._document_update_event(refreshed, previous))
            return document.id

        with LogContext.bind(ledger=self.kind.name, payment_id=payment_id, actor_id=actor_id):
            document_id = self._run("delete_payment", work)
            logger.info("payment_deleted", extra={"document_id": str(document_id)})

    # =========================================================================
    # Reads
    # =========================================================================

    def get_document(self, document_id: UUID) -> PayableDocument:
        return self._read(
            "get_document",
            lambda session: LedgerStore(session, self.kind).get_document(document_id),
        )

    def get_payment(self, payment_id: UUID) -> Payment:
        return self._read(
            "get_payment",
            lambda session: LedgerStore(session, self.kind).get_payment(payment_id),
        )

    def get_balance(self, document_id: UUID) -> DocumentBalance:
        """Total, paid, remaining and status of a document."""
        return self._read(
            "get_balance",
            lambda session: PaymentSelector(session, self.kind).get_balance(document_id),
        )

    def list_payments_for_document(self, document_id: UUID) -> list[PaymentView]:
        return self._read(
            "list_payments_for_document",
            lambda session: PaymentSelector(session, self.kind).list_for_document(document_id),
        )

    def list_payments_for_party(self, party_id: UUID) -> list[PaymentView]:
        return self._read(
            "list_payments_for_party",
            lambda session: PaymentSelector(session, self.kind).list_for_party(party_id),
        )

    def list_payments(self) -> list[PaymentView]:
        return self._read(
            "list_payments",
            lambda session: PaymentSelector(session, self.kind).list_payments(),
        )
