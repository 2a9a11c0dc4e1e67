"""
Reconciliation engine tests.

Covers the payment lifecycle against client invoices:
- Status follows the payment ledger after create / update / delete
- Overpayment is rejected with no write
- Moving a payment reconciles both documents in one operation
- Validation happens before any store access
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from ledger_kernel.db.engine import session_scope
from ledger_kernel.domain.status import DocumentStatus, derive_status
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import (
    CurrencyMismatchError,
    DocumentNotFoundError,
    DuplicateDocumentNumberError,
    InvalidAmountError,
    MissingDocumentReferenceError,
    OverpaymentRejectedError,
    PartyNotFoundError,
    PaymentNotFoundError,
)
from ledger_kernel.models.party import PartyType
from ledger_modules.receivables.orm import ClientInvoiceModel, ClientPaymentModel

TODAY = date(2024, 1, 15)


def _payment_rows(session_factory) -> int:
    with session_scope(session_factory) as session:
        return session.execute(select(func.count(ClientPaymentModel.id))).scalar_one()


def _stored_status(session_factory, document_id) -> DocumentStatus:
    with session_scope(session_factory) as session:
        return DocumentStatus(session.get(ClientInvoiceModel, document_id).status)


# =============================================================================
# Scenarios
# =============================================================================


class TestPaymentScenarios:
    """End-to-end scenarios on a single invoice."""

    def test_partial_then_full_then_rejected(self, receivables, make_invoice):
        invoice = make_invoice("1000.000", due_in_days=30)
        assert invoice.status == DocumentStatus.PENDING

        receivables.create_payment(invoice.id, "400.000")
        balance = receivables.get_balance(invoice.id)
        assert balance.paid == Money.of("400.000", "TND")
        assert balance.status == DocumentStatus.PARTIALLY_PAID

        receivables.create_payment(invoice.id, "600.000")
        balance = receivables.get_balance(invoice.id)
        assert balance.paid == Money.of("1000.000", "TND")
        assert balance.status == DocumentStatus.PAID

        with pytest.raises(OverpaymentRejectedError) as exc_info:
            receivables.create_payment(invoice.id, "1.000")
        err = exc_info.value
        assert err.remaining == Decimal("0.000")
        assert err.total == Decimal("1000.000")
        assert err.already_paid == Decimal("1000.000")
        assert err.code == "OVERPAYMENT_REJECTED"

    def test_past_due_without_payments_is_overdue(self, make_invoice):
        invoice = make_invoice("500.000", due_in_days=-1)
        assert invoice.status == DocumentStatus.OVERDUE

    def test_overdue_sequence(self, receivables, make_invoice):
        invoice = make_invoice("500.000", due_in_days=-1)

        receivables.create_payment(invoice.id, "200.000")
        balance = receivables.get_balance(invoice.id)
        assert balance.remaining == Money.of("300.000", "TND")
        assert balance.status == DocumentStatus.OVERDUE

        last = receivables.create_payment(invoice.id, "300.000")
        assert receivables.get_balance(invoice.id).status == DocumentStatus.PAID

        receivables.delete_payment(last.id)
        balance = receivables.get_balance(invoice.id)
        assert balance.paid == Money.of("200.000", "TND")
        assert balance.status == DocumentStatus.OVERDUE

    def test_move_rejected_when_target_would_be_overpaid(self, receivables, make_invoice):
        doc_a = make_invoice("300.000")
        doc_b = make_invoice("300.000")
        moving = receivables.create_payment(doc_a.id, "150.000")
        receivables.create_payment(doc_b.id, "200.000")

        with pytest.raises(OverpaymentRejectedError) as exc_info:
            receivables.update_payment(moving.id, doc_b.id, "150.000")

        assert exc_info.value.remaining == Decimal("100.000")
        assert exc_info.value.already_paid == Decimal("200.000")
        # Neither document was touched
        assert receivables.get_balance(doc_a.id).paid == Money.of("150.000", "TND")
        assert receivables.get_balance(doc_a.id).status == DocumentStatus.PARTIALLY_PAID
        assert receivables.get_balance(doc_b.id).paid == Money.of("200.000", "TND")
        assert receivables.get_payment(moving.id).document_id == doc_a.id


# =============================================================================
# Create
# =============================================================================


class TestCreatePayment:

    def test_returns_persisted_payment(self, receivables, make_invoice, client_id):
        invoice = make_invoice()
        payment = receivables.create_payment(
            invoice.id,
            Decimal("100.500"),
            payment_date=date(2024, 1, 10),
            method="cheque",
            reference="CHQ-881",
            notes="first instalment",
        )
        assert payment.amount == Money.of("100.500", "TND")
        assert payment.party_id == client_id
        assert payment.ledger == "receivable"
        stored = receivables.get_payment(payment.id)
        assert stored.method == "cheque"
        assert stored.reference == "CHQ-881"
        assert stored.payment_date == date(2024, 1, 10)

    def test_payment_date_defaults_to_clock_today(self, receivables, make_invoice):
        payment = receivables.create_payment(make_invoice().id, "1")
        assert payment.payment_date == TODAY

    def test_exact_remaining_is_accepted(self, receivables, make_invoice):
        invoice = make_invoice("0.300")
        receivables.create_payment(invoice.id, "0.100")
        receivables.create_payment(invoice.id, "0.200")
        assert receivables.get_balance(invoice.id).status == DocumentStatus.PAID

    def test_money_amount_in_document_currency(self, receivables, make_invoice):
        invoice = make_invoice()
        payment = receivables.create_payment(invoice.id, Money.of("5", "TND"))
        assert payment.amount.minor_units == 5000

    def test_money_in_other_currency_rejected(self, receivables, make_invoice, session_factory):
        invoice = make_invoice()
        with pytest.raises(CurrencyMismatchError):
            receivables.create_payment(invoice.id, Money.of("5", "EUR"))
        assert _payment_rows(session_factory) == 0

    @pytest.mark.parametrize("amount", ["0", "-5", "0.000", Decimal("-0.001"), 0])
    def test_non_positive_amount_rejected(self, receivables, amount):
        # The document does not exist: validation must fail first
        with pytest.raises(InvalidAmountError):
            receivables.create_payment(uuid4(), amount)

    @pytest.mark.parametrize("amount", [None, "abc", "", 1.5, "NaN"])
    def test_malformed_amount_rejected(self, receivables, amount):
        with pytest.raises(InvalidAmountError):
            receivables.create_payment(uuid4(), amount)

    def test_excess_precision_rejected(self, receivables, make_invoice, session_factory):
        invoice = make_invoice()
        with pytest.raises(InvalidAmountError):
            receivables.create_payment(invoice.id, "1.0001")
        assert _payment_rows(session_factory) == 0

    def test_amount_beyond_storage_range_rejected(self, receivables, make_invoice, session_factory):
        invoice = make_invoice()
        with pytest.raises(InvalidAmountError):
            receivables.create_payment(invoice.id, "10000000000000000")
        assert _payment_rows(session_factory) == 0

    def test_missing_document_reference(self, receivables):
        with pytest.raises(MissingDocumentReferenceError):
            receivables.create_payment(None, "10")

    def test_unknown_document(self, receivables):
        with pytest.raises(DocumentNotFoundError):
            receivables.create_payment(uuid4(), "10")

    def test_rejected_overpayment_writes_nothing(
        self, receivables, make_invoice, session_factory, events
    ):
        invoice = make_invoice("100.000")
        receivables.create_payment(invoice.id, "40.000")
        events.clear()

        with pytest.raises(OverpaymentRejectedError):
            receivables.create_payment(invoice.id, "60.001")

        assert _payment_rows(session_factory) == 1
        assert _stored_status(session_factory, invoice.id) == DocumentStatus.PARTIALLY_PAID
        assert events == []


# =============================================================================
# Update
# =============================================================================


class TestUpdatePayment:

    def test_amount_change_on_same_document(self, receivables, make_invoice):
        invoice = make_invoice("500.000")
        payment = receivables.create_payment(invoice.id, "500.000")
        assert receivables.get_balance(invoice.id).status == DocumentStatus.PAID

        receivables.update_payment(payment.id, invoice.id, "250.000")
        balance = receivables.get_balance(invoice.id)
        assert balance.paid == Money.of("250.000", "TND")
        assert balance.status == DocumentStatus.PARTIALLY_PAID

    def test_payment_not_counted_against_itself(self, receivables, make_invoice):
        invoice = make_invoice("500.000")
        payment = receivables.create_payment(invoice.id, "400.000")
        updated = receivables.update_payment(payment.id, invoice.id, "500.000")
        assert updated.amount == Money.of("500.000", "TND")
        assert receivables.get_balance(invoice.id).status == DocumentStatus.PAID

    def test_move_reconciles_both_documents(self, receivables, make_invoice):
        doc_a = make_invoice("300.000", due_in_days=-5)
        doc_b = make_invoice("300.000", due_in_days=10)
        payment = receivables.create_payment(doc_a.id, "150.000")

        moved = receivables.update_payment(payment.id, doc_b.id, "150.000")

        assert moved.document_id == doc_b.id
        balance_a = receivables.get_balance(doc_a.id)
        balance_b = receivables.get_balance(doc_b.id)
        assert balance_a.paid.is_zero
        assert balance_a.status == DocumentStatus.OVERDUE
        assert balance_b.paid == Money.of("150.000", "TND")
        assert balance_b.status == DocumentStatus.PARTIALLY_PAID

    def test_move_to_document_of_other_party(self, receivables, make_invoice, make_party):
        other_client = make_party(PartyType.CLIENT, "Youssef Trabelsi")
        doc_a = make_invoice("100")
        doc_b = make_invoice("100", party_id=other_client)
        payment = receivables.create_payment(doc_a.id, "10")

        moved = receivables.update_payment(payment.id, doc_b.id, "10")
        assert moved.party_id == other_client

    def test_none_payment_date_keeps_existing(self, receivables, make_invoice):
        invoice = make_invoice()
        payment = receivables.create_payment(
            invoice.id, "10", payment_date=date(2024, 1, 2), method="cash", notes="n"
        )
        updated = receivables.update_payment(payment.id, invoice.id, "20", method="card")
        assert updated.payment_date == date(2024, 1, 2)
        assert updated.method == "card"
        assert updated.notes is None

    def test_unknown_payment(self, receivables, make_invoice):
        with pytest.raises(PaymentNotFoundError):
            receivables.update_payment(uuid4(), make_invoice().id, "10")

    def test_unknown_target_document(self, receivables, make_invoice):
        invoice = make_invoice()
        payment = receivables.create_payment(invoice.id, "10")
        with pytest.raises(DocumentNotFoundError):
            receivables.update_payment(payment.id, uuid4(), "10")
        assert receivables.get_payment(payment.id).document_id == invoice.id

    def test_invalid_amount_before_lookup(self, receivables):
        with pytest.raises(InvalidAmountError):
            receivables.update_payment(uuid4(), uuid4(), "-1")


# =============================================================================
# Delete
# =============================================================================


class TestDeletePayment:

    def test_only_payment_reverts_to_pending(self, receivables, make_invoice):
        invoice = make_invoice("100.000")
        payment = receivables.create_payment(invoice.id, "100.000")
        receivables.delete_payment(payment.id)
        balance = receivables.get_balance(invoice.id)
        assert balance.status == DocumentStatus.PENDING
        assert balance.payment_count == 0

    def test_create_then_delete_restores_state(self, receivables, make_invoice):
        invoice = make_invoice("100.000", due_in_days=-3)
        receivables.create_payment(invoice.id, "30.000")
        before = receivables.get_balance(invoice.id)

        payment = receivables.create_payment(invoice.id, "70.000")
        receivables.delete_payment(payment.id)

        after = receivables.get_balance(invoice.id)
        assert after.paid == before.paid
        assert after.status == before.status

    def test_unknown_payment(self, receivables):
        with pytest.raises(PaymentNotFoundError):
            receivables.delete_payment(uuid4())


# =============================================================================
# Documents
# =============================================================================


class TestDocuments:

    def test_register_publishes_create(self, make_invoice, events):
        invoice = make_invoice()
        assert [e.key for e in events] == [("document", "create")]
        assert events[0].payload["id"] == str(invoice.id)

    def test_duplicate_number_rejected(self, receivables, client_id):
        total = Money.of("10", "TND")
        receivables.register_document(client_id, "INV-DUP", total)
        with pytest.raises(DuplicateDocumentNumberError):
            receivables.register_document(client_id, "INV-DUP", total)

    def test_supplier_cannot_own_receivable(self, receivables, supplier_id):
        with pytest.raises(PartyNotFoundError):
            receivables.register_document(supplier_id, "INV-X", Money.of("10", "TND"))

    def test_unknown_party(self, receivables):
        with pytest.raises(PartyNotFoundError):
            receivables.register_document(uuid4(), "INV-Y", Money.of("10", "TND"))

    def test_non_positive_total_rejected(self, receivables, client_id):
        with pytest.raises(InvalidAmountError):
            receivables.register_document(client_id, "INV-Z", Money.zero("TND"))

    def test_total_beyond_storage_range_rejected(self, receivables, client_id):
        with pytest.raises(InvalidAmountError):
            receivables.register_document(
                client_id, "INV-HUGE", Money.from_minor(2**63, "TND")
            )

    def test_refresh_statuses_after_due_date(self, receivables, make_invoice, clock, events):
        due_soon = make_invoice("100", due_in_days=1)
        paid = make_invoice("100", due_in_days=1)
        receivables.create_payment(paid.id, "100")
        make_invoice("100", due_in_days=30)
        events.clear()

        assert receivables.refresh_statuses() == 0

        clock.advance_days(2)
        assert receivables.refresh_statuses() == 1
        assert receivables.get_document(due_soon.id).status == DocumentStatus.OVERDUE
        assert receivables.get_document(paid.id).status == DocumentStatus.PAID
        assert [e.key for e in events] == [("document", "update")]
        assert events[0].payload["previous_status"] == "pending"

    def test_reconcile_document_repairs_drift(self, receivables, make_invoice, session_factory):
        invoice = make_invoice("100")
        receivables.create_payment(invoice.id, "40")
        with session_scope(session_factory) as session:
            session.get(ClientInvoiceModel, invoice.id).status = DocumentStatus.PAID.value

        repaired = receivables.reconcile_document(invoice.id)
        assert repaired.status == DocumentStatus.PARTIALLY_PAID
        assert _stored_status(session_factory, invoice.id) == DocumentStatus.PARTIALLY_PAID


# =============================================================================
# Events and logging
# =============================================================================


class TestEventsAndLogging:

    def test_create_publishes_payment_then_document(self, receivables, make_invoice, events):
        invoice = make_invoice("100")
        events.clear()
        receivables.create_payment(invoice.id, "40")
        assert [e.key for e in events] == [("payment", "create"), ("document", "update")]
        assert all(e.ledger == "receivable" for e in events)
        assert events[1].payload["status"] == "partially_paid"
        assert events[1].payload["previous_status"] == "pending"

    def test_move_publishes_update_for_both_documents(self, receivables, make_invoice, events):
        doc_a = make_invoice("100")
        doc_b = make_invoice("100")
        payment = receivables.create_payment(doc_a.id, "40")
        events.clear()

        receivables.update_payment(payment.id, doc_b.id, "40")

        assert events[0].key == ("payment", "update")
        updated_docs = {e.payload["id"] for e in events if e.key == ("document", "update")}
        assert updated_docs == {str(doc_a.id), str(doc_b.id)}

    def test_delete_publishes_delete(self, receivables, make_invoice, events):
        payment = receivables.create_payment(make_invoice().id, "1")
        events.clear()
        receivables.delete_payment(payment.id)
        assert [e.key for e in events] == [("payment", "delete"), ("document", "update")]

    def test_failing_subscriber_does_not_break_engine(
        self, receivables, make_invoice, channel, captured_logs
    ):
        def broken(event):
            raise RuntimeError("ui went away")

        channel.subscribe(broken)
        invoice = make_invoice("100")
        payment = receivables.create_payment(invoice.id, "10")

        assert receivables.get_payment(payment.id).id == payment.id
        failures = [r for r in captured_logs() if r["message"] == "subscriber_failed"]
        assert failures
        assert failures[0]["exc_type"] == "RuntimeError"

    def test_payment_created_is_logged_with_context(
        self, receivables, make_invoice, captured_logs
    ):
        invoice = make_invoice("100")
        receivables.create_payment(invoice.id, "10")
        created = [r for r in captured_logs() if r["message"] == "payment_created"]
        assert len(created) == 1
        assert created[0]["ledger"] == "receivable"
        assert created[0]["document_id"] == str(invoice.id)
        assert created[0]["amount"] == "10.000"

    def test_overpayment_is_logged(self, receivables, make_invoice, captured_logs):
        invoice = make_invoice("100")
        with pytest.raises(OverpaymentRejectedError):
            receivables.create_payment(invoice.id, "101")
        rejected = [r for r in captured_logs() if r["message"] == "overpayment_rejected"]
        assert rejected[0]["remaining"] == "100.000"


# =============================================================================
# Stored status never drifts
# =============================================================================


def test_stored_status_matches_derivation(receivables, make_invoice, session_factory, clock):
    docs = [make_invoice("100", due_in_days=d) for d in (-2, 0, 5)]
    p1 = receivables.create_payment(docs[0].id, "30")
    receivables.create_payment(docs[1].id, "100")
    receivables.update_payment(p1.id, docs[2].id, "60")

    with session_scope(session_factory) as session:
        for doc in docs:
            row = session.get(ClientInvoiceModel, doc.id)
            paid = session.execute(
                select(func.coalesce(func.sum(ClientPaymentModel.amount_minor), 0)).where(
                    ClientPaymentModel.document_id == doc.id
                )
            ).scalar_one()
            expected = derive_status(
                row.total, Money.from_minor(int(paid), "TND"), row.due_date, clock.today()
            )
            assert row.status == expected.value
