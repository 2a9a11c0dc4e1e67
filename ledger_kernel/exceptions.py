"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The command surface turns every engine failure into a structured error for
the UI.  That only works if callers can catch by type and read structured
fields instead of parsing messages:

    try:
        engine.create_payment(document_id, amount)
    except OverpaymentRejectedError as e:
        render(f"Only {e.remaining} left to pay on {e.total}")

Every exception carries:
  1. A CODE class attribute (machine-readable, API-safe)
  2. Structured DATA as instance attributes (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- NotFoundError
    |   +-- DocumentNotFoundError
    |   +-- PaymentNotFoundError
    |   +-- PartyNotFoundError
    |
    +-- ValidationError
    |   +-- InvalidAmountError
    |   +-- MissingDocumentReferenceError
    |   +-- CurrencyMismatchError
    |   +-- DuplicateDocumentNumberError
    |
    +-- OverpaymentRejectedError
    |
    +-- ConcurrencyConflictError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                        | When Raised
----------------------------|-----------------------------------------------
DOCUMENT_NOT_FOUND          | Unknown document id for this ledger
PAYMENT_NOT_FOUND           | Unknown payment id for this ledger
PARTY_NOT_FOUND             | Unknown client/supplier id
INVALID_AMOUNT              | Amount missing, unparsable, or <= 0
MISSING_DOCUMENT_REFERENCE  | Payment submitted without a document id
CURRENCY_MISMATCH           | Payment currency differs from the document's
DUPLICATE_DOCUMENT_NUMBER   | Document number already registered in ledger
OVERPAYMENT_REJECTED        | Amount exceeds the remaining balance
CONCURRENCY_CONFLICT        | Lock timeout / serialization failure (retryable)

===============================================================================
HANDLING PATTERNS
===============================================================================

Validation and not-found errors are caller errors: never retried.
ConcurrencyConflictError is the only retryable error; the whole operation
must be re-run from scratch because the transaction was rolled back.
"""

from decimal import Decimal


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"

    def details(self) -> dict:
        """Structured fields of this error (public instance attributes)."""
        return {
            k: v for k, v in vars(self).items()
            if not k.startswith("_") and k != "args"
        }


# Not-found exceptions


class NotFoundError(LedgerKernelError):
    """Base exception for unknown identifiers."""

    code: str = "NOT_FOUND"


class DocumentNotFoundError(NotFoundError):
    """Document with given ID was not found in this ledger."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: str, ledger: str | None = None):
        self.document_id = str(document_id)
        self.ledger = ledger
        super().__init__(f"Document not found: {document_id}")


class PaymentNotFoundError(NotFoundError):
    """Payment with given ID was not found in this ledger."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str, ledger: str | None = None):
        self.payment_id = str(payment_id)
        self.ledger = ledger
        super().__init__(f"Payment not found: {payment_id}")


class PartyNotFoundError(NotFoundError):
    """Party (client or supplier) with given ID was not found."""

    code: str = "PARTY_NOT_FOUND"

    def __init__(self, party_id: str):
        self.party_id = str(party_id)
        super().__init__(f"Party not found: {party_id}")


# Validation exceptions


class ValidationError(LedgerKernelError):
    """Base exception for input rejected before any store access."""

    code: str = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    """Payment amount is missing, unparsable, or not strictly positive."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: object, reason: str = "amount must be greater than zero"):
        self.amount = str(amount)
        self.reason = reason
        super().__init__(f"Invalid amount {amount!s}: {reason}")


class MissingDocumentReferenceError(ValidationError):
    """Payment submitted without the document it applies to."""

    code: str = "MISSING_DOCUMENT_REFERENCE"

    def __init__(self, payment_id: str | None = None):
        self.payment_id = str(payment_id) if payment_id is not None else None
        super().__init__("A payment must reference a document")


class CurrencyMismatchError(ValidationError):
    """Payment amount is expressed in a currency other than the document's."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Currency mismatch: document is {expected}, payment is {actual}")


class DuplicateDocumentNumberError(ValidationError):
    """A document with this number is already registered in the ledger."""

    code: str = "DUPLICATE_DOCUMENT_NUMBER"

    def __init__(self, number: str, ledger: str | None = None):
        self.number = number
        self.ledger = ledger
        super().__init__(f"Document number already registered: {number}")


# Balance exceptions


class OverpaymentRejectedError(LedgerKernelError):
    """
    Payment amount exceeds the document's remaining balance.

    Raised before any write: neither the payment row nor the document
    status has been touched when this propagates.
    """

    code: str = "OVERPAYMENT_REJECTED"

    def __init__(
        self,
        document_id: str,
        amount: Decimal,
        remaining: Decimal,
        total: Decimal,
        already_paid: Decimal,
        currency: str,
    ):
        self.document_id = str(document_id)
        self.amount = amount
        self.remaining = remaining
        self.total = total
        self.already_paid = already_paid
        self.currency = currency
        super().__init__(
            f"Payment of {amount} {currency} exceeds remaining balance "
            f"{remaining} {currency} on document {document_id} "
            f"(total {total}, already paid {already_paid})"
        )


# Concurrency exceptions


class ConcurrencyConflictError(LedgerKernelError):
    """
    Lock timeout, deadlock, or serialization failure.

    The transaction has been rolled back; re-running the whole operation
    from scratch is safe.
    """

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, operation: str, attempts: int = 1, reason: str | None = None):
        self.operation = operation
        self.attempts = attempts
        self.reason = reason
        super().__init__(
            f"Concurrency conflict during {operation} after {attempts} attempt(s)"
            + (f": {reason}" if reason else "")
        )
