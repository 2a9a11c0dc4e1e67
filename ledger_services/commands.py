"""
PaymentCommandSurface -- typed boundary between collaborators and the engine.

Responsibility:
    Accepts loosely-typed payloads from the UI layer and the document
    generator, checks their shape, delegates to a ReconciliationEngine and
    turns every kernel error into a structured ``CommandError``.  No
    business rule lives here.

Architecture position:
    Services layer.  Imports from ``ledger_kernel``; never imported by it.

Payload conventions:
    - Keys may be camelCase or snake_case (``documentId`` / ``document_id``);
      ``invoiceId`` is accepted as a document id alias.
    - Amounts may be strings, ints, Decimals or floats.  Floats are
      converted through ``str`` so ``0.1`` means exactly ``0.1``.
    - Dates are ISO 8601; a full timestamp is reduced to its date.

Failure modes:
    - Kernel errors (LedgerKernelError) are returned as failed
      CommandResults, never raised.
    - Anything else is a programming error and propagates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Mapping
from uuid import UUID, uuid4

from ledger_kernel.domain.values import Currency, Money
from ledger_kernel.exceptions import (
    ConcurrencyConflictError,
    DocumentNotFoundError,
    InvalidAmountError,
    LedgerKernelError,
    MissingDocumentReferenceError,
    NotFoundError,
    OverpaymentRejectedError,
    PartyNotFoundError,
    PaymentNotFoundError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.services.reconciliation import ReconciliationEngine

logger = get_logger("services.commands")


class CommandStatus(str, Enum):
    """Outcome of a command."""

    OK = "ok"
    INVALID = "invalid"
    NOT_FOUND = "not_found"
    REJECTED = "rejected"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class CommandError:
    """Structured, JSON-ready description of a failed command."""

    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_exception(cls, exc: LedgerKernelError) -> CommandError:
        return cls(
            code=exc.code,
            message=str(exc),
            details={k: _jsonable(v) for k, v in exc.details().items()},
        )

    def to_payload(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": dict(self.details)}


@dataclass(frozen=True)
class CommandResult:
    """Result of a command: a JSON-ready value on success, an error otherwise."""

    status: CommandStatus
    value: Any = None
    error: CommandError | None = None

    @property
    def is_success(self) -> bool:
        return self.status == CommandStatus.OK

    def to_payload(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "value": self.value,
            "error": self.error.to_payload() if self.error else None,
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def _status_for(exc: LedgerKernelError) -> CommandStatus:
    if isinstance(exc, NotFoundError):
        return CommandStatus.NOT_FOUND
    if isinstance(exc, ConcurrencyConflictError):
        return CommandStatus.CONFLICT
    if isinstance(exc, OverpaymentRejectedError):
        return CommandStatus.REJECTED
    if isinstance(exc, ValidationError):
        return CommandStatus.INVALID
    return CommandStatus.REJECTED


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------


def _pick(payload: Mapping[str, Any], *keys: str) -> Any:
    """First non-None value among ``keys``."""
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _optional_text(value: Any) -> str | None:
    if _blank(value):
        return None
    return str(value)


def parse_amount(value: Any) -> Decimal:
    """Parse a collaborator-supplied amount into a strictly positive Decimal."""
    if _blank(value):
        raise InvalidAmountError(value, "amount is required")
    if isinstance(value, bool):
        raise InvalidAmountError(value, "amount is not a number")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value.strip()) if isinstance(value, str) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError(value, "amount is not a number") from None
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmountError(value)
    return amount


def parse_date(value: Any) -> date | None:
    """Parse an ISO date or timestamp; ``None`` and blanks mean "not given"."""
    if _blank(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        raise ValueError(f"Invalid ISO date: {value!r}") from None


def _parse_id(value: Any, not_found: Callable[[str], LedgerKernelError]) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value).strip())
    except ValueError:
        raise not_found(str(value)) from None


def _document_id(payload: Mapping[str, Any], payment_id: UUID | None = None) -> UUID:
    raw = _pick(payload, "document_id", "documentId", "invoice_id", "invoiceId")
    if _blank(raw):
        raise MissingDocumentReferenceError(payment_id)
    return _parse_id(raw, DocumentNotFoundError)


@dataclass(frozen=True)
class CreatePaymentRequest:
    """Shape-checked input of ``create_payment``."""

    document_id: UUID
    amount: Decimal
    payment_date: date | None = None
    method: str | None = None
    reference: str | None = None
    notes: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> CreatePaymentRequest:
        return cls(
            document_id=_document_id(payload),
            amount=parse_amount(payload.get("amount")),
            payment_date=_payment_date(payload),
            method=_optional_text(_pick(payload, "method", "payment_method", "paymentMethod")),
            reference=_optional_text(payload.get("reference")),
            notes=_optional_text(payload.get("notes")),
        )


@dataclass(frozen=True)
class UpdatePaymentRequest:
    """Shape-checked input of ``update_payment``."""

    payment_id: UUID
    document_id: UUID
    amount: Decimal
    payment_date: date | None = None
    method: str | None = None
    reference: str | None = None
    notes: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> UpdatePaymentRequest:
        raw_id = _pick(payload, "id", "payment_id", "paymentId")
        if _blank(raw_id):
            raise PaymentNotFoundError(str(raw_id))
        payment_id = _parse_id(raw_id, PaymentNotFoundError)
        return cls(
            payment_id=payment_id,
            document_id=_document_id(payload, payment_id),
            amount=parse_amount(payload.get("amount")),
            payment_date=_payment_date(payload),
            method=_optional_text(_pick(payload, "method", "payment_method", "paymentMethod")),
            reference=_optional_text(payload.get("reference")),
            notes=_optional_text(payload.get("notes")),
        )


@dataclass(frozen=True)
class RegisterDocumentRequest:
    """Shape-checked input of ``register_document``."""

    party_id: UUID
    number: str
    total: Money
    issue_date: date | None = None
    due_date: date | None = None

    @classmethod
    def from_payload(
        cls,
        payload: Mapping[str, Any],
        default_currency: str = "TND",
    ) -> RegisterDocumentRequest:
        raw_party = _pick(payload, "party_id", "partyId", "client_id", "clientId",
                          "supplier_id", "supplierId")
        if _blank(raw_party):
            raise PartyNotFoundError(str(raw_party))
        number = _pick(payload, "number", "invoice_number", "invoiceNumber")
        if _blank(number):
            raise ValueError("Document number is required")
        amount = parse_amount(_pick(payload, "total", "total_amount", "totalAmount"))
        currency = Currency(str(payload.get("currency") or default_currency))
        try:
            total = Money.of(amount, currency)
        except ValueError as exc:
            raise InvalidAmountError(amount, str(exc)) from None
        return cls(
            party_id=_parse_id(raw_party, PartyNotFoundError),
            number=str(number).strip(),
            total=total,
            issue_date=parse_date(_pick(payload, "issue_date", "issueDate")),
            due_date=parse_date(_pick(payload, "due_date", "dueDate")),
        )


def _payment_date(payload: Mapping[str, Any]) -> date | None:
    return parse_date(_pick(payload, "payment_date", "paymentDate"))


# ---------------------------------------------------------------------------
# Surface
# ---------------------------------------------------------------------------


class PaymentCommandSurface:
    """
    Command API over one ledger's engine.

    Contract:
        Every method returns a CommandResult.  On success ``value`` is a
        JSON-ready payload (dict, list of dicts or int).  Kernel errors
        become ``CommandError(code, message, details)`` where ``details``
        holds the error's structured fields as strings.

    Usage:
        surface = PaymentCommandSurface(receivables_service)
        result = surface.create_payment({"invoiceId": id, "amount": "400.000"})
        if not result.is_success:
            show(result.error.details["remaining"])
    """

    def __init__(self, engine: ReconciliationEngine, default_currency: str = "TND"):
        self._engine = engine
        self._default_currency = default_currency

    @property
    def ledger(self) -> str:
        return self._engine.ledger

    def _execute(
        self,
        command: str,
        action: Callable[[], Any],
        actor_id: UUID | None = None,
        correlation_id: str | None = None,
    ) -> CommandResult:
        with LogContext.bind(
            correlation_id=correlation_id or str(uuid4()),
            actor_id=actor_id,
            ledger=self._engine.ledger,
        ):
            try:
                value = action()
            except LedgerKernelError as exc:
                status = _status_for(exc)
                logger.warning(
                    "command_failed",
                    extra={"command": command, "status": status.value, "code": exc.code},
                )
                return CommandResult(status=status, error=CommandError.from_exception(exc))
            logger.debug("command_succeeded", extra={"command": command})
            return CommandResult(status=CommandStatus.OK, value=value)

    def _invalid(self, command: str, exc: ValueError) -> CommandResult:
        logger.warning("command_invalid", extra={"command": command, "reason": str(exc)})
        return CommandResult(
            status=CommandStatus.INVALID,
            error=CommandError(code="INVALID_REQUEST", message=str(exc)),
        )

    # -- payments -------------------------------------------------------------

    def create_payment(
        self,
        request: CreatePaymentRequest | Mapping[str, Any],
        actor_id: UUID | None = None,
        correlation_id: str | None = None,
    ) -> CommandResult:
        def action():
            req = request
            if not isinstance(req, CreatePaymentRequest):
                req = CreatePaymentRequest.from_payload(req)
            payment = self._engine.create_payment(
                req.document_id,
                req.amount,
                payment_date=req.payment_date,
                method=req.method,
                reference=req.reference,
                notes=req.notes,
                actor_id=actor_id,
            )
            return payment.to_payload()

        try:
            return self._execute("create_payment", action, actor_id, correlation_id)
        except ValueError as exc:
            return self._invalid("create_payment", exc)

    def update_payment(
        self,
        request: UpdatePaymentRequest | Mapping[str, Any],
        actor_id: UUID | None = None,
        correlation_id: str | None = None,
    ) -> CommandResult:
        def action():
            req = request
            if not isinstance(req, UpdatePaymentRequest):
                req = UpdatePaymentRequest.from_payload(req)
            payment = self._engine.update_payment(
                req.payment_id,
                req.document_id,
                req.amount,
                payment_date=req.payment_date,
                method=req.method,
                reference=req.reference,
                notes=req.notes,
                actor_id=actor_id,
            )
            return payment.to_payload()

        try:
            return self._execute("update_payment", action, actor_id, correlation_id)
        except ValueError as exc:
            return self._invalid("update_payment", exc)

    def delete_payment(
        self,
        payment_id: UUID | str,
        actor_id: UUID | None = None,
        correlation_id: str | None = None,
    ) -> CommandResult:
        def action():
            pid = _parse_id(payment_id, PaymentNotFoundError)
            self._engine.delete_payment(pid, actor_id=actor_id)
            return {"id": str(pid)}

        return self._execute("delete_payment", action, actor_id, correlation_id)

    def list_payments_for_document(self, document_id: UUID | str) -> CommandResult:
        def action():
            if _blank(document_id):
                raise MissingDocumentReferenceError()
            did = _parse_id(document_id, DocumentNotFoundError)
            return [view.to_payload() for view in self._engine.list_payments_for_document(did)]

        return self._execute("list_payments_for_document", action)

    def list_payments_for_party(self, party_id: UUID | str) -> CommandResult:
        def action():
            pid = _parse_id(party_id, PartyNotFoundError)
            return [view.to_payload() for view in self._engine.list_payments_for_party(pid)]

        return self._execute("list_payments_for_party", action)

    def list_payments(self) -> CommandResult:
        return self._execute(
            "list_payments",
            lambda: [view.to_payload() for view in self._engine.list_payments()],
        )

    # -- documents ------------------------------------------------------------

    def register_document(
        self,
        request: RegisterDocumentRequest | Mapping[str, Any],
        actor_id: UUID | None = None,
        correlation_id: str | None = None,
    ) -> CommandResult:
        def action():
            req = request
            if not isinstance(req, RegisterDocumentRequest):
                req = RegisterDocumentRequest.from_payload(req, self._default_currency)
            document = self._engine.register_document(
                party_id=req.party_id,
                number=req.number,
                total=req.total,
                issue_date=req.issue_date,
                due_date=req.due_date,
                actor_id=actor_id,
            )
            return document.to_payload()

        try:
            return self._execute("register_document", action, actor_id, correlation_id)
        except ValueError as exc:
            return self._invalid("register_document", exc)

    def get_balance(self, document_id: UUID | str) -> CommandResult:
        def action():
            did = _parse_id(document_id, DocumentNotFoundError)
            return self._engine.get_balance(did).to_payload()

        return self._execute("get_balance", action)

    def refresh_statuses(self, actor_id: UUID | None = None) -> CommandResult:
        return self._execute(
            "refresh_statuses",
            lambda: {"changed": self._engine.refresh_statuses(actor_id=actor_id)},
            actor_id,
        )
