"""Command surface consumed by the UI and document-generation collaborators."""

from ledger_services.commands import (
    CommandError,
    CommandResult,
    CommandStatus,
    CreatePaymentRequest,
    PaymentCommandSurface,
    RegisterDocumentRequest,
    UpdatePaymentRequest,
)

__all__ = [
    "CommandError",
    "CommandResult",
    "CommandStatus",
    "CreatePaymentRequest",
    "PaymentCommandSurface",
    "RegisterDocumentRequest",
    "UpdatePaymentRequest",
]
