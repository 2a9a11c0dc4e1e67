"""Kernel ORM models: parties and the shared ledger table shapes."""

from ledger_kernel.models.ledger import DocumentMixin, LedgerKind, PaymentMixin
from ledger_kernel.models.party import Party, PartyType

__all__ = [
    "DocumentMixin",
    "LedgerKind",
    "Party",
    "PartyType",
    "PaymentMixin",
]
