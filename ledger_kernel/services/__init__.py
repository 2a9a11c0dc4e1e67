"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.ledger_store import LedgerStore
from ledger_kernel.services.notification import ChangeChannel, Subscription
from ledger_kernel.services.party_service import PartyService
from ledger_kernel.services.reconciliation import ReconciliationEngine

__all__ = [
    "ChangeChannel",
    "LedgerStore",
    "PartyService",
    "ReconciliationEngine",
    "Subscription",
]
