"""
Receivables Module Service -- client invoices and client payments.

Thin instantiation of the kernel ReconciliationEngine over the
``RECEIVABLES`` ledger kind.  All balance and status logic lives in the
kernel; this module only supplies the tables and the runtime settings.

Usage:
    service = ReceivablesService(session_factory, channel=channel)
    invoice = service.register_document(
        party_id=client_id, number="INV-2024-001",
        total=Money.of("1000.000", "TND"), due_date=date(2024, 2, 1),
    )
    service.create_payment(invoice.id, Decimal("400.000"), method="cash")
"""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from ledger_config import LedgerSettings, get_active_settings
from ledger_kernel.domain.clock import Clock
from ledger_kernel.logging_config import get_logger
from ledger_kernel.services.notification import ChangeChannel
from ledger_kernel.services.reconciliation import ReconciliationEngine
from ledger_modules.receivables.orm import RECEIVABLES

logger = get_logger("modules.receivables.service")


class ReceivablesService(ReconciliationEngine):
    """Payments received from clients against their invoices."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        channel: ChangeChannel | None = None,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
    ):
        settings = settings or get_active_settings()
        super().__init__(
            RECEIVABLES,
            session_factory,
            channel=channel,
            clock=clock,
            max_conflict_retries=settings.max_conflict_retries,
        )
        logger.debug(
            "receivables_service_initialized",
            extra={"max_conflict_retries": settings.max_conflict_retries},
        )
