"""
Payables Module Service -- supplier invoices and supplier payments.

Same engine as receivables, bound to the ``PAYABLES`` ledger kind.

Usage:
    service = PayablesService(session_factory)
    bill = service.register_document(
        party_id=supplier_id, number="SUP-0042",
        total=Money.of("250.500", "TND"),
    )
    service.create_payment(bill.id, "250.500", method="transfer")
"""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from ledger_config import LedgerSettings, get_active_settings
from ledger_kernel.domain.clock import Clock
from ledger_kernel.logging_config import get_logger
from ledger_kernel.services.notification import ChangeChannel
from ledger_kernel.services.reconciliation import ReconciliationEngine
from ledger_modules.payables.orm import PAYABLES

logger = get_logger("modules.payables.service")


class PayablesService(ReconciliationEngine):
    """Payments made to suppliers against their invoices."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        channel: ChangeChannel | None = None,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
    ):
        settings = settings or get_active_settings()
        super().__init__(
            PAYABLES,
            session_factory,
            channel=channel,
            clock=clock,
            max_conflict_retries=settings.max_conflict_retries,
        )
        logger.debug(
            "payables_service_initialized",
            extra={"max_conflict_retries": settings.max_conflict_retries},
        )
