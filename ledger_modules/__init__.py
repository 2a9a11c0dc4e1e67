"""
Ledger modules: the receivables and payables instantiations of the kernel
reconciliation engine.

``build_service`` is the single lookup used by scripts and the command
surface wiring to go from a ledger name to a configured engine.
"""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

LEDGER_NAMES = ("receivable", "payable")


def build_service(
    ledger: str,
    session_factory: sessionmaker[Session],
    channel=None,
    clock=None,
    settings=None,
):
    """Return the engine for ``ledger`` ("receivable" or "payable")."""
    if ledger == "receivable":
        from ledger_modules.receivables.service import ReceivablesService

        return ReceivablesService(session_factory, channel=channel, clock=clock, settings=settings)
    if ledger == "payable":
        from ledger_modules.payables.service import PayablesService

        return PayablesService(session_factory, channel=channel, clock=clock, settings=settings)
    raise ValueError(f"Unknown ledger {ledger!r}; expected one of {LEDGER_NAMES}")


__all__ = ["LEDGER_NAMES", "build_service"]
