#!/usr/bin/env python3
"""
Operator commands for the payment ledger.

Reads settings through ledger_config (LEDGER_CONFIG_FILE, LEDGER_* env),
runs one command and prints its result as JSON.

Usage:
    python3 scripts/ledger_admin.py init-db
    python3 scripts/ledger_admin.py refresh-statuses --ledger receivable
    python3 scripts/ledger_admin.py balance --ledger payable <DOCUMENT_ID>
    python3 scripts/ledger_admin.py payments --ledger receivable --party <PARTY_ID>
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from ledger_config import get_active_settings  # noqa: E402
from ledger_kernel.db.engine import (  # noqa: E402
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from ledger_kernel.logging_config import configure_logging, get_logger  # noqa: E402
from ledger_modules import LEDGER_NAMES, build_service  # noqa: E402
from ledger_services.commands import PaymentCommandSurface  # noqa: E402

logger = get_logger("scripts.ledger_admin")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Payment ledger administration")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create all ledger tables")

    refresh = sub.add_parser(
        "refresh-statuses",
        help="Persist status changes caused by passed due dates",
    )
    refresh.add_argument("--ledger", choices=LEDGER_NAMES, required=True)

    balance = sub.add_parser("balance", help="Show a document's balance")
    balance.add_argument("--ledger", choices=LEDGER_NAMES, required=True)
    balance.add_argument("document_id")

    payments = sub.add_parser("payments", help="List payments, newest first")
    payments.add_argument("--ledger", choices=LEDGER_NAMES, required=True)
    scope = payments.add_mutually_exclusive_group()
    scope.add_argument("--document", dest="document_id")
    scope.add_argument("--party", dest="party_id")

    return p.parse_args(argv)


def _run(args: argparse.Namespace, settings) -> dict:
    if args.command == "init-db":
        create_tables()
        return {"status": "ok", "value": {"tables": "created"}, "error": None}

    surface = PaymentCommandSurface(
        build_service(args.ledger, get_session_factory(), settings=settings),
        default_currency=settings.currency,
    )
    if args.command == "refresh-statuses":
        result = surface.refresh_statuses()
    elif args.command == "balance":
        result = surface.get_balance(args.document_id)
    elif args.document_id:
        result = surface.list_payments_for_document(args.document_id)
    elif args.party_id:
        result = surface.list_payments_for_party(args.party_id)
    else:
        result = surface.list_payments()
    return result.to_payload()


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = get_active_settings()
    configure_logging(level=settings.log_level)

    init_engine_from_url(
        settings.database_url,
        echo=settings.echo_sql,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        lock_timeout_seconds=settings.lock_timeout_seconds,
    )
    try:
        output = _run(args, settings)
    finally:
        reset_engine()

    print(json.dumps(output, indent=2, default=str))
    logger.info("admin_command_finished", extra={"command": args.command})
    return 0 if output["status"] == "ok" else 1


if __name__ == "__main__":
    sys.exit(main())
