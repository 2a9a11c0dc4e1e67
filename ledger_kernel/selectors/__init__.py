"""Read-only selectors over the ledger."""

from ledger_kernel.selectors.payment_selector import PaymentSelector

__all__ = ["PaymentSelector"]
