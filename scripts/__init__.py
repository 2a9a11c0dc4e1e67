"""Operator scripts for the payment ledger."""
