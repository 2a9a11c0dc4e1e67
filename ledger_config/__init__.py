"""
ledger_config -- single public entrypoint for ledger settings.

Responsibility:
    ``get_active_settings()`` is the way runtime code obtains settings.
    It loads once (YAML file named by ``LEDGER_CONFIG_FILE`` if set, then
    ``LEDGER_*`` environment overrides) and caches the result.

Architecture position:
    Sits beside ``ledger_kernel``.  The kernel receives settings by
    injection and never reads the environment itself.
"""

from __future__ import annotations

import threading

from ledger_config.loader import load_settings
from ledger_config.schema import LedgerSettings

_active: LedgerSettings | None = None
_lock = threading.Lock()


def get_active_settings() -> LedgerSettings:
    """Return the process-wide settings, loading them on first use."""
    global _active
    with _lock:
        if _active is None:
            _active = load_settings()
        return _active


def reset_active_settings() -> None:
    """Forget cached settings. FOR TESTING ONLY."""
    global _active
    with _lock:
        _active = None


__all__ = [
    "LedgerSettings",
    "get_active_settings",
    "load_settings",
    "reset_active_settings",
]
