"""
Settings Schema (``ledger_config.schema``).

Frozen dataclass describing every runtime setting of the ledger, with
defaults suited to the embedded single-file deployment.
"""

from dataclasses import dataclass

from ledger_kernel.domain.currency import CurrencyRegistry


@dataclass(frozen=True)
class LedgerSettings:
    """
    Runtime settings for the ledger.

    Override at load time from YAML or ``LEDGER_*`` environment variables:

        settings = load_settings(Path("ledger.yaml"))
    """

    # Persistence
    database_url: str = "sqlite:///ledger.db"
    echo_sql: bool = False
    pool_size: int = 10
    max_overflow: int = 10

    # Concurrency: bounded lock wait, then ConcurrencyConflictError
    lock_timeout_seconds: float = 5.0
    max_conflict_retries: int = 3

    # Money
    currency: str = "TND"

    # Logging
    log_level: str = "INFO"

    def __post_init__(self):
        if not self.database_url:
            raise ValueError("database_url cannot be empty")
        if self.lock_timeout_seconds <= 0:
            raise ValueError("lock_timeout_seconds must be positive")
        if self.max_conflict_retries < 0:
            raise ValueError("max_conflict_retries cannot be negative")
        if self.pool_size <= 0:
            raise ValueError("pool_size must be positive")
        object.__setattr__(self, "currency", CurrencyRegistry.validate(self.currency))
        object.__setattr__(self, "log_level", self.log_level.upper())
