"""
BaseService -- abstract base for session-bound kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    services that run inside a caller-owned transaction.  Subclasses use
    ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services.  LedgerStore and the party service extend this
    class; the ReconciliationEngine owns the transaction boundary and hands
    them its session.

Failure modes:
    - If a subclass calls ``session.commit()``, the payment write and the
      status write of one engine operation could land in different
      transactions, which is exactly the drift the engine exists to prevent.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for session-bound kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()`` -- the caller controls transaction
          boundaries.
    """

    def __init__(self, session: Session):
        """
        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session
