"""
Party -- the client or supplier a document is issued to or received from.

Responsibility:
    Attribution only.  The reconciliation engine never reads a party; the
    selectors join it to render payment listings, and payments copy the
    document's party_id so they can be listed per party.

Architecture position:
    Kernel > Models.  Imports only from ledger_kernel.db.
"""

from enum import Enum

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase
from ledger_kernel.db.types import Name


class PartyType(str, Enum):
    """Classification of party types.

    Contract: Every Party has exactly one PartyType.  CLIENT parties own
    receivable documents; SUPPLIER parties own payable documents.
    """

    CLIENT = "client"
    SUPPLIER = "supplier"


class Party(TrackedBase):
    """
    External entity that the business invoices or is invoiced by.

    Guarantees:
        - party_type is set at creation and classifies the party permanently.
    """

    __tablename__ = "parties"

    __table_args__ = (
        Index("idx_party_type", "party_type"),
        Index("idx_party_active", "is_active"),
    )

    party_type: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[Name] = mapped_column(nullable=False)
    company: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Party {self.party_type}: {self.name}>"
