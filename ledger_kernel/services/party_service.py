"""
PartyService -- minimal registry of clients and suppliers.

Responsibility:
    Creates and looks up the parties documents are attributed to.  Client
    and supplier maintenance proper belongs to the outer application; the
    ledger only needs a row to reference.

Architecture position:
    Kernel > Services.  Flush-only; the caller owns the transaction.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.exceptions import PartyNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.party import Party, PartyType
from ledger_kernel.services.base import BaseService

logger = get_logger("services.party_service")


class PartyService(BaseService):
    """Create and fetch parties inside the caller's transaction."""

    def __init__(self, session: Session):
        super().__init__(session)

    def register_party(
        self,
        party_type: PartyType | str,
        name: str,
        company: str | None = None,
        email: str | None = None,
        actor_id: UUID | None = None,
    ) -> UUID:
        party_type = PartyType(party_type)
        if not name or not name.strip():
            raise ValueError("Party name cannot be empty")

        party = Party(
            party_type=party_type.value,
            name=name.strip(),
            company=company,
            email=email,
            created_by_id=actor_id,
        )
        self.session.add(party)
        self.session.flush()

        logger.info(
            "party_registered",
            extra={"party_id": str(party.id), "party_type": party_type.value},
        )
        return party.id

    def get_party(self, party_id: UUID) -> Party:
        party = self.session.get(Party, party_id)
        if party is None:
            raise PartyNotFoundError(str(party_id))
        return party

    def require_party_type(self, party_id: UUID, party_type: PartyType) -> Party:
        """
        Fetch a party that may own documents of the given ledger.

        A supplier is unknown to the receivables ledger and vice versa, so
        a type mismatch is reported as PartyNotFoundError.
        """
        party = self.get_party(party_id)
        if party.party_type != party_type.value:
            logger.warning(
                "party_type_mismatch",
                extra={
                    "party_id": str(party_id),
                    "party_type": party.party_type,
                    "expected": party_type.value,
                },
            )
            raise PartyNotFoundError(str(party_id))
        return party
