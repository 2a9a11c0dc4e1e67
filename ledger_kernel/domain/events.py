"""
Events -- change notifications emitted after a ledger transaction commits.

An event is identified by ``(entity_kind, operation)`` and carries the
ledger it happened in ("receivable" or "payable") plus a JSON-ready payload.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EntityKind(str, Enum):
    PAYMENT = "payment"
    DOCUMENT = "document"


class ChangeOperation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class ChangeEvent:
    """A committed change to a payment or a document."""

    entity_kind: EntityKind
    operation: ChangeOperation
    ledger: str
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> tuple[str, str]:
        return (self.entity_kind.value, self.operation.value)
