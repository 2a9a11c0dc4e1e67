"""
Module: ledger_kernel.db.types
Responsibility: Annotated column declarations shared by every ledger table,
    so that receivable and payable tables are identical in shape.
Architecture position: Kernel > DB.  MUST NOT import from models/, services/,
    selectors/ or domain/.

Invariants enforced:
    CRITICAL: amounts are stored as BIGINT minor units.  Never Float,
    never Numeric -- the column holds exactly Money.minor_units.
"""

from typing import Annotated

from sqlalchemy import BigInteger, String, Text
from sqlalchemy.orm import mapped_column

# Amount in currency minor units (e.g. millimes)
MinorUnits = Annotated[int, mapped_column(BigInteger, nullable=False)]

# ISO 4217 currency code (e.g., "TND", "EUR")
CurrencyCode = Annotated[str, mapped_column(String(3), nullable=False)]

# Document status value (DocumentStatus.value)
StatusCode = Annotated[str, mapped_column(String(20), nullable=False)]

# Short identifier strings (document numbers, payment references)
ShortCode = Annotated[str, mapped_column(String(100))]

# Display names
Name = Annotated[str, mapped_column(String(255))]

# Free text
LongText = Annotated[str, mapped_column(Text)]
