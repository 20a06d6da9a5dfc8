"""
Module: docengine.db.types
Responsibility: Annotated column type aliases shared by every model so that
    amounts, rates and codes are stored with identical precision.
Architecture position: Engine > DB.  May be imported by models/ and
    services/.  MUST NOT import from those layers.

Invariants enforced:
    - No floats for money.  Amounts, quantities and rates are Decimal
      columns with explicit scale; rounding to presentation precision is
      done by docengine.domain.money, never by the column type.
"""

from decimal import Decimal
from typing import Annotated

from sqlalchemy import Numeric, String

# Monetary amount: 38 digits, 9 decimal places (unrounded inputs fit)
Money = Annotated[Decimal, Numeric(38, 9)]

# Percentage rate (0..100) with room for fractional rates like 2.75
Rate = Annotated[Decimal, Numeric(9, 4)]

# Line quantity (fractional units allowed)
Quantity = Annotated[Decimal, Numeric(38, 9)]

# Short identifier strings (document types, period keys, enum values)
ShortCode = Annotated[str, String(50)]

# Long text for descriptions and notes
LongText = Annotated[str, String(4000)]
