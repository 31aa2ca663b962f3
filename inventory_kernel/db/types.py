"""
Module: inventory_kernel.db.types
Responsibility: Annotated type aliases for inventory column types, so every
    model declares quantities, codes and sequence numbers identically.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Quantities are whole units (BigInteger).  No floats for stock counts.
    - Unit prices use Decimal with fixed precision; no floats for money.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String

# Whole-unit stock quantity
Quantity = Annotated[int, BigInteger]

# Unit price / valuation amount
Price = Annotated[Decimal, Numeric(19, 4)]

# Monotonic sequence number for ordering
Sequence = Annotated[int, BigInteger]

# Short identifier strings (lot numbers, codes, references)
ShortCode = Annotated[str, String(50)]

# Display names and storage locations
Name = Annotated[str, String(255)]

# Long free text (remarks, descriptions)
LongText = Annotated[str, String(4000)]

PRICE_DECIMAL_PLACES = 4
DEFAULT_ROUNDING = ROUND_HALF_UP


def round_price(value: Decimal) -> Decimal:
    """Round a valuation amount to PRICE_DECIMAL_PLACES (half up)."""
    quantum = Decimal(10) ** -PRICE_DECIMAL_PLACES
    return value.quantize(quantum, rounding=DEFAULT_ROUNDING)
