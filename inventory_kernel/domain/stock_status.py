"""
Stock status rules.

Pure functions that classify item stock levels against their minimum
threshold and answer date questions about lot expiry.  "Expired" here is
always a date comparison against an injected ``today``; it is never read
from the stored lot status.
"""

from datetime import date
from decimal import Decimal

from inventory_kernel.domain.values import StockLevel

DEFAULT_CRITICAL_RATIO = Decimal("0.5")


def classify_stock_level(
    on_hand: int,
    min_quantity: int,
    critical_ratio: Decimal = DEFAULT_CRITICAL_RATIO,
) -> StockLevel:
    """
    Bucket an item's on-hand quantity.

    OUT_OF_STOCK at 0, CRITICAL below ``min_quantity * critical_ratio``,
    LOW below ``min_quantity``, otherwise SUFFICIENT.
    """
    if on_hand <= 0:
        return StockLevel.OUT_OF_STOCK
    if Decimal(on_hand) < Decimal(min_quantity) * critical_ratio:
        return StockLevel.CRITICAL
    if on_hand < min_quantity:
        return StockLevel.LOW
    return StockLevel.SUFFICIENT


def is_expired(expiry_date: date, today: date) -> bool:
    """True once the expiry date has passed (the expiry day itself is usable)."""
    return expiry_date < today


def days_until_expiry(expiry_date: date, today: date) -> int:
    """Days from ``today`` to ``expiry_date``; negative once expired."""
    return (expiry_date - today).days


def is_expiring_within(expiry_date: date, today: date, within_days: int) -> bool:
    """True when today <= expiry_date <= today + within_days."""
    return 0 <= days_until_expiry(expiry_date, today) <= within_days
