"""
Module: inventory_kernel.domain.allocation
Responsibility:
    Plan a FEFO (first-expired-first-out) withdrawal of a requested
    quantity across the available lots of one item.

Architecture position:
    Kernel > Domain -- pure calculation layer, zero I/O.
    AllocationService loads and locks the candidate lots, calls
    ``plan_fefo_allocation``, and only then mutates anything.

Invariants enforced:
    - FEFO_ORDER: lots are drawn in (expiry_date, received_date, lot_number)
      order.  Each lot is drained fully before the next one is touched.
    - ALL_OR_NOTHING_ALLOCATION: if the candidates cannot cover the request
      the planner raises before returning a plan, so no partial plan can
      reach the mutating code.
    - Conservation: sum(draw.quantity) == requested.

Failure modes:
    - ValidationError if requested is not a positive integer.
    - InsufficientStockError if the combined candidate quantity is short.

Usage:
    plan = plan_fefo_allocation(
        candidates=[
            AllocationCandidate(lot_id=a, lot_number="L1", quantity=100,
                                expiry_date=date(2025, 1, 1),
                                received_date=date(2024, 1, 1)),
            AllocationCandidate(lot_id=b, lot_number="L2", quantity=50,
                                expiry_date=date(2025, 6, 1),
                                received_date=date(2024, 1, 1)),
        ],
        requested=120,
        item_id=item_id,
    )
    # plan.draws == (PlannedDraw(a, "L1", 100), PlannedDraw(b, "L2", 20))
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from inventory_kernel.domain.values import require_whole_quantity
from inventory_kernel.exceptions import InsufficientStockError


@dataclass(frozen=True)
class AllocationCandidate:
    """
    One lot that may contribute to an allocation.

    Guarantees:
        - ``quantity`` is the lot's on-hand quantity at planning time.
    """

    lot_id: UUID
    lot_number: str
    quantity: int
    expiry_date: date
    received_date: date

    @property
    def fefo_key(self) -> tuple[date, date, str]:
        return (self.expiry_date, self.received_date, self.lot_number)


@dataclass(frozen=True)
class PlannedDraw:
    """Quantity to take from a single lot."""

    lot_id: UUID
    lot_number: str
    quantity: int
    available: int

    @property
    def drains_lot(self) -> bool:
        return self.quantity == self.available


@dataclass(frozen=True)
class AllocationPlan:
    """
    Complete FEFO plan for one request.

    Guarantees:
        - ``total == requested``.
        - ``draws`` are in FEFO order and every draw quantity is > 0.
    """

    requested: int
    draws: tuple[PlannedDraw, ...]

    @property
    def total(self) -> int:
        return sum(d.quantity for d in self.draws)


def fefo_sorted(candidates: Sequence[AllocationCandidate]) -> list[AllocationCandidate]:
    """Candidates in FEFO order with the deterministic tie-break."""
    return sorted(candidates, key=lambda c: c.fefo_key)


def plan_fefo_allocation(
    candidates: Sequence[AllocationCandidate],
    requested: int,
    item_id: UUID | str | None = None,
) -> AllocationPlan:
    """
    Compute the FEFO draws that satisfy ``requested``.

    Lots with zero quantity are skipped.  The candidate sequence is re-sorted
    so the result does not depend on the caller's ordering.

    Raises:
        ValidationError: requested is not a positive integer.
        InsufficientStockError: combined quantity < requested.
    """
    require_whole_quantity("quantity", requested)

    ordered = [c for c in fefo_sorted(candidates) if c.quantity > 0]
    available = sum(c.quantity for c in ordered)
    if available < requested:
        raise InsufficientStockError(
            requested=requested,
            available=available,
            item_id=item_id,
        )

    draws: list[PlannedDraw] = []
    remaining = requested
    for candidate in ordered:
        if remaining == 0:
            break
        take = min(candidate.quantity, remaining)
        draws.append(
            PlannedDraw(
                lot_id=candidate.lot_id,
                lot_number=candidate.lot_number,
                quantity=take,
                available=candidate.quantity,
            )
        )
        remaining -= take

    return AllocationPlan(requested=requested, draws=tuple(draws))
