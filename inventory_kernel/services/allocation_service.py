"""
AllocationService -- FEFO outbound withdrawal across lots.

Responsibility:
    Withdraws a requested quantity of one item from its AVAILABLE lots,
    earliest expiry first, writing one OUTBOUND ledger entry per lot
    touched.

Architecture position:
    Kernel > Services.  Imperative shell around the pure planner in
    domain/allocation.py.

Invariants enforced:
    ALL_OR_NOTHING_ALLOCATION -- the plan is computed from the locked
        candidates before any mutation; InsufficientStockError is raised
        with nothing changed.  The caller's single commit makes the
        multi-lot write atomic.
    FEFO_ORDER -- candidates are locked and drawn in
        (expiry_date, received_date, lot_number) order.
    NON_NEGATIVE_STOCK -- each draw goes through LotStore.adjust_quantity.

Failure modes:
    - ValidationError if the requested quantity is not a positive integer
      or the reason is unknown.
    - ItemNotFoundError for an unknown item.
    - InsufficientStockError when the AVAILABLE lots cannot cover the
      request.
    - ConcurrencyConflictError when a concurrent allocation changed a lot
      between the read and the write.

Audit relevance:
    The OUTBOUND entries carry department, requester and approver, which
    feed the department activity and top-item queries.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.domain.allocation import AllocationCandidate, plan_fefo_allocation
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import AllocationResult, LotAllocation
from inventory_kernel.domain.values import (
    TransactionReason,
    TransactionType,
    parse_reason,
    require_whole_quantity,
)
from inventory_kernel.exceptions import InsufficientStockError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.lot_store import LotStore
from inventory_kernel.services.transaction_ledger import TransactionLedger

logger = get_logger("services.allocation")


class AllocationService(BaseService):
    """
    FEFO allocation engine.

    Contract:
        ``allocate_outbound`` either returns an AllocationResult whose
        total equals the request, or raises without having mutated
        anything.

    Non-goals:
        - Does not commit.  Does not retry (the orchestrator does).
        - Does not reserve stock for later; allocation is withdrawal.
    """

    def __init__(
        self,
        session: Session,
        lot_store: LotStore,
        ledger: TransactionLedger,
        clock: Clock | None = None,
        exclude_expired: bool = False,
    ):
        super().__init__(session)
        self._lots = lot_store
        self._ledger = ledger
        self._clock = clock or SystemClock()
        self._exclude_expired = exclude_expired

    def allocate_outbound(
        self,
        item_id: UUID,
        requested_quantity: int,
        department: str | None = None,
        requester_name: str | None = None,
        approver_name: str | None = None,
        reason: TransactionReason = TransactionReason.PRESCRIPTION,
        reference_number: str | None = None,
        remarks: str | None = None,
        actor_id: UUID | None = None,
    ) -> AllocationResult:
        require_whole_quantity("quantity", requested_quantity)
        reason = parse_reason(reason)
        self._lots.get_item(item_id)

        expiring_on_or_after = self._clock.today() if self._exclude_expired else None
        lots = self._lots.list_available_lots_for_item(
            item_id,
            for_update=True,
            expiring_on_or_after=expiring_on_or_after,
        )

        candidates = [
            AllocationCandidate(
                lot_id=lot.id,
                lot_number=lot.lot_number,
                quantity=lot.quantity,
                expiry_date=lot.expiry_date,
                received_date=lot.received_date,
            )
            for lot in lots
        ]

        try:
            plan = plan_fefo_allocation(candidates, requested_quantity, item_id=item_id)
        except InsufficientStockError as exc:
            logger.warning(
                "allocation_insufficient_stock",
                extra={
                    "item_id": str(item_id),
                    "requested": exc.requested,
                    "available": exc.available,
                    "candidate_lots": len(candidates),
                },
            )
            raise

        lots_by_id = {lot.id: lot for lot in lots}
        allocations: list[LotAllocation] = []
        for draw in plan.draws:
            lot = lots_by_id[draw.lot_id]
            before, after = self._lots.adjust_quantity(lot, -draw.quantity, actor_id=actor_id)
            entry = self._ledger.append(
                TransactionType.OUTBOUND,
                item_id=item_id,
                lot_id=lot.id,
                quantity=draw.quantity,
                before_quantity=before,
                after_quantity=after,
                reason=reason,
                reference_number=reference_number,
                department=department,
                requester_name=requester_name,
                approver_name=approver_name,
                remarks=remarks,
                actor_id=actor_id,
            )
            allocations.append(
                LotAllocation(
                    lot_id=lot.id,
                    lot_number=lot.lot_number,
                    quantity_taken=draw.quantity,
                    before_quantity=before,
                    after_quantity=after,
                    transaction_id=entry.id,
                )
            )

        result = AllocationResult(
            item_id=item_id,
            requested_quantity=requested_quantity,
            allocations=tuple(allocations),
        )

        logger.info(
            "allocation_completed",
            extra={
                "item_id": str(item_id),
                "requested": requested_quantity,
                "lots_touched": len(allocations),
                "lot_numbers": [a.lot_number for a in allocations],
            },
        )
        return result
