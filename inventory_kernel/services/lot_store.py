"""
LotStore -- lowest-level reader and mutator of lots.

Responsibility:
    Creates lots, loads them (optionally row-locked), and applies quantity,
    status and attribute changes.  Every other service that touches on-hand
    quantity goes through ``adjust_quantity`` or ``set_quantity``.

Architecture position:
    Kernel > Services.  Called by AllocationService, ReversalService and
    LotMovementService.  Does not write ledger entries; its callers pair
    each quantity change with exactly one TransactionLedger.append.

Invariants enforced:
    NON_NEGATIVE_STOCK -- ``adjust_quantity`` raises InsufficientStockError
        instead of clamping; ``set_quantity`` rejects negatives.  The
        CHECK constraint on stock_lots.quantity is the backstop.
    UNIQUE_LOT_NUMBER -- pre-check plus UNIQUE constraint, with the
        constraint's IntegrityError translated to DuplicateLotError.
    FEFO_ORDER -- ``list_available_lots_for_item`` returns candidates in
        (expiry_date, received_date, lot_number) order, which is also the
        order row locks are taken in.

Failure modes:
    - ItemNotFoundError, LotNotFoundError.
    - DuplicateLotError, ValidationError.
    - InsufficientStockError.
    - ConcurrencyConflictError when a concurrent writer bumped the lot's
      version first.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.values import (
    SYSTEM_ACTOR_ID,
    LotStatus,
    parse_status,
    require_whole_quantity,
)
from inventory_kernel.exceptions import (
    DuplicateLotError,
    InsufficientStockError,
    ItemNotFoundError,
    LotNotFoundError,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.item import Item
from inventory_kernel.models.lot import StockLot
from inventory_kernel.services.base import BaseService

logger = get_logger("services.lot_store")


class LotStore(BaseService):
    """
    Lot persistence and quantity mutation.

    Contract:
        Flush-only.  Quantity mutations return the (before, after) snapshot
        the caller records in the ledger.

    Guarantees:
        - A lot's quantity never goes below zero through this service.
        - lot_number, item_id and expiry_date are set once at creation.

    Non-goals:
        - Does not derive "expired" from dates.  Stored status changes only
          via ``set_status``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def get_item(self, item_id: UUID) -> Item:
        item = self.session.get(Item, item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        return item

    def register_item(
        self,
        code: str,
        name: str,
        min_stock_quantity: int = 10,
        unit: str = "EA",
        category: str | None = None,
        actor_id: UUID | None = None,
    ) -> Item:
        """Add a catalog item.  Seeding and tests only; the catalog is owned elsewhere."""
        if not code or not code.strip():
            raise ValidationError("code", "item code must not be blank")
        require_whole_quantity("min_stock_quantity", min_stock_quantity, minimum=0)

        item = Item(
            code=code.strip(),
            name=name,
            unit=unit,
            category=category,
            min_stock_quantity=min_stock_quantity,
            created_by_id=actor_id or SYSTEM_ACTOR_ID,
        )
        self.session.add(item)
        self.session.flush()
        logger.info("item_registered", extra={"item_id": str(item.id), "code": item.code})
        return item

    # ------------------------------------------------------------------
    # Lot creation and lookup
    # ------------------------------------------------------------------

    def create_lot(
        self,
        item_id: UUID,
        lot_number: str,
        quantity: int,
        expiry_date: date,
        received_date: date | None = None,
        manufacture_date: date | None = None,
        supplier_name: str | None = None,
        unit_cost: Decimal | None = None,
        location: str | None = None,
        remarks: str | None = None,
        actor_id: UUID | None = None,
    ) -> StockLot:
        """
        Create an AVAILABLE lot holding ``quantity``.

        Raises:
            ValidationError: blank lot number, quantity not a positive integer, missing
                expiry date, negative unit cost, or manufacture after expiry.
            ItemNotFoundError: unknown item.
            DuplicateLotError: lot number already exists.
        """
        if lot_number is None or not lot_number.strip():
            raise ValidationError("lot_number", "must not be blank")
        require_whole_quantity("quantity", quantity)
        if expiry_date is None:
            raise ValidationError("expiry_date", "is required")
        if manufacture_date is not None and manufacture_date > expiry_date:
            raise ValidationError("manufacture_date", "must not be after expiry_date")
        if unit_cost is not None and unit_cost < 0:
            raise ValidationError("unit_cost", "must be >= 0")

        lot_number = lot_number.strip()
        self.get_item(item_id)

        existing = self.session.execute(
            select(StockLot.id).where(StockLot.lot_number == lot_number)
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateLotError(lot_number)

        lot = StockLot(
            item_id=item_id,
            lot_number=lot_number,
            quantity=quantity,
            expiry_date=expiry_date,
            received_date=received_date or self._clock.today(),
            manufacture_date=manufacture_date,
            supplier_name=supplier_name,
            unit_cost=unit_cost,
            location=location,
            remarks=remarks,
            status=LotStatus.AVAILABLE,
            created_by_id=actor_id or SYSTEM_ACTOR_ID,
        )
        self.session.add(lot)
        try:
            self.session.flush()
        except IntegrityError as exc:
            # Concurrent creator won the UNIQUE(lot_number) race
            if "lot_number" in str(exc.orig).lower():
                raise DuplicateLotError(lot_number) from exc
            raise

        logger.info(
            "lot_created",
            extra={
                "lot_id": str(lot.id),
                "item_id": str(item_id),
                "lot_number": lot_number,
                "quantity": quantity,
                "expiry_date": expiry_date.isoformat(),
            },
        )
        return lot

    def get_lot(self, lot_id: UUID) -> StockLot:
        lot = self.session.get(StockLot, lot_id)
        if lot is None:
            raise LotNotFoundError(lot_id=lot_id)
        return lot

    def get_lot_for_update(self, lot_id: UUID) -> StockLot:
        """Load a lot with a row lock (SELECT ... FOR UPDATE on PostgreSQL)."""
        lot = self.session.execute(
            select(StockLot)
            .where(StockLot.id == lot_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if lot is None:
            raise LotNotFoundError(lot_id=lot_id)
        return lot

    def get_lot_by_number(self, lot_number: str) -> StockLot:
        lot = self.session.execute(
            select(StockLot).where(StockLot.lot_number == lot_number)
        ).scalar_one_or_none()
        if lot is None:
            raise LotNotFoundError(lot_number=lot_number)
        return lot

    def list_available_lots_for_item(
        self,
        item_id: UUID,
        for_update: bool = False,
        expiring_on_or_after: date | None = None,
    ) -> list[StockLot]:
        """
        AVAILABLE lots of ``item_id`` with quantity > 0, in FEFO order.

        With ``for_update`` the rows are locked in that same order, so two
        allocations for the same item always contend in a fixed sequence.
        ``expiring_on_or_after`` drops lots whose expiry date has passed.
        """
        stmt = (
            select(StockLot)
            .where(
                StockLot.item_id == item_id,
                StockLot.status == LotStatus.AVAILABLE,
                StockLot.quantity > 0,
            )
            .order_by(StockLot.expiry_date, StockLot.received_date, StockLot.lot_number)
        )
        if expiring_on_or_after is not None:
            stmt = stmt.where(StockLot.expiry_date >= expiring_on_or_after)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return list(self.session.execute(stmt).scalars().all())

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def adjust_quantity(
        self,
        lot: StockLot,
        delta: int,
        actor_id: UUID | None = None,
    ) -> tuple[int, int]:
        """
        Add ``delta`` (may be negative) to the lot's quantity.

        Returns:
            (before, after)

        Raises:
            InsufficientStockError: the result would be negative.
        """
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise ValidationError("delta", f"must be a whole number of units, got {delta!r}")
        before = lot.quantity
        after = before + delta
        if after < 0:
            raise InsufficientStockError(
                requested=-delta,
                available=before,
                item_id=lot.item_id,
                lot_id=lot.id,
            )
        lot.quantity = after
        if actor_id is not None:
            lot.updated_by_id = actor_id
        self._flush("StockLot", lot.id)

        logger.debug(
            "lot_quantity_changed",
            extra={"lot_id": str(lot.id), "before": before, "after": after},
        )
        return before, after

    def set_quantity(
        self,
        lot: StockLot,
        new_quantity: int,
        actor_id: UUID | None = None,
    ) -> tuple[int, int]:
        """Set the lot's quantity to an absolute value.  Returns (before, after)."""
        require_whole_quantity("new_quantity", new_quantity, minimum=0)
        return self.adjust_quantity(lot, new_quantity - lot.quantity, actor_id=actor_id)

    def set_status(
        self,
        lot: StockLot,
        status: LotStatus,
        actor_id: UUID | None = None,
    ) -> None:
        status = parse_status(status)
        previous = LotStatus(lot.status)
        if previous == status:
            return
        lot.status = status
        if actor_id is not None:
            lot.updated_by_id = actor_id
        self._flush("StockLot", lot.id)

        logger.info(
            "lot_status_changed",
            extra={
                "lot_id": str(lot.id),
                "from_status": previous.value,
                "to_status": status.value,
            },
        )

    def update_attributes(
        self,
        lot: StockLot,
        location: str | None = None,
        remarks: str | None = None,
        actor_id: UUID | None = None,
    ) -> None:
        """Update mutable descriptive fields.  None leaves a field unchanged."""
        if location is not None:
            lot.location = location
        if remarks is not None:
            lot.remarks = remarks
        if actor_id is not None:
            lot.updated_by_id = actor_id
        self._flush("StockLot", lot.id)
