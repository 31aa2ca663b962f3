"""
Module: inventory_kernel.selectors.audit_selector
Responsibility: Read-only aggregation over lots and the ledger: movement
    totals, top items, department activity, stock levels, expiry alerts,
    daily statistics, stock changes, lot status breakdown and stock valuation.
Architecture position: Kernel > Selectors.  May import from models/ and
    domain/.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only.  All results are frozen DTOs.
    - Stock levels count AVAILABLE lots only; RESERVED, QUARANTINE and
      retired lots are not on hand for dispensing.
    - "Expired" is a date comparison against the ``today`` argument, never
      the stored EXPIRED status.

Failure modes:
    - Returns empty results (never raises) when nothing matches.
"""

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, func, select

from inventory_kernel.db.types import round_price
from inventory_kernel.domain.clock import to_utc
from inventory_kernel.domain.dtos import (
    DailyNetChange,
    DailyStatistics,
    DepartmentActivity,
    ItemMovement,
    ItemValuation,
    LotDTO,
    LotStatusCount,
    ReasonTotal,
    RequesterActivity,
    StockChangeStatistics,
    StockLevelDTO,
    StockValuation,
    TransactionSummary,
    TypeTotal,
)
from inventory_kernel.domain.stock_status import DEFAULT_CRITICAL_RATIO, classify_stock_level
from inventory_kernel.domain.values import (
    LotStatus,
    TransactionReason,
    TransactionType,
)
from inventory_kernel.models.item import Item
from inventory_kernel.models.lot import StockLot
from inventory_kernel.models.stock_transaction import LEDGER_ORDER, StockTransaction
from inventory_kernel.selectors.base import BaseSelector

_TYPE_ORDER = {t: i for i, t in enumerate(TransactionType)}
_REASON_ORDER = {r: i for i, r in enumerate(TransactionReason)}
_STATUS_ORDER = {s: i for i, s in enumerate(LotStatus)}


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def _in_range(start: datetime, end: datetime):
    return and_(
        StockTransaction.transaction_date >= to_utc(start),
        StockTransaction.transaction_date < to_utc(end),
    )


class AuditSelector(BaseSelector):
    """
    Reporting queries for inventory oversight.

    Guarantees:
        - Date ranges are half-open: start <= transaction_date < end.
        - Orderings are deterministic (ties broken by code or name).
    """

    # ------------------------------------------------------------------
    # Movement statistics
    # ------------------------------------------------------------------

    def totals_by_type(self, start: datetime, end: datetime) -> tuple[TypeTotal, ...]:
        rows = self.session.execute(
            select(
                StockTransaction.transaction_type,
                func.count(StockTransaction.id),
                func.coalesce(func.sum(StockTransaction.quantity), 0),
            )
            .where(_in_range(start, end))
            .group_by(StockTransaction.transaction_type)
        ).all()
        totals = [
            TypeTotal(transaction_type=TransactionType(t), count=int(c), quantity=int(q))
            for t, c, q in rows
        ]
        return tuple(sorted(totals, key=lambda t: _TYPE_ORDER[t.transaction_type]))

    def totals_by_reason(self, start: datetime, end: datetime) -> tuple[ReasonTotal, ...]:
        rows = self.session.execute(
            select(
                StockTransaction.reason,
                func.count(StockTransaction.id),
                func.coalesce(func.sum(StockTransaction.quantity), 0),
            )
            .where(_in_range(start, end))
            .group_by(StockTransaction.reason)
        ).all()
        totals = [
            ReasonTotal(reason=TransactionReason(r), count=int(c), quantity=int(q))
            for r, c, q in rows
        ]
        return tuple(sorted(totals, key=lambda t: _REASON_ORDER[t.reason]))

    def top_items(
        self,
        start: datetime,
        end: datetime,
        transaction_type: TransactionType | None = TransactionType.OUTBOUND,
        limit: int = 5,
    ) -> list[ItemMovement]:
        """Items ranked by quantity moved in the window."""
        conditions = [_in_range(start, end)]
        if transaction_type is not None:
            conditions.append(
                StockTransaction.transaction_type == TransactionType(transaction_type).value
            )

        quantity = func.sum(StockTransaction.quantity)
        stmt = (
            select(
                Item.id,
                Item.code,
                Item.name,
                func.count(StockTransaction.id),
                quantity,
            )
            .select_from(StockTransaction)
            .join(Item, Item.id == StockTransaction.item_id)
            .where(*conditions)
            .group_by(Item.id, Item.code, Item.name)
            .order_by(quantity.desc(), Item.code)
            .limit(limit)
        )
        return [
            ItemMovement(item_id=i, item_code=code, item_name=name, count=int(c), quantity=int(q))
            for i, code, name, c, q in self.session.execute(stmt).all()
        ]

    def department_activity(
        self,
        start: datetime,
        end: datetime,
        transaction_type: TransactionType | None = TransactionType.OUTBOUND,
        top_requesters: int = 3,
    ) -> list[DepartmentActivity]:
        """Per-department count and quantity, busiest department first."""
        conditions = [_in_range(start, end), StockTransaction.department.is_not(None)]
        if transaction_type is not None:
            conditions.append(
                StockTransaction.transaction_type == TransactionType(transaction_type).value
            )

        quantity = func.sum(StockTransaction.quantity)
        departments = self.session.execute(
            select(
                StockTransaction.department,
                func.count(StockTransaction.id),
                quantity,
            )
            .where(*conditions)
            .group_by(StockTransaction.department)
            .order_by(quantity.desc(), StockTransaction.department)
        ).all()

        requester_quantity = func.sum(StockTransaction.quantity)
        requester_rows = self.session.execute(
            select(
                StockTransaction.department,
                StockTransaction.requester_name,
                func.count(StockTransaction.id),
                requester_quantity,
            )
            .where(*conditions, StockTransaction.requester_name.is_not(None))
            .group_by(StockTransaction.department, StockTransaction.requester_name)
            .order_by(requester_quantity.desc(), StockTransaction.requester_name)
        ).all()

        by_department: dict[str, list[RequesterActivity]] = {}
        for dept, requester, c, q in requester_rows:
            bucket = by_department.setdefault(dept, [])
            if len(bucket) < top_requesters:
                bucket.append(RequesterActivity(requester_name=requester, count=int(c), quantity=int(q)))

        return [
            DepartmentActivity(
                department=dept,
                count=int(c),
                quantity=int(q),
                top_requesters=tuple(by_department.get(dept, ())),
            )
            for dept, c, q in departments
        ]

    def daily_statistics(self, day: date) -> DailyStatistics:
        start, end = _day_bounds(day)
        return DailyStatistics(day=day, totals=self.totals_by_type(start, end))

    def transaction_summary(self, start: datetime, end: datetime) -> TransactionSummary:
        reversal_count = self.session.execute(
            select(func.count(StockTransaction.id)).where(
                _in_range(start, end),
                StockTransaction.reversal_of_id.is_not(None),
            )
        ).scalar_one()
        return TransactionSummary(
            start=start,
            end=end,
            by_type=self.totals_by_type(start, end),
            by_reason=self.totals_by_reason(start, end),
            reversal_count=int(reversal_count),
        )

    def stock_changes(self, start_date: date, end_date: date) -> StockChangeStatistics:
        """
        Movement totals and signed net change for the inclusive days
        start_date..end_date, with the net change broken down per UTC day.
        """
        start, _ = _day_bounds(start_date)
        _, end = _day_bounds(end_date)
        rows = self.session.execute(
            select(
                StockTransaction.transaction_type,
                StockTransaction.quantity,
                StockTransaction.before_quantity,
                StockTransaction.after_quantity,
                StockTransaction.transaction_date,
            )
            .where(_in_range(start, end))
            .order_by(*LEDGER_ORDER)
        ).all()

        by_type: dict[TransactionType, list[int]] = {}
        by_day: dict[date, int] = {}
        for entry_type, quantity, before, after, when in rows:
            bucket = by_type.setdefault(TransactionType(entry_type), [0, 0])
            bucket[0] += 1
            bucket[1] += quantity
            day = to_utc(when).date()
            by_day[day] = by_day.get(day, 0) + (after - before)

        totals = tuple(
            TypeTotal(transaction_type=t, count=c, quantity=q)
            for t, (c, q) in sorted(by_type.items(), key=lambda kv: _TYPE_ORDER[kv[0]])
        )
        return StockChangeStatistics(
            start_date=start_date,
            end_date=end_date,
            totals=totals,
            net_change=sum(by_day.values()),
            daily_changes=tuple(
                DailyNetChange(day=day, net_change=change) for day, change in sorted(by_day.items())
            ),
        )

    # ------------------------------------------------------------------
    # Stock levels
    # ------------------------------------------------------------------

    def _on_hand_rows(self, item_id: UUID | None = None):
        available = (
            select(
                StockLot.item_id.label("item_id"),
                func.sum(StockLot.quantity).label("on_hand"),
            )
            .where(StockLot.status == LotStatus.AVAILABLE.value)
            .group_by(StockLot.item_id)
            .subquery()
        )
        stmt = (
            select(
                Item.id,
                Item.code,
                Item.name,
                Item.min_stock_quantity,
                func.coalesce(available.c.on_hand, 0),
            )
            .outerjoin(available, available.c.item_id == Item.id)
            .where(Item.is_active.is_(True))
            .order_by(Item.code)
        )
        if item_id is not None:
            stmt = stmt.where(Item.id == item_id)
        return self.session.execute(stmt).all()

    def stock_levels(
        self,
        critical_ratio: Decimal = DEFAULT_CRITICAL_RATIO,
    ) -> list[StockLevelDTO]:
        return [
            StockLevelDTO(
                item_id=i,
                item_code=code,
                item_name=name,
                on_hand=int(on_hand),
                min_stock_quantity=min_qty,
                level=classify_stock_level(int(on_hand), min_qty, critical_ratio),
            )
            for i, code, name, min_qty, on_hand in self._on_hand_rows()
        ]

    def stock_level_for_item(
        self,
        item_id: UUID,
        critical_ratio: Decimal = DEFAULT_CRITICAL_RATIO,
    ) -> StockLevelDTO | None:
        rows = self._on_hand_rows(item_id)
        if not rows:
            return None
        i, code, name, min_qty, on_hand = rows[0]
        return StockLevelDTO(
            item_id=i,
            item_code=code,
            item_name=name,
            on_hand=int(on_hand),
            min_stock_quantity=min_qty,
            level=classify_stock_level(int(on_hand), min_qty, critical_ratio),
        )

    def low_stock_items(
        self,
        critical_ratio: Decimal = DEFAULT_CRITICAL_RATIO,
    ) -> list[StockLevelDTO]:
        """Items whose AVAILABLE on-hand is below their minimum, worst first."""
        low = [s for s in self.stock_levels(critical_ratio) if s.on_hand < s.min_stock_quantity]
        return sorted(low, key=lambda s: (s.on_hand - s.min_stock_quantity, s.item_code))

    # ------------------------------------------------------------------
    # Lots
    # ------------------------------------------------------------------

    def expiring_lots(self, today: date, within_days: int) -> list[LotDTO]:
        """AVAILABLE lots with stock and today <= expiry_date <= today + within_days."""
        rows = self.session.execute(
            select(StockLot)
            .where(
                StockLot.status == LotStatus.AVAILABLE.value,
                StockLot.quantity > 0,
                StockLot.expiry_date >= today,
                StockLot.expiry_date <= today + timedelta(days=within_days),
            )
            .order_by(StockLot.expiry_date, StockLot.lot_number)
        ).scalars().all()
        return [lot.to_dto() for lot in rows]

    def expired_lots(self, today: date) -> list[LotDTO]:
        """Lots with stock whose expiry date has passed, whatever their stored status."""
        rows = self.session.execute(
            select(StockLot)
            .where(StockLot.expiry_date < today, StockLot.quantity > 0)
            .order_by(StockLot.expiry_date, StockLot.lot_number)
        ).scalars().all()
        return [lot.to_dto() for lot in rows]

    def lots_by_location(self, location: str) -> list[LotDTO]:
        rows = self.session.execute(
            select(StockLot)
            .where(StockLot.location == location)
            .order_by(StockLot.expiry_date, StockLot.lot_number)
        ).scalars().all()
        return [lot.to_dto() for lot in rows]

    def lots_for_item(self, item_id: UUID) -> list[LotDTO]:
        rows = self.session.execute(
            select(StockLot)
            .where(StockLot.item_id == item_id)
            .order_by(StockLot.expiry_date, StockLot.received_date, StockLot.lot_number)
        ).scalars().all()
        return [lot.to_dto() for lot in rows]

    def lot_status_statistics(self) -> list[LotStatusCount]:
        rows = self.session.execute(
            select(
                StockLot.status,
                func.count(StockLot.id),
                func.coalesce(func.sum(StockLot.quantity), 0),
            ).group_by(StockLot.status)
        ).all()
        counts = [
            LotStatusCount(status=LotStatus(s), lot_count=int(c), quantity=int(q))
            for s, c, q in rows
        ]
        return sorted(counts, key=lambda c: _STATUS_ORDER[c.status])

    def stock_valuation(self) -> StockValuation:
        """Value of AVAILABLE on-hand stock at each lot's unit cost."""
        rows = self.session.execute(
            select(
                Item.id,
                Item.code,
                Item.name,
                StockLot.quantity,
                StockLot.unit_cost,
            )
            .select_from(StockLot)
            .join(Item, Item.id == StockLot.item_id)
            .where(StockLot.status == LotStatus.AVAILABLE.value, StockLot.quantity > 0)
            .order_by(Item.code)
        ).all()

        per_item: dict[UUID, list] = {}
        unvalued = 0
        for item_id, code, name, quantity, unit_cost in rows:
            entry = per_item.setdefault(item_id, [code, name, 0, Decimal("0")])
            entry[2] += quantity
            if unit_cost is None:
                unvalued += quantity
            else:
                entry[3] += Decimal(unit_cost) * quantity

        items = tuple(
            ItemValuation(
                item_id=item_id,
                item_code=code,
                item_name=name,
                quantity=quantity,
                value=round_price(value),
            )
            for item_id, (code, name, quantity, value) in per_item.items()
        )
        total = sum((i.value for i in items), Decimal("0"))
        return StockValuation(total_value=round_price(total), items=items, unvalued_quantity=unvalued)
