"""
Module: inventory_kernel.selectors.ledger_selector
Responsibility: Filtered, ordered read access to the stock ledger.
Architecture position: Kernel > Selectors.

A LedgerFilter is a small typed object; every set field becomes one WHERE
clause, ANDed together.  Results are in (transaction_date, seq) order,
reversed when the filter asks for newest first.
"""

from uuid import UUID

from sqlalchemy import Select, func, select

from inventory_kernel.domain.clock import to_utc
from inventory_kernel.domain.dtos import LedgerFilter, TransactionDTO
from inventory_kernel.domain.values import TransactionReason, TransactionType
from inventory_kernel.models.stock_transaction import LEDGER_ORDER, StockTransaction
from inventory_kernel.selectors.base import BaseSelector


def build_ledger_query(ledger_filter: LedgerFilter) -> Select:
    """Translate a LedgerFilter into a SELECT over stock_transactions."""
    stmt = select(StockTransaction)
    f = ledger_filter
    if f.item_id is not None:
        stmt = stmt.where(StockTransaction.item_id == f.item_id)
    if f.lot_id is not None:
        stmt = stmt.where(StockTransaction.lot_id == f.lot_id)
    if f.transaction_type is not None:
        stmt = stmt.where(
            StockTransaction.transaction_type == TransactionType(f.transaction_type).value
        )
    if f.reason is not None:
        stmt = stmt.where(StockTransaction.reason == TransactionReason(f.reason).value)
    if f.department is not None:
        stmt = stmt.where(StockTransaction.department == f.department)
    if f.requester is not None:
        stmt = stmt.where(StockTransaction.requester_name == f.requester)
    if f.start is not None:
        stmt = stmt.where(StockTransaction.transaction_date >= to_utc(f.start))
    if f.end is not None:
        stmt = stmt.where(StockTransaction.transaction_date < to_utc(f.end))
    if f.newest_first:
        stmt = stmt.order_by(*(column.desc() for column in LEDGER_ORDER))
    else:
        stmt = stmt.order_by(*LEDGER_ORDER)
    if f.limit is not None:
        stmt = stmt.limit(f.limit)
    return stmt


class LedgerSelector(BaseSelector):
    """Ledger queries returning TransactionDTOs."""

    def query(self, ledger_filter: LedgerFilter) -> list[TransactionDTO]:
        rows = self.session.execute(build_ledger_query(ledger_filter)).scalars().all()
        return [row.to_dto() for row in rows]

    def count(self, ledger_filter: LedgerFilter) -> int:
        subquery = build_ledger_query(ledger_filter).subquery()
        return self.session.execute(select(func.count()).select_from(subquery)).scalar_one()

    def lot_history(self, lot_id: UUID) -> list[TransactionDTO]:
        return self.query(LedgerFilter(lot_id=lot_id))

    def recent(self, limit: int = 10) -> list[TransactionDTO]:
        """The latest ``limit`` entries, newest first."""
        return self.query(LedgerFilter(limit=limit, newest_first=True))

    def get(self, transaction_id: UUID) -> TransactionDTO | None:
        row = self.session.get(StockTransaction, transaction_id)
        return row.to_dto() if row is not None else None

    def reversal_of(self, transaction_id: UUID) -> TransactionDTO | None:
        row = self.session.execute(
            select(StockTransaction).where(StockTransaction.reversal_of_id == transaction_id)
        ).scalar_one_or_none()
        return row.to_dto() if row is not None else None
