"""
InventoryOrchestrator -- the kernel's external interface.

Ties together:
- LotStore: lot persistence and quantity mutation
- LotMovementService: single-lot movements
- AllocationService: FEFO outbound withdrawal
- ReversalService: compensating entries
- TransactionLedger / LedgerSelector / AuditSelector: ledger and reporting

Every public operation is one unit of work: a fresh session from the
injected factory, commit on success, rollback on any exception.  A unit of
work that loses a race on a lot or counter (ConcurrencyConflictError,
StaleDataError at commit, or a transient lock error) is retried from
scratch up to ``max_retries`` times with linear backoff, then
ConcurrencyConflictError is raised.  Business errors are never retried.

All results are frozen DTOs built before the session closes.

A batch is not one unit of work: each line is applied as its own
operation, so one failing line leaves the others committed.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import TypeVar
from uuid import UUID
from uuid import uuid4 as _uuid4

from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    AllocationResult,
    AuditCount,
    BatchLine,
    BatchLineResult,
    BatchResult,
    DailyStatistics,
    DepartmentActivity,
    InventoryAuditResult,
    ItemDTO,
    ItemMovement,
    LedgerFilter,
    LotDTO,
    LotStatusCount,
    StockChangeStatistics,
    StockLevelDTO,
    StockValuation,
    TransactionDTO,
    TransactionSummary,
    TypeTotal,
)
from inventory_kernel.domain.stock_status import DEFAULT_CRITICAL_RATIO
from inventory_kernel.domain.values import (
    LotStatus,
    TransactionReason,
    TransactionType,
    parse_transaction_type,
)
from inventory_kernel.exceptions import (
    ConcurrencyConflictError,
    InventoryKernelError,
    ItemNotFoundError,
    ValidationError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.selectors.audit_selector import AuditSelector
from inventory_kernel.selectors.ledger_selector import LedgerSelector
from inventory_kernel.services.allocation_service import AllocationService
from inventory_kernel.services.base import is_transient_lock_error
from inventory_kernel.services.lot_movement_service import LotMovementService
from inventory_kernel.services.lot_store import LotStore
from inventory_kernel.services.reversal_service import ReversalService
from inventory_kernel.services.sequence_service import SequenceService
from inventory_kernel.services.transaction_ledger import TransactionLedger

logger = get_logger("services.inventory_orchestrator")

T = TypeVar("T")


@dataclass(frozen=True)
class UnitOfWork:
    """Services bound to one session for the duration of one operation."""

    session: Session
    lots: LotStore
    ledger: TransactionLedger
    movements: LotMovementService
    allocation: AllocationService
    reversal: ReversalService
    ledger_reader: LedgerSelector
    audit: AuditSelector


def _str(value: object | None) -> str | None:
    return str(value) if value is not None else None


class InventoryOrchestrator:
    """
    Orchestrates inventory operations.

    Contract:
        Each public method owns exactly one transaction.  Callers never see
        a partially applied operation.

    Guarantees:
        - Lost races are retried at most ``max_retries`` times.
        - Failures are logged as ``<operation>_failed`` and re-raised.

    Non-goals:
        - Authorization, pagination and presentation belong to callers.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        max_retries: int = 3,
        retry_backoff_seconds: float = 0.05,
        expiry_warning_days: int = 30,
        critical_ratio: Decimal = DEFAULT_CRITICAL_RATIO,
        exclude_expired: bool = False,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._max_retries = max_retries
        self._retry_backoff_seconds = retry_backoff_seconds
        self._expiry_warning_days = expiry_warning_days
        self._critical_ratio = critical_ratio
        self._exclude_expired = exclude_expired

    @property
    def clock(self) -> Clock:
        return self._clock

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def _unit_of_work(self, session: Session) -> UnitOfWork:
        lots = LotStore(session, self._clock)
        ledger = TransactionLedger(session, self._clock, SequenceService(session))
        return UnitOfWork(
            session=session,
            lots=lots,
            ledger=ledger,
            movements=LotMovementService(session, lots, ledger, self._clock),
            allocation=AllocationService(
                session, lots, ledger, self._clock, exclude_expired=self._exclude_expired
            ),
            reversal=ReversalService(session, lots, ledger, self._clock),
            ledger_reader=LedgerSelector(session),
            audit=AuditSelector(session),
        )

    @staticmethod
    def _as_conflict(exc: Exception) -> ConcurrencyConflictError | None:
        if isinstance(exc, ConcurrencyConflictError):
            return exc
        if isinstance(exc, StaleDataError) or is_transient_lock_error(exc):
            return ConcurrencyConflictError("unit_of_work")
        return None

    def _execute(
        self,
        operation: str,
        work: Callable[[UnitOfWork], T],
        read_only: bool = False,
        **context: str | None,
    ) -> T:
        with LogContext.bind(
            correlation_id=str(_uuid4()),
            operation=operation,
            **context,
        ):
            t0 = time.monotonic()
            attempt = 0
            while True:
                attempt += 1
                session = self._session_factory()
                try:
                    result = work(self._unit_of_work(session))
                    if read_only:
                        session.rollback()
                    else:
                        session.commit()
                except Exception as exc:
                    session.rollback()
                    conflict = self._as_conflict(exc)
                    if conflict is None:
                        self._log_failure(operation, exc, attempt)
                        raise
                    if attempt <= self._max_retries:
                        logger.warning(
                            "unit_of_work_conflict_retry",
                            extra={
                                "attempt": attempt,
                                "max_retries": self._max_retries,
                                "entity_type": conflict.entity_type,
                                "entity_id": conflict.entity_id,
                            },
                        )
                        time.sleep(self._retry_backoff_seconds * attempt)
                        continue
                    exhausted = ConcurrencyConflictError(
                        conflict.entity_type,
                        conflict.entity_id,
                        attempts=attempt,
                    )
                    self._log_failure(operation, exhausted, attempt)
                    raise exhausted from exc
                finally:
                    session.close()

                if not read_only:
                    logger.info(
                        f"{operation}_completed",
                        extra={
                            "attempts": attempt,
                            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                        },
                    )
                return result

    @staticmethod
    def _log_failure(operation: str, exc: Exception, attempts: int) -> None:
        extra = {"attempts": attempts, "error_code": getattr(exc, "code", None)}
        if isinstance(exc, InventoryKernelError):
            logger.warning(f"{operation}_failed", extra=extra, exc_info=exc)
        else:
            logger.error(f"{operation}_failed", extra=extra, exc_info=exc)

    # ------------------------------------------------------------------
    # Catalog (seeding only)
    # ------------------------------------------------------------------

    def register_item(
        self,
        code: str,
        name: str,
        min_stock_quantity: int = 10,
        unit: str = "EA",
        category: str | None = None,
        actor_id: UUID | None = None,
    ) -> ItemDTO:
        def work(uow: UnitOfWork) -> ItemDTO:
            return uow.lots.register_item(
                code, name, min_stock_quantity, unit, category, actor_id
            ).to_dto()

        return self._execute("register_item", work, actor_id=_str(actor_id))

    # ------------------------------------------------------------------
    # Lot lifecycle
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
        reference_number: str | None = None,
        actor_id: UUID | None = None,
    ) -> LotDTO:
        """Create a lot and its INBOUND entry (0 -> quantity, reason PURCHASE)."""

        def work(uow: UnitOfWork) -> LotDTO:
            lot, _ = uow.movements.receive_lot(
                item_id=item_id,
                lot_number=lot_number,
                quantity=quantity,
                expiry_date=expiry_date,
                received_date=received_date,
                manufacture_date=manufacture_date,
                supplier_name=supplier_name,
                unit_cost=unit_cost,
                location=location,
                remarks=remarks,
                reference_number=reference_number,
                actor_id=actor_id,
            )
            return lot.to_dto()

        return self._execute(
            "create_lot", work, item_id=_str(item_id), actor_id=_str(actor_id)
        )

    def receive_inbound(
        self,
        lot_id: UUID,
        quantity: int,
        reason: TransactionReason = TransactionReason.PURCHASE,
        reference_number: str | None = None,
        remarks: str | None = None,
        actor_id: UUID | None = None,
    ) -> TransactionDTO:
        def work(uow: UnitOfWork) -> TransactionDTO:
            return uow.movements.receive_inbound(
                lot_id, quantity, reason, reference_number, remarks, actor_id
            ).to_dto()

        return self._execute(
            "receive_inbound", work, lot_id=_str(lot_id), actor_id=_str(actor_id)
        )

    def adjust_lot(
        self,
        lot_id: UUID,
        new_quantity: int,
        reason: TransactionReason,
        remarks: str | None = None,
        approver_name: str | None = None,
        actor_id: UUID | None = None,
    ) -> TransactionDTO:
        def work(uow: UnitOfWork) -> TransactionDTO:
            return uow.movements.adjust_lot(
                lot_id, new_quantity, reason, remarks, approver_name, actor_id
            ).to_dto()

        return self._execute(
            "adjust_lot", work, lot_id=_str(lot_id), actor_id=_str(actor_id)
        )

    def allocate_outbound(
        self,
        item_id: UUID,
        quantity: int,
        department: str | None = None,
        requester_name: str | None = None,
        approver_name: str | None = None,
        reason: TransactionReason = TransactionReason.PRESCRIPTION,
        reference_number: str | None = None,
        remarks: str | None = None,
        actor_id: UUID | None = None,
    ) -> AllocationResult:
        def work(uow: UnitOfWork) -> AllocationResult:
            return uow.allocation.allocate_outbound(
                item_id,
                quantity,
                department=department,
                requester_name=requester_name,
                approver_name=approver_name,
                reason=reason,
                reference_number=reference_number,
                remarks=remarks,
                actor_id=actor_id,
            )

        return self._execute(
            "allocate_outbound", work, item_id=_str(item_id), actor_id=_str(actor_id)
        )

    def receive_return(
        self,
        lot_id: UUID,
        quantity: int,
        reason: TransactionReason = TransactionReason.OTHER,
        department: str | None = None,
        requester_name: str | None = None,
        reference_number: str | None = None,
        remarks: str | None = None,
        actor_id: UUID | None = None,
    ) -> TransactionDTO:
        def work(uow: UnitOfWork) -> TransactionDTO:
            return uow.movements.receive_return(
                lot_id,
                quantity,
                reason,
                department=department,
                requester_name=requester_name,
                reference_number=reference_number,
                remarks=remarks,
                actor_id=actor_id,
            ).to_dto()

        return self._execute(
            "receive_return", work, lot_id=_str(lot_id), actor_id=_str(actor_id)
        )

    def dispose_lot(
        self,
        lot_id: UUID,
        quantity: int,
        reason: TransactionReason = TransactionReason.EXPIRED,
        approver_name: str | None = None,
        remarks: str | None = None,
        actor_id: UUID | None = None,
    ) -> TransactionDTO:
        def work(uow: UnitOfWork) -> TransactionDTO:
            return uow.movements.dispose_lot(
                lot_id, quantity, reason, approver_name, remarks, actor_id
            ).to_dto()

        return self._execute(
            "dispose_lot", work, lot_id=_str(lot_id), actor_id=_str(actor_id)
        )

    def transfer_lot(
        self,
        lot_id: UUID,
        new_location: str,
        remarks: str | None = None,
        actor_id: UUID | None = None,
    ) -> TransactionDTO:
        def work(uow: UnitOfWork) -> TransactionDTO:
            return uow.movements.transfer_lot(lot_id, new_location, remarks, actor_id).to_dto()

        return self._execute(
            "transfer_lot", work, lot_id=_str(lot_id), actor_id=_str(actor_id)
        )

    def update_lot_status(
        self,
        lot_id: UUID,
        status: LotStatus,
        remarks: str | None = None,
        actor_id: UUID | None = None,
    ) -> LotDTO:
        def work(uow: UnitOfWork) -> LotDTO:
            return uow.movements.update_lot_status(lot_id, status, remarks, actor_id).to_dto()

        return self._execute(
            "update_lot_status", work, lot_id=_str(lot_id), actor_id=_str(actor_id)
        )

    def reverse_transaction(
        self,
        transaction_id: UUID,
        reason: str,
        actor_id: UUID | None = None,
    ) -> TransactionDTO:
        def work(uow: UnitOfWork) -> TransactionDTO:
            return uow.reversal.reverse(transaction_id, reason, actor_id).to_dto()

        return self._execute(
            "reverse_transaction",
            work,
            transaction_id=_str(transaction_id),
            actor_id=_str(actor_id),
        )

    def perform_inventory_audit(
        self,
        counts: list[AuditCount],
        auditor: str | None = None,
        actor_id: UUID | None = None,
    ) -> InventoryAuditResult:
        def work(uow: UnitOfWork) -> InventoryAuditResult:
            return uow.movements.perform_inventory_audit(counts, auditor, actor_id)

        return self._execute("perform_inventory_audit", work, actor_id=_str(actor_id))

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def process_batch(
        self,
        lines: list[BatchLine],
        department: str | None = None,
        requester_name: str | None = None,
        approver_name: str | None = None,
        remarks: str | None = None,
        actor_id: UUID | None = None,
    ) -> BatchResult:
        """
        Apply each line as its own operation and report per-line outcomes.

        The batch-level department, requester, approver and remarks apply
        to every line; a line's own remarks take precedence.  Kernel errors
        are recorded on the failing line and processing continues.  Any
        other exception propagates and stops the batch; lines already
        applied stay committed.
        """
        results: list[BatchLineResult] = []
        for index, line in enumerate(lines):
            try:
                transaction_ids = self._apply_batch_line(
                    line,
                    department=department,
                    requester_name=requester_name,
                    approver_name=approver_name,
                    remarks=line.remarks if line.remarks is not None else remarks,
                    actor_id=actor_id,
                )
            except InventoryKernelError as exc:
                results.append(
                    BatchLineResult(
                        index=index,
                        transaction_type=line.transaction_type,
                        succeeded=False,
                        error_code=exc.code,
                        error_message=str(exc),
                    )
                )
                continue
            results.append(
                BatchLineResult(
                    index=index,
                    transaction_type=line.transaction_type,
                    succeeded=True,
                    transaction_ids=transaction_ids,
                )
            )

        result = BatchResult(lines=tuple(results))
        logger.info(
            "batch_processed",
            extra={
                "total": result.total_count,
                "succeeded": result.succeeded_count,
                "failed": result.failed_count,
            },
        )
        return result

    def _apply_batch_line(
        self,
        line: BatchLine,
        department: str | None,
        requester_name: str | None,
        approver_name: str | None,
        remarks: str | None,
        actor_id: UUID | None,
    ) -> tuple[UUID, ...]:
        entry_type = parse_transaction_type(line.transaction_type)
        if entry_type == TransactionType.OUTBOUND:
            if line.item_id is None:
                raise ValidationError("item_id", "outbound lines must name an item")
            allocation = self.allocate_outbound(
                line.item_id,
                line.quantity,
                department=department,
                requester_name=requester_name,
                approver_name=approver_name,
                reason=line.reason or TransactionReason.PRESCRIPTION,
                reference_number=line.reference_number,
                remarks=remarks,
                actor_id=actor_id,
            )
            return allocation.transaction_ids

        if entry_type == TransactionType.TRANSFER:
            raise ValidationError("transaction_type", "transfers cannot be batched")
        if line.lot_id is None:
            raise ValidationError("lot_id", f"{entry_type.value} lines must name a lot")

        if entry_type == TransactionType.INBOUND:
            entry = self.receive_inbound(
                line.lot_id,
                line.quantity,
                line.reason or TransactionReason.PURCHASE,
                reference_number=line.reference_number,
                remarks=remarks,
                actor_id=actor_id,
            )
        elif entry_type == TransactionType.RETURN:
            entry = self.receive_return(
                line.lot_id,
                line.quantity,
                line.reason or TransactionReason.OTHER,
                department=department,
                requester_name=requester_name,
                reference_number=line.reference_number,
                remarks=remarks,
                actor_id=actor_id,
            )
        elif entry_type == TransactionType.DISPOSAL:
            entry = self.dispose_lot(
                line.lot_id,
                line.quantity,
                line.reason or TransactionReason.EXPIRED,
                approver_name=approver_name,
                remarks=remarks,
                actor_id=actor_id,
            )
        else:
            if line.reason is None:
                raise ValidationError("reason", "adjustment lines must give a reason")
            entry = self.adjust_lot(
                line.lot_id,
                line.quantity,
                line.reason,
                remarks=remarks,
                approver_name=approver_name,
                actor_id=actor_id,
            )
        return (entry.id,)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_lot(self, lot_id: UUID) -> LotDTO:
        return self._execute(
            "get_lot", lambda uow: uow.lots.get_lot(lot_id).to_dto(), read_only=True
        )

    def get_lot_by_number(self, lot_number: str) -> LotDTO:
        return self._execute(
            "get_lot_by_number",
            lambda uow: uow.lots.get_lot_by_number(lot_number).to_dto(),
            read_only=True,
        )

    def get_item(self, item_id: UUID) -> ItemDTO:
        return self._execute(
            "get_item", lambda uow: uow.lots.get_item(item_id).to_dto(), read_only=True
        )

    def get_transaction(self, transaction_id: UUID) -> TransactionDTO:
        return self._execute(
            "get_transaction",
            lambda uow: uow.ledger.get(transaction_id).to_dto(),
            read_only=True,
        )

    def query_ledger(self, ledger_filter: LedgerFilter) -> list[TransactionDTO]:
        return self._execute(
            "query_ledger", lambda uow: uow.ledger_reader.query(ledger_filter), read_only=True
        )

    def recent_transactions(self, limit: int = 10) -> list[TransactionDTO]:
        """The latest ``limit`` ledger entries, newest first."""
        if limit <= 0:
            raise ValidationError("limit", f"must be positive, got {limit}")
        return self._execute(
            "recent_transactions", lambda uow: uow.ledger_reader.recent(limit), read_only=True
        )

    def lot_history(self, lot_id: UUID) -> list[TransactionDTO]:
        def work(uow: UnitOfWork) -> list[TransactionDTO]:
            uow.lots.get_lot(lot_id)
            return uow.ledger_reader.lot_history(lot_id)

        return self._execute("lot_history", work, read_only=True)

    def verify_lot(self, lot_id: UUID) -> int:
        """Replay the lot's ledger against its on-hand quantity."""

        def work(uow: UnitOfWork) -> int:
            return uow.ledger.verify_lot_balance(uow.lots.get_lot(lot_id))

        return self._execute("verify_lot", work, read_only=True, lot_id=_str(lot_id))

    def list_lots_for_item(self, item_id: UUID) -> list[LotDTO]:
        def work(uow: UnitOfWork) -> list[LotDTO]:
            uow.lots.get_item(item_id)
            return uow.audit.lots_for_item(item_id)

        return self._execute("list_lots_for_item", work, read_only=True)

    def get_low_stock_items(self) -> list[StockLevelDTO]:
        return self._execute(
            "get_low_stock_items",
            lambda uow: uow.audit.low_stock_items(self._critical_ratio),
            read_only=True,
        )

    def get_stock_levels(self) -> list[StockLevelDTO]:
        return self._execute(
            "get_stock_levels",
            lambda uow: uow.audit.stock_levels(self._critical_ratio),
            read_only=True,
        )

    def get_stock_level(self, item_id: UUID) -> StockLevelDTO:
        def work(uow: UnitOfWork) -> StockLevelDTO:
            level = uow.audit.stock_level_for_item(item_id, self._critical_ratio)
            if level is None:
                raise ItemNotFoundError(item_id)
            return level

        return self._execute("get_stock_level", work, read_only=True)

    def get_expiring_lots(self, within_days: int | None = None) -> list[LotDTO]:
        days = self._expiry_warning_days if within_days is None else within_days
        return self._execute(
            "get_expiring_lots",
            lambda uow: uow.audit.expiring_lots(self._clock.today(), days),
            read_only=True,
        )

    def get_expired_lots(self) -> list[LotDTO]:
        return self._execute(
            "get_expired_lots",
            lambda uow: uow.audit.expired_lots(self._clock.today()),
            read_only=True,
        )

    def get_lots_by_location(self, location: str) -> list[LotDTO]:
        return self._execute(
            "get_lots_by_location",
            lambda uow: uow.audit.lots_by_location(location),
            read_only=True,
        )

    def totals_by_type(self, start: datetime, end: datetime) -> tuple[TypeTotal, ...]:
        return self._execute(
            "totals_by_type", lambda uow: uow.audit.totals_by_type(start, end), read_only=True
        )

    def top_items(
        self,
        start: datetime,
        end: datetime,
        transaction_type: TransactionType | None = TransactionType.OUTBOUND,
        limit: int = 5,
    ) -> list[ItemMovement]:
        return self._execute(
            "top_items",
            lambda uow: uow.audit.top_items(start, end, transaction_type, limit),
            read_only=True,
        )

    def department_activity(self, start: datetime, end: datetime) -> list[DepartmentActivity]:
        return self._execute(
            "department_activity",
            lambda uow: uow.audit.department_activity(start, end),
            read_only=True,
        )

    def daily_statistics(self, day: date | None = None) -> DailyStatistics:
        target = day or self._clock.today()
        return self._execute(
            "daily_statistics", lambda uow: uow.audit.daily_statistics(target), read_only=True
        )

    def transaction_summary(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> TransactionSummary:
        """Summary for [start, end); defaults to the last 30 days."""
        end = end or self._clock.now_utc()
        start = start or end - timedelta(days=30)
        return self._execute(
            "transaction_summary",
            lambda uow: uow.audit.transaction_summary(start, end),
            read_only=True,
        )

    def stock_changes(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> StockChangeStatistics:
        """Stock changes over the inclusive day range; defaults to the last 30 days."""
        end_date = end_date or self._clock.today()
        start_date = start_date or end_date - timedelta(days=30)
        if start_date > end_date:
            raise ValidationError("start_date", "must not be after end_date")
        return self._execute(
            "stock_changes",
            lambda uow: uow.audit.stock_changes(start_date, end_date),
            read_only=True,
        )

    def lot_status_statistics(self) -> list[LotStatusCount]:
        return self._execute(
            "lot_status_statistics", lambda uow: uow.audit.lot_status_statistics(), read_only=True
        )

    def stock_valuation(self) -> StockValuation:
        return self._execute(
            "stock_valuation", lambda uow: uow.audit.stock_valuation(), read_only=True
        )
