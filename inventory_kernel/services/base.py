"""
BaseService -- abstract base for kernel services that write.

Responsibility:
    Common constructor and flush contract for every writer in the kernel.
    Services receive a SQLAlchemy ``Session`` and use ``session.flush()``,
    never ``session.commit()``.  The caller (InventoryOrchestrator or a test)
    owns commit and rollback, which is what makes a multi-lot allocation
    one atomic unit of work.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Failure modes:
    - A lost optimistic-version race on flush (StaleDataError) or a
      transient lock error (SQLite "database is locked", PostgreSQL
      deadlock / serialization failure) is translated into
      ConcurrencyConflictError so the orchestrator can retry the whole
      unit of work.
"""

from abc import ABC

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from inventory_kernel.exceptions import ConcurrencyConflictError

_TRANSIENT_MARKERS = (
    "database is locked",
    "deadlock detected",
    "could not serialize access",
    "lock timeout",
)


def is_transient_lock_error(exc: BaseException) -> bool:
    """True for database errors that mean "lost a race, try again"."""
    if not isinstance(exc, OperationalError):
        return False
    message = str(exc).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.
    """

    def __init__(self, session: Session):
        self.session = session

    def _flush(self, entity_type: str, entity_id: object | None = None) -> None:
        """
        Flush pending changes, translating lost races into
        ConcurrencyConflictError.
        """
        try:
            self.session.flush()
        except StaleDataError as exc:
            raise ConcurrencyConflictError(
                entity_type,
                str(entity_id) if entity_id is not None else None,
            ) from exc
        except OperationalError as exc:
            if is_transient_lock_error(exc):
                raise ConcurrencyConflictError(
                    entity_type,
                    str(entity_id) if entity_id is not None else None,
                ) from exc
            raise
