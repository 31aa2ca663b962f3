"""
Module: inventory_kernel.models.sequence
Responsibility: Named monotonic counters backing ledger ``seq`` values.
Architecture position: Kernel > Models.  Written only by SequenceService.
"""

from sqlalchemy import BigInteger, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter row.

    Row-level locking on PostgreSQL and the optimistic ``version`` column
    on every backend keep two units of work from issuing the same value.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
