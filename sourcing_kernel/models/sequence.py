"""
Module: sourcing_kernel.models.sequence
Responsibility: Named counter rows backing SequenceService.

Each row is locked (SELECT ... FOR UPDATE) while its value is incremented;
the counter row is the sole source of the next value.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from sourcing_kernel.db.base import Base


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
