"""
SequenceService -- named counters and order numbers.

Order numbers look like ``ORD-20240101-000042``: prefix, the creation
date, then the next value of the ``order_number`` counter zero-padded to
six digits.  The counter never resets, so numbers stay unique across days.

Counters live in ``sequence_counters`` and are always read under
``SELECT ... FOR UPDATE``; two sessions can never hand out the same value.
Nothing is committed here; a rolled-back order gives its number back.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sourcing_kernel.logging_config import get_logger
from sourcing_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    ORDER_NUMBER = "order_number"

    def __init__(self, session: Session):
        self._session = session

    def next_order_number(self, prefix: str, created_at: datetime) -> str:
        value = self.next_value(self.ORDER_NUMBER)
        return f"{prefix}-{created_at:%Y%m%d}-{value:06d}"

    def next_value(self, name: str) -> int:
        """Increment the named counter, creating it at 1 on first use."""
        counter = self._lock(name) or self._create(name)
        if counter is None:
            value = 1
        else:
            counter.current_value += 1
            self._session.flush()
            value = counter.current_value
        logger.debug("sequence_allocated", extra={"sequence_name": name, "value": value})
        return value

    def current_value(self, name: str) -> int | None:
        """Last value handed out, or None for a counter never used."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == name)
        ).scalar_one_or_none()

    def _lock(self, name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create(self, name: str) -> SequenceCounter | None:
        """
        Insert the counter already holding 1 and return None.

        When another session inserted it first, the unique constraint fires;
        the savepoint is discarded and the winner's row is locked and
        returned so the caller increments it instead.
        """
        savepoint = self._session.begin_nested()
        try:
            self._session.add(SequenceCounter(name=name, current_value=1))
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_race_retry", extra={"sequence_name": name})
            counter = self._lock(name)
            if counter is None:
                raise
            return counter
        savepoint.commit()
        return None
