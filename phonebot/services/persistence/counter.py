"""Call counter persistence service."""
import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from phonebot.db.models import CallCounterRecord, CURRENT_CALLS

logger = logging.getLogger(__name__)


class CallCounter:
    """Durable occupancy gauge updated with single atomic statements."""

    def __init__(self, db: AsyncSession, name: str = CURRENT_CALLS):
        self.db = db
        self.name = name

    async def add(self, delta: int) -> bool:
        """
        Atomically add delta to the counter.

        Decrements that would take the value below zero are not applied.

        Returns:
            True if the counter changed
        """
        stmt = (
            update(CallCounterRecord)
            .where(CallCounterRecord.name == self.name)
            .values(calls=CallCounterRecord.calls + delta)
            .execution_options(synchronize_session=False)
        )
        if delta < 0:
            stmt = stmt.where(CallCounterRecord.calls + delta >= 0)

        result = await self.db.execute(stmt)
        await self.db.commit()

        if result.rowcount > 0:
            logger.info(f"[CALL COUNTER] Updated '{self.name}' by {delta}")
            return True

        if delta > 0:
            # Counter row missing; schema seeding normally prevents this
            self.db.add(CallCounterRecord(name=self.name, calls=delta))
            await self.db.commit()
            logger.warning(f"[CALL COUNTER] Created missing counter '{self.name}' with {delta}")
            return True

        logger.warning(
            f"[CALL COUNTER] Skipped update of '{self.name}' by {delta} "
            f"(counter missing or would become negative)"
        )
        return False

    async def increment(self) -> bool:
        return await self.add(1)

    async def decrement(self) -> bool:
        return await self.add(-1)

    async def value(self) -> int:
        """Current counter value (0 if the counter does not exist)."""
        result = await self.db.execute(
            select(CallCounterRecord.calls).where(CallCounterRecord.name == self.name)
        )
        calls = result.scalar_one_or_none()
        return calls or 0
