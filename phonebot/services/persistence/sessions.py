"""Call session persistence service."""
import logging
from typing import Callable, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, update

from phonebot.db.models import CallSessionRecord

logger = logging.getLogger(__name__)


class SessionStore:
    """Maps a call transaction to its conferencing session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_session(self, meeting_id: str, transaction_id: str) -> CallSessionRecord:
        """Persist a new call session."""
        record = CallSessionRecord(meeting_id=meeting_id, transaction_id=transaction_id)
        self.db.add(record)
        await self.db.commit()
        await self.db.refresh(record)
        logger.info(
            f"[SESSION STORE] Session written - MeetingId: {meeting_id}, "
            f"TransactionId: {transaction_id}"
        )
        return record

    async def get_by_meeting_id(self, meeting_id: str) -> Optional[CallSessionRecord]:
        """Get a session by conferencing meeting id."""
        result = await self.db.execute(
            select(CallSessionRecord).where(CallSessionRecord.meeting_id == meeting_id)
        )
        return result.scalar_one_or_none()

    async def get_by_transaction_id(self, transaction_id: str) -> Optional[CallSessionRecord]:
        """Get a session by telephony transaction id."""
        result = await self.db.execute(
            select(CallSessionRecord).where(CallSessionRecord.transaction_id == transaction_id)
        )
        return result.scalar_one_or_none()

    async def attach_legs(
        self, transaction_id: str, leg_a: str, leg_b: str
    ) -> Optional[CallSessionRecord]:
        """Record the call-leg ids once both legs exist."""
        record = await self.get_by_transaction_id(transaction_id)
        if record:
            record.leg_a = leg_a
            record.leg_b = leg_b
            await self.db.commit()
            await self.db.refresh(record)
        return record

    async def replace_meeting(self, transaction_id: str, meeting_id: str) -> bool:
        """
        Point an existing session at a new meeting, clearing its legs.

        Returns:
            False if the transaction has no session
        """
        result = await self.db.execute(
            update(CallSessionRecord)
            .where(CallSessionRecord.transaction_id == transaction_id)
            .values(meeting_id=meeting_id, leg_a=None, leg_b=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        replaced = result.rowcount > 0
        if replaced:
            logger.info(
                f"[SESSION STORE] Session moved to MeetingId: {meeting_id} - "
                f"TransactionId: {transaction_id}"
            )
        return replaced

    async def release(self, transaction_id: str) -> bool:
        """
        Remove the session for a transaction.

        Returns True only for the caller that actually removed the row, so
        teardown bookkeeping runs once per call even if hangup repeats.
        """
        result = await self.db.execute(
            delete(CallSessionRecord)
            .where(CallSessionRecord.transaction_id == transaction_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        released = result.rowcount > 0
        if released:
            logger.info(f"[SESSION STORE] Session released - TransactionId: {transaction_id}")
        else:
            logger.info(f"[SESSION STORE] No session to release - TransactionId: {transaction_id}")
        return released


async def lookup_transaction_id(
    session_factory: Callable[[], AsyncSession], meeting_id: str
) -> Optional[str]:
    """Resolve the transaction id for a meeting using a fresh database session."""
    async with session_factory() as db:
        record = await SessionStore(db).get_by_meeting_id(meeting_id)
    if record is None:
        logger.info(f"[SESSION STORE] No session found - MeetingId: {meeting_id}")
        return None
    return record.transaction_id
