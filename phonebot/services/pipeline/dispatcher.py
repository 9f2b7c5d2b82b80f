"""Per-call handling of finalized transcript segments."""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

from phonebot.services.agent.responder import Responder
from phonebot.services.notifications.call_updater import CallUpdater
from phonebot.services.speech.transcriber import TranscriptSegment

logger = logging.getLogger(__name__)

# Strong references so detached segment tasks are not garbage collected
# while they outlive their pipeline
_background_tasks: Set[asyncio.Task] = set()

TransactionLookup = Callable[[str], Awaitable[Optional[str]]]


class SegmentDispatcher:
    """
    Runs the thinking/response exchange for each finalized segment of one call.

    Every segment gets its own task so response generation never blocks
    ingestion. A single-slot lock admits one exchange at a time in
    submission order, so a call's updates never interleave.
    """

    def __init__(
        self,
        meeting_id: str,
        lookup_transaction: TransactionLookup,
        responder: Responder,
        call_updater: CallUpdater,
        backlog_warning: int = 4,
    ):
        self.meeting_id = meeting_id
        self.lookup_transaction = lookup_transaction
        self.responder = responder
        self.call_updater = call_updater
        self.backlog_warning = backlog_warning
        self._slot = asyncio.Lock()
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def submit(self, segment: TranscriptSegment) -> Optional[asyncio.Task]:
        """Schedule a finalized segment behind any exchange still in flight."""
        if segment.is_partial:
            logger.debug(f"[DISPATCHER] Partial: '{segment.text[:80]}' - MeetingId: {self.meeting_id}")
            return None
        if len(self._pending) >= self.backlog_warning:
            logger.warning(
                f"[DISPATCHER] {len(self._pending)} segments already waiting, queueing "
                f"segment {segment.result_index} - MeetingId: {self.meeting_id}"
            )

        task = asyncio.create_task(self._process(segment))
        self._pending.add(task)
        _background_tasks.add(task)
        task.add_done_callback(self._pending.discard)
        task.add_done_callback(_background_tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait until every submitted segment has been handled."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _process(self, segment: TranscriptSegment) -> None:
        async with self._slot:
            try:
                transaction_id = await self.lookup_transaction(self.meeting_id)
            except Exception as e:
                logger.error(
                    f"[DISPATCHER] Session lookup failed, dropping segment {segment.result_index} - "
                    f"MeetingId: {self.meeting_id}, Error: {type(e).__name__}: {str(e)}"
                )
                return
            if not transaction_id:
                logger.info(
                    f"[DISPATCHER] No session for meeting, dropping segment {segment.result_index} - "
                    f"MeetingId: {self.meeting_id}"
                )
                return

            logger.info(
                f"[DISPATCHER] Final segment {segment.result_index}: '{segment.text[:200]}' - "
                f"TransactionId: {transaction_id}"
            )

            # Hold audio starts before the model call so the caller hears something right away
            try:
                await self.call_updater.thinking(transaction_id)
            except Exception as e:
                logger.error(
                    f"[DISPATCHER] Thinking update failed - TransactionId: {transaction_id}, "
                    f"Error: {type(e).__name__}: {str(e)}"
                )

            try:
                answer = await self.responder.respond(segment.text)
                await self.call_updater.response(transaction_id, answer)
            except Exception as e:
                logger.error(
                    f"[DISPATCHER] Segment {segment.result_index} not answered - "
                    f"TransactionId: {transaction_id}, Error: {type(e).__name__}: {str(e)}"
                )
