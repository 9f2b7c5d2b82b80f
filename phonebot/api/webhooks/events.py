"""Conferencing platform event webhook."""
import logging
from fastapi import APIRouter, Depends, HTTPException

from phonebot.core.dependencies import get_conferencing_service, get_consumer_client
from phonebot.services.conferencing.base import ConferencingService
from phonebot.services.pipeline.client import ConsumerClient
from phonebot.services.platform.events import PlatformEvent, PlatformEventRouter

router = APIRouter()
logger = logging.getLogger(__name__)


def get_platform_event_router(
    conferencing: ConferencingService = Depends(get_conferencing_service),
    consumer_client: ConsumerClient = Depends(get_consumer_client),
) -> PlatformEventRouter:
    """Get platform event router."""
    return PlatformEventRouter(conferencing, consumer_client)


@router.post("/events")
async def handle_platform_event(
    event: PlatformEvent,
    event_router: PlatformEventRouter = Depends(get_platform_event_router),
):
    """Handle a meeting or media pipeline state change."""
    try:
        await event_router.handle(event)
    except Exception as e:
        logger.error(
            f"[PLATFORM EVENT] Error handling {event.event_type} - MeetingId: {event.meeting_id}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        raise HTTPException(status_code=500, detail=f"Error handling platform event: {str(e)}")
    return {"status": "ok"}
