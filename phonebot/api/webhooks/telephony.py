"""Telephony platform webhook endpoints."""
import asyncio
import json
import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from phonebot.core.config import settings
from phonebot.core.dependencies import get_conferencing_service
from phonebot.db.database import get_db
from phonebot.services.conferencing.base import ConferencingService
from phonebot.services.persistence.counter import CallCounter
from phonebot.services.persistence.sessions import SessionStore
from phonebot.services.telephony.controller import CallController, unrecognized_response
from phonebot.services.telephony.events import CallEvent

router = APIRouter()
logger = logging.getLogger(__name__)


def get_call_controller(
    db: AsyncSession = Depends(get_db),
    conferencing: ConferencingService = Depends(get_conferencing_service),
) -> CallController:
    """Get call controller."""
    return CallController(conferencing, SessionStore(db), CallCounter(db))


@router.post("/telephony")
async def handle_telephony_event(
    request: Request,
    controller: CallController = Depends(get_call_controller),
):
    """
    Handle one telephony invocation.

    The platform sends every call event here and executes the returned
    actions. A failed invocation (5xx) makes the platform drop the call.
    """
    try:
        payload = await request.json()
    except json.JSONDecodeError:
        logger.warning("[TELEPHONY] Body is not JSON, returning no actions")
        return unrecognized_response(None).to_wire()

    event = CallEvent.from_payload(payload)
    if event is None:
        return unrecognized_response(payload).to_wire()

    logger.info(
        f"[TELEPHONY] Received {event.invocation_event_type} - "
        f"TransactionId: {event.transaction_id}"
    )

    try:
        response = await asyncio.wait_for(
            controller.handle(event), timeout=settings.controller_timeout_seconds
        )
    except asyncio.TimeoutError:
        logger.error(
            f"[TELEPHONY] Invocation exceeded {settings.controller_timeout_seconds}s - "
            f"TransactionId: {event.transaction_id}"
        )
        raise HTTPException(status_code=504, detail="Call control timed out")
    except Exception as e:
        logger.error(
            f"[TELEPHONY] Error handling {event.invocation_event_type} - "
            f"TransactionId: {event.transaction_id}, Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        raise HTTPException(status_code=500, detail=f"Error handling call event: {str(e)}")

    return response.to_wire()
