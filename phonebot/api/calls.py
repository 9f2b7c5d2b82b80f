"""Consumer service endpoints."""
import logging
from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import PlainTextResponse

from phonebot.core.dependencies import get_pipeline_manager
from phonebot.services.pipeline.media_pipeline import PipelineManager, PipelineRequest

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/", response_class=PlainTextResponse)
async def liveness():
    """Liveness probe."""
    return "OK"


@router.post("/call", status_code=202)
async def start_call(
    request: PipelineRequest,
    manager: PipelineManager = Depends(get_pipeline_manager),
):
    """
    Start streaming a call's media.

    Answers immediately; the pipeline runs in the background.
    """
    logger.info(
        f"[CALL] Start requested - MeetingId: {request.meeting_id}, "
        f"Stream: {request.caller_stream_arn}"
    )
    started = manager.start(request)
    return {
        "message": "Request received. Processing in progress...",
        "meetingId": request.meeting_id,
        "started": started,
    }


@router.delete("/call/{meeting_id}", status_code=204)
async def stop_call(
    meeting_id: str,
    manager: PipelineManager = Depends(get_pipeline_manager),
):
    """Stop a call's pipeline when the call has ended."""
    if not await manager.stop(meeting_id):
        raise HTTPException(status_code=404, detail=f"No pipeline for meeting {meeting_id}")
    return Response(status_code=204)
