"""Conferencing platform event routing."""
import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from phonebot.services.conferencing.base import ConferencingService
from phonebot.services.pipeline.client import ConsumerClient
from phonebot.services.pipeline.media_pipeline import PipelineRequest

logger = logging.getLogger(__name__)

MEETING_STATE_CHANGE = "Chime Meeting State Change"
MEDIA_PIPELINE_STATE_CHANGE = "Chime Media Pipeline State Change"

MEETING_STARTED = "chime:MeetingStarted"
ATTENDEE_LEFT = "chime:AttendeeLeft"
ATTENDEE_DROPPED = "chime:AttendeeDropped"
STREAM_START = "chime:MediaPipelineKinesisVideoStreamStart"
STREAM_END = "chime:MediaPipelineKinesisVideoStreamEnd"


class PlatformEvent(BaseModel):
    """Envelope of an event emitted by the conferencing platform."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    detail_type: str = Field("", alias="detail-type")
    detail: Dict[str, Any] = Field(default_factory=dict)

    @property
    def event_type(self) -> Optional[str]:
        return self.detail.get("eventType")

    @property
    def meeting_id(self) -> str:
        return self.detail.get("meetingId", "")


class PlatformEventRouter:
    """Starts media streaming and consumer pipelines as meetings progress."""

    def __init__(self, conferencing: ConferencingService, consumer_client: ConsumerClient):
        self.conferencing = conferencing
        self.consumer_client = consumer_client

    async def handle(self, event: PlatformEvent) -> None:
        logger.info(
            f"[PLATFORM EVENT] {event.detail_type} / {event.event_type} - "
            f"MeetingId: {event.meeting_id or 'unknown'}"
        )
        if event.detail_type == MEETING_STATE_CHANGE:
            await self._meeting_state_change(event)
        elif event.detail_type == MEDIA_PIPELINE_STATE_CHANGE:
            await self._media_pipeline_state_change(event)
        else:
            logger.debug(f"[PLATFORM EVENT] Ignoring {event.detail_type}")

    async def _meeting_state_change(self, event: PlatformEvent) -> None:
        if event.event_type == MEETING_STARTED:
            await self.conferencing.start_media_stream(event.meeting_id)
        elif event.event_type in (ATTENDEE_LEFT, ATTENDEE_DROPPED):
            logger.info(
                f"[PLATFORM EVENT] Attendee {event.detail.get('attendeeId', 'unknown')} left - "
                f"MeetingId: {event.meeting_id}"
            )

    async def _media_pipeline_state_change(self, event: PlatformEvent) -> None:
        if event.event_type == STREAM_START:
            request = PipelineRequest(
                start_fragment_number=event.detail.get("startFragmentNumber", ""),
                meeting_id=event.meeting_id,
                attendee_id=event.detail.get("attendeeId", ""),
                call_streaming_start_time=event.detail.get("startTime", ""),
                caller_stream_arn=event.detail.get("kinesisVideoStreamArn", ""),
            )
            await self.consumer_client.start_pipeline(request)
        elif event.event_type == STREAM_END:
            stopped = await self.consumer_client.stop_pipeline(event.meeting_id)
            if not stopped:
                logger.info(f"[PLATFORM EVENT] No running pipeline - MeetingId: {event.meeting_id}")
