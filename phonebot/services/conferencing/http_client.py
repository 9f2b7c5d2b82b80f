"""HTTP conferencing platform client."""
import logging
import uuid
from typing import Optional

import httpx

from phonebot.core.config import settings
from phonebot.services.conferencing.base import ConferencingError, ConferencingService, MeetingInfo

logger = logging.getLogger(__name__)

EXTERNAL_MEETING_ID = "MediaStreams"


class HttpConferencingService(ConferencingService):
    """Conferencing platform reached over its REST API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        media_region: Optional[str] = None,
        stream_pool_arn: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.conferencing_api_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.conferencing_api_key
        self.media_region = media_region or settings.media_region
        self.stream_pool_arn = stream_pool_arn if stream_pool_arn is not None else settings.media_stream_pool_arn
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=settings.http_timeout_seconds,
            transport=self.transport,
        )

    async def create_meeting(self) -> MeetingInfo:
        payload = {
            "ClientRequestToken": str(uuid.uuid4()),
            "MediaRegion": self.media_region,
            "ExternalMeetingId": EXTERNAL_MEETING_ID,
            "Attendees": [{"ExternalUserId": str(uuid.uuid4())}],
        }
        logger.info(f"[CONFERENCING] Creating meeting in region {self.media_region}")
        try:
            async with self._client() as client:
                response = await client.post("/meetings", json=payload)
                response.raise_for_status()
                data = response.json()
            meeting_info = MeetingInfo(
                meeting_id=data["Meeting"]["MeetingId"],
                join_token=data["Attendees"][0]["JoinToken"],
            )
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
            logger.error(f"[CONFERENCING] Meeting creation failed: {type(e).__name__}: {str(e)}")
            raise ConferencingError(f"Meeting creation failed: {str(e)}") from e

        logger.info(f"[CONFERENCING] Meeting created - MeetingId: {meeting_info.meeting_id}")
        return meeting_info

    async def delete_meeting(self, meeting_id: str) -> None:
        logger.info(f"[CONFERENCING] Deleting meeting - MeetingId: {meeting_id}")
        try:
            async with self._client() as client:
                response = await client.delete(f"/meetings/{meeting_id}")
                if response.status_code == 404:
                    logger.info(f"[CONFERENCING] Meeting already gone - MeetingId: {meeting_id}")
                    return
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(
                f"[CONFERENCING] Meeting deletion failed - MeetingId: {meeting_id}, "
                f"Error: {type(e).__name__}: {str(e)}"
            )
            raise ConferencingError(f"Meeting deletion failed: {str(e)}") from e

    async def start_media_stream(self, meeting_id: str) -> None:
        payload = {
            "Sinks": [
                {
                    "MediaStreamType": "IndividualAudio",
                    "ReservedStreamCapacity": 1,
                    "SinkArn": self.stream_pool_arn,
                    "SinkType": "KinesisVideoStreamPool",
                }
            ],
            "Sources": [
                {
                    "SourceArn": f"meeting/{meeting_id}",
                    "SourceType": "ChimeSdkMeeting",
                }
            ],
        }
        logger.info(f"[CONFERENCING] Starting media stream pipeline - MeetingId: {meeting_id}")
        try:
            async with self._client() as client:
                response = await client.post("/media-stream-pipelines", json=payload)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(
                f"[CONFERENCING] Media stream pipeline failed - MeetingId: {meeting_id}, "
                f"Error: {type(e).__name__}: {str(e)}"
            )
            raise ConferencingError(f"Starting media stream failed: {str(e)}") from e
