"""Client for the consumer service."""
import logging
from typing import Optional

import httpx

from phonebot.core.config import settings
from phonebot.services.pipeline.media_pipeline import PipelineRequest

logger = logging.getLogger(__name__)


class ConsumerClientError(Exception):
    """The consumer service could not be reached or refused the request."""


class ConsumerClient:
    """Starts and stops media pipelines on the consumer service."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.consumer_url).rstrip("/")
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.http_timeout_seconds,
            transport=self.transport,
        )

    async def start_pipeline(self, request: PipelineRequest) -> None:
        logger.info(f"[CONSUMER CLIENT] Starting pipeline - MeetingId: {request.meeting_id}")
        try:
            async with self._client() as client:
                response = await client.post("/call", json=request.model_dump(by_alias=True))
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(
                f"[CONSUMER CLIENT] Start failed - MeetingId: {request.meeting_id}, "
                f"Error: {type(e).__name__}: {str(e)}"
            )
            raise ConsumerClientError(f"Starting pipeline failed: {str(e)}") from e

    async def stop_pipeline(self, meeting_id: str) -> bool:
        """Returns False if the consumer had no pipeline for the meeting."""
        logger.info(f"[CONSUMER CLIENT] Stopping pipeline - MeetingId: {meeting_id}")
        try:
            async with self._client() as client:
                response = await client.delete(f"/call/{meeting_id}")
                if response.status_code == 404:
                    return False
                response.raise_for_status()
                return True
        except httpx.HTTPError as e:
            logger.error(
                f"[CONSUMER CLIENT] Stop failed - MeetingId: {meeting_id}, "
                f"Error: {type(e).__name__}: {str(e)}"
            )
            raise ConsumerClientError(f"Stopping pipeline failed: {str(e)}") from e
