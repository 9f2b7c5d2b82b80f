"""Live media stream source."""
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

import httpx

from phonebot.core.config import settings

logger = logging.getLogger(__name__)


class MediaStreamError(Exception):
    """Reading the live media stream failed."""


class StreamNotFoundError(MediaStreamError):
    """The requested media stream does not exist (yet)."""


class MediaStreamSource(ABC):
    """Abstract base class for live media stream sources."""

    @abstractmethod
    async def resolve_endpoint(self, stream_ref: str) -> str:
        """Resolve the endpoint that serves live reads for a stream."""
        pass

    @abstractmethod
    def read_live(self, endpoint: str, stream_ref: str) -> AsyncIterator[bytes]:
        """Yield raw media bytes starting at the live edge of the stream."""
        pass


class HttpMediaStreamSource(MediaStreamSource):
    """Media stream service reached over HTTP."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        chunk_size: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.media_api_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.media_api_key
        self.chunk_size = chunk_size or settings.transcode_chunk_size
        self.transport = transport

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

    async def resolve_endpoint(self, stream_ref: str) -> str:
        logger.info(f"[MEDIA SOURCE] Resolving data endpoint - Stream: {stream_ref}")
        try:
            async with httpx.AsyncClient(
                headers=self._headers(),
                timeout=settings.http_timeout_seconds,
                transport=self.transport,
            ) as client:
                response = await client.post(
                    f"{self.base_url}/getDataEndpoint",
                    json={"APIName": "GET_MEDIA", "StreamARN": stream_ref},
                )
                if response.status_code == 404:
                    raise StreamNotFoundError(f"Stream not found: {stream_ref}")
                response.raise_for_status()
                endpoint = response.json()["DataEndpoint"]
        except httpx.HTTPError as e:
            raise MediaStreamError(f"Resolving data endpoint failed: {str(e)}") from e
        except (KeyError, ValueError) as e:
            raise MediaStreamError(f"Unexpected data endpoint response: {str(e)}") from e

        logger.info(f"[MEDIA SOURCE] Data endpoint: {endpoint}")
        return endpoint

    async def read_live(self, endpoint: str, stream_ref: str) -> AsyncIterator[bytes]:
        payload = {"StreamARN": stream_ref, "StartSelector": {"StartSelectorType": "NOW"}}
        # No read timeout: a live stream may be silent for a while
        timeout = httpx.Timeout(settings.http_timeout_seconds, read=None)
        logger.info(f"[MEDIA SOURCE] Opening live read - Stream: {stream_ref}")
        try:
            async with httpx.AsyncClient(
                headers=self._headers(), timeout=timeout, transport=self.transport
            ) as client:
                async with client.stream(
                    "POST", f"{endpoint.rstrip('/')}/getMedia", json=payload
                ) as response:
                    if response.status_code == 404:
                        raise StreamNotFoundError(f"Stream not found: {stream_ref}")
                    response.raise_for_status()
                    async for chunk in response.aiter_bytes(self.chunk_size):
                        yield chunk
        except httpx.HTTPError as e:
            raise MediaStreamError(f"Live read failed: {str(e)}") from e

        logger.info(f"[MEDIA SOURCE] Stream closed - Stream: {stream_ref}")
