"""Streaming speech-to-text service."""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import urlencode

import websockets
from pydantic import BaseModel

from phonebot.core.config import settings

logger = logging.getLogger(__name__)

# How long to wait for the audio sender to finish once the engine closes the socket
SENDER_GRACE_SECONDS = 1.0


class TranscriptionError(Exception):
    """The transcription stream failed."""


class TranscriptSegment(BaseModel):
    """One result from the transcription engine."""

    text: str
    is_partial: bool
    result_index: int


class StreamingTranscriber(ABC):
    """Abstract base class for streaming transcription engines."""

    @abstractmethod
    def stream(self, audio: AsyncIterator[bytes]) -> AsyncIterator[TranscriptSegment]:
        """Send audio as it arrives and yield transcript segments."""
        pass


class WebSocketTranscriber(StreamingTranscriber):
    """
    Live transcription over a WebSocket.

    Audio frames go out as binary messages; the engine answers with JSON
    "Results" messages whose is_final flag marks text it will not revise.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        language: Optional[str] = None,
        sample_rate: Optional[int] = None,
        encoding: Optional[str] = None,
    ):
        self.url = url or settings.transcription_url
        self.api_key = api_key if api_key is not None else settings.transcription_api_key
        self.language = language or settings.transcription_language
        self.sample_rate = sample_rate or settings.transcription_sample_rate
        self.encoding = encoding or settings.transcription_encoding

    def build_url(self) -> str:
        query = {
            "language": self.language,
            "encoding": self.encoding,
            "sample_rate": str(self.sample_rate),
            "channels": "1",
            "interim_results": "true",
            "punctuate": "true",
        }
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}{urlencode(query)}"

    async def stream(self, audio: AsyncIterator[bytes]) -> AsyncIterator[TranscriptSegment]:
        headers = {"Authorization": f"Token {self.api_key}"} if self.api_key else {}
        result_index = 0
        try:
            async with websockets.connect(
                self.build_url(),
                additional_headers=headers,
                max_size=16 * 1024 * 1024,
                ping_interval=20,
                ping_timeout=10,
            ) as websocket:
                logger.info("[TRANSCRIBER] Streaming session opened")
                sender = asyncio.create_task(self._send_audio(websocket, audio))
                try:
                    async for message in websocket:
                        segment = parse_result(message, result_index)
                        if segment is None:
                            continue
                        if not segment.is_partial:
                            result_index += 1
                        yield segment
                except BaseException:
                    sender.cancel()
                    raise

                # Audio-side failures (source or transcoder) surface here
                done, _ = await asyncio.wait({sender}, timeout=SENDER_GRACE_SECONDS)
                if sender in done:
                    await sender
                else:
                    sender.cancel()
        except websockets.WebSocketException as e:
            logger.error(f"[TRANSCRIBER] Streaming failed: {type(e).__name__}: {str(e)}")
            raise TranscriptionError(f"Transcription stream failed: {str(e)}") from e
        except OSError as e:
            logger.error(f"[TRANSCRIBER] Connection failed: {str(e)}")
            raise TranscriptionError(f"Transcription connection failed: {str(e)}") from e

        logger.info("[TRANSCRIBER] Streaming session closed")

    async def _send_audio(self, websocket: Any, audio: AsyncIterator[bytes]) -> None:
        try:
            async for chunk in audio:
                await websocket.send(chunk)
            await websocket.send(json.dumps({"type": "CloseStream"}))
        except websockets.ConnectionClosed:
            logger.warning("[TRANSCRIBER] Socket closed while sending audio")
        except Exception:
            # Stop the receive loop so the failure is re-raised by stream()
            await websocket.close()
            raise


def parse_result(message: Any, result_index: int) -> Optional[TranscriptSegment]:
    """Extract a transcript segment from an engine message, if it carries one."""
    try:
        data: Dict[str, Any] = json.loads(message) if isinstance(message, (str, bytes)) else message
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(data, dict) or data.get("type") != "Results":
        return None

    alternatives = (data.get("channel") or {}).get("alternatives") or []
    if not alternatives:
        return None
    text = (alternatives[0].get("transcript") or "").strip()
    if not text:
        return None

    return TranscriptSegment(
        text=text,
        is_partial=not data.get("is_final", False),
        result_index=result_index,
    )
