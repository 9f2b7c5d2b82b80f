"""Streaming media pipeline: live audio in, spoken answers out."""
import asyncio
import logging
from typing import Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from phonebot.services.media.source import MediaStreamError, MediaStreamSource, StreamNotFoundError
from phonebot.services.media.transcoder import TranscodeError, Transcoder
from phonebot.services.pipeline.dispatcher import SegmentDispatcher
from phonebot.services.speech.transcriber import StreamingTranscriber, TranscriptionError

logger = logging.getLogger(__name__)


class PipelineRequest(BaseModel):
    """Request to start ingesting one call's media stream."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    start_fragment_number: str = ""
    meeting_id: str
    attendee_id: str = ""
    call_streaming_start_time: str = ""
    caller_stream_arn: str


class MediaPipeline:
    """
    One call's pipeline: resolve, read live, transcode, transcribe, dispatch.

    The stages are chained async generators, so each stage pulls from the
    one before it only when it has room for more audio.
    """

    def __init__(
        self,
        request: PipelineRequest,
        source: MediaStreamSource,
        transcoder: Transcoder,
        transcriber: StreamingTranscriber,
        dispatcher: SegmentDispatcher,
    ):
        self.request = request
        self.source = source
        self.transcoder = transcoder
        self.transcriber = transcriber
        self.dispatcher = dispatcher

    @property
    def meeting_id(self) -> str:
        return self.request.meeting_id

    async def run(self) -> None:
        """Run until the source closes, a stage fails, or the task is cancelled."""
        stream_ref = self.request.caller_stream_arn
        logger.info(f"[PIPELINE] Starting - MeetingId: {self.meeting_id}, Stream: {stream_ref}")

        segments = None
        try:
            endpoint = await self.source.resolve_endpoint(stream_ref)
            media = self.source.read_live(endpoint, stream_ref)
            audio = self.transcoder.transcode(media)
            segments = self.transcriber.stream(audio)
            async for segment in segments:
                self.dispatcher.submit(segment)
            logger.info(f"[PIPELINE] Source stream ended - MeetingId: {self.meeting_id}")
        except StreamNotFoundError as e:
            logger.warning(f"[PIPELINE] Stream not available - MeetingId: {self.meeting_id}: {str(e)}")
        except MediaStreamError as e:
            logger.error(f"[PIPELINE] Media read failed - MeetingId: {self.meeting_id}: {str(e)}")
        except TranscodeError as e:
            logger.error(f"[PIPELINE] Transcoding failed - MeetingId: {self.meeting_id}: {str(e)}")
        except TranscriptionError as e:
            logger.error(f"[PIPELINE] Transcription failed - MeetingId: {self.meeting_id}: {str(e)}")
        except asyncio.CancelledError:
            logger.info(f"[PIPELINE] Stopped - MeetingId: {self.meeting_id}")
            raise
        finally:
            if segments is not None:
                await segments.aclose()


PipelineFactory = Callable[[PipelineRequest], MediaPipeline]


class PipelineManager:
    """Registry of running pipelines, one per meeting."""

    def __init__(self, pipeline_factory: PipelineFactory):
        self.pipeline_factory = pipeline_factory
        self._tasks: Dict[str, asyncio.Task] = {}

    def is_running(self, meeting_id: str) -> bool:
        task = self._tasks.get(meeting_id)
        return task is not None and not task.done()

    def start(self, request: PipelineRequest) -> bool:
        """
        Start a pipeline in the background.

        Returns:
            False if a pipeline for the meeting is already running
        """
        if self.is_running(request.meeting_id):
            logger.info(f"[PIPELINE MANAGER] Already running - MeetingId: {request.meeting_id}")
            return False

        pipeline = self.pipeline_factory(request)
        task = asyncio.create_task(pipeline.run(), name=f"pipeline-{request.meeting_id}")
        self._tasks[request.meeting_id] = task
        task.add_done_callback(lambda t, meeting_id=request.meeting_id: self._finished(meeting_id, t))
        logger.info(f"[PIPELINE MANAGER] Started - MeetingId: {request.meeting_id}")
        return True

    async def stop(self, meeting_id: str) -> bool:
        """Stop a meeting's pipeline; segment exchanges already in flight continue."""
        task = self._tasks.get(meeting_id)
        if task is None or task.done():
            return False
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.info(f"[PIPELINE MANAGER] Stopped on request - MeetingId: {meeting_id}")
        return True

    async def shutdown(self) -> None:
        """Stop every running pipeline."""
        for meeting_id in list(self._tasks):
            await self.stop(meeting_id)

    def _finished(self, meeting_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(meeting_id) is task:
            del self._tasks[meeting_id]
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"[PIPELINE MANAGER] Pipeline crashed - MeetingId: {meeting_id}, "
                f"Error: {type(error).__name__}: {str(error)}",
                exc_info=error,
            )
