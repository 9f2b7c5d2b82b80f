"""FastAPI dependencies."""
from functools import lru_cache

from phonebot.core.config import settings
from phonebot.db.database import AsyncSessionLocal
from phonebot.services.agent.responder import Responder
from phonebot.services.conferencing.base import ConferencingService
from phonebot.services.conferencing.http_client import HttpConferencingService
from phonebot.services.media.source import HttpMediaStreamSource
from phonebot.services.media.transcoder import FfmpegTranscoder
from phonebot.services.notifications.call_updater import CallUpdater
from phonebot.services.persistence.sessions import lookup_transaction_id
from phonebot.services.pipeline.client import ConsumerClient
from phonebot.services.pipeline.dispatcher import SegmentDispatcher
from phonebot.services.pipeline.media_pipeline import MediaPipeline, PipelineManager, PipelineRequest
from phonebot.services.speech.transcriber import WebSocketTranscriber


@lru_cache
def get_conferencing_service() -> ConferencingService:
    """Get conferencing service instance."""
    return HttpConferencingService()


@lru_cache
def get_consumer_client() -> ConsumerClient:
    """Get consumer service client."""
    return ConsumerClient()


@lru_cache
def get_pipeline_manager() -> PipelineManager:
    """Get the process-wide pipeline registry."""
    source = HttpMediaStreamSource()
    transcoder = FfmpegTranscoder()
    transcriber = WebSocketTranscriber()
    responder = Responder()
    call_updater = CallUpdater()

    async def lookup(meeting_id: str):
        return await lookup_transaction_id(AsyncSessionLocal, meeting_id)

    def build_pipeline(request: PipelineRequest) -> MediaPipeline:
        dispatcher = SegmentDispatcher(
            request.meeting_id,
            lookup,
            responder,
            call_updater,
            backlog_warning=settings.segment_backlog_warning,
        )
        return MediaPipeline(request, source, transcoder, transcriber, dispatcher)

    return PipelineManager(build_pipeline)
