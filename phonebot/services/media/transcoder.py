"""Streaming audio transcoding."""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, List, Optional

from phonebot.core.config import settings

logger = logging.getLogger(__name__)


class TranscodeError(Exception):
    """The transcoder failed; the call's pipeline cannot continue."""


class Transcoder(ABC):
    """Abstract base class for streaming transcoders."""

    @abstractmethod
    def transcode(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        """Convert a stream of raw media chunks into transcription-ready audio."""
        pass


class FfmpegTranscoder(Transcoder):
    """
    Pass-through transcoding through an ffmpeg subprocess.

    A feeder task writes source chunks to ffmpeg's stdin and waits for the
    pipe to drain before pulling the next one, while the generator reads
    stdout in fixed-size chunks. A slow consumer therefore stalls ffmpeg,
    which stalls the feeder, which stops reading from the source.
    """

    def __init__(
        self,
        ffmpeg_path: Optional[str] = None,
        sample_rate: Optional[int] = None,
        chunk_size: Optional[int] = None,
        command: Optional[List[str]] = None,
    ):
        self.ffmpeg_path = ffmpeg_path or settings.ffmpeg_path
        self.sample_rate = sample_rate or settings.transcription_sample_rate
        self.chunk_size = chunk_size or settings.transcode_chunk_size
        self.command = command or self.build_command()

    def build_command(self) -> List[str]:
        """ffmpeg arguments: any container on stdin, mono Ogg/Opus on stdout."""
        return [
            self.ffmpeg_path,
            "-hide_banner",
            "-loglevel", "error",
            "-i", "pipe:0",
            "-vn",
            "-ac", "1",
            "-ar", str(self.sample_rate),
            "-c:a", "libopus",
            "-f", "ogg",
            "-flush_packets", "1",
            "pipe:1",
        ]

    async def transcode(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TranscodeError(f"Could not start transcoder: {str(e)}") from e

        logger.info(f"[TRANSCODER] Started (pid {process.pid})")
        feeder = asyncio.create_task(self._feed(process, chunks))
        stderr_reader = asyncio.create_task(process.stderr.read())
        try:
            while True:
                chunk = await process.stdout.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk

            returncode = await process.wait()
            if feeder.done() and not feeder.cancelled() and feeder.exception():
                # Source failures take precedence over ffmpeg complaining about short input
                raise feeder.exception()
            if returncode != 0:
                stderr = (await stderr_reader).decode(errors="replace").strip()
                raise TranscodeError(f"Transcoder exited with {returncode}: {stderr[-500:]}")
            await feeder
            logger.info("[TRANSCODER] Finished")
        finally:
            if not feeder.done():
                feeder.cancel()
            if process.returncode is None:
                process.kill()
                await process.wait()
            if not stderr_reader.done():
                stderr_reader.cancel()
            # Collect helper outcomes so an early close leaves no unretrieved task errors
            await asyncio.gather(feeder, stderr_reader, return_exceptions=True)

    async def _feed(self, process: asyncio.subprocess.Process, chunks: AsyncIterator[bytes]) -> None:
        try:
            async for chunk in chunks:
                process.stdin.write(chunk)
                await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise TranscodeError("Transcoder stopped accepting input") from e
        finally:
            if not process.stdin.is_closing():
                process.stdin.close()
