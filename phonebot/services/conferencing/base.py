"""Conferencing service interface."""
from abc import ABC, abstractmethod
from pydantic import BaseModel


class ConferencingError(Exception):
    """A conferencing platform request failed."""


class MeetingInfo(BaseModel):
    """A created conferencing session and the bot attendee's join token."""

    meeting_id: str
    join_token: str


class ConferencingService(ABC):
    """Abstract base class for conferencing platforms."""

    @abstractmethod
    async def create_meeting(self) -> MeetingInfo:
        """Create a conferencing session with one attendee."""
        pass

    @abstractmethod
    async def delete_meeting(self, meeting_id: str) -> None:
        """Tear down a conferencing session. Deleting an unknown session is not an error."""
        pass

    @abstractmethod
    async def start_media_stream(self, meeting_id: str) -> None:
        """Start streaming the session's caller audio to the media stream pool."""
        pass
