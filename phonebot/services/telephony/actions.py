"""Call-control actions returned to the telephony platform."""
import copy
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_pascal


SCHEMA_VERSION = "1.0"


class WireModel(BaseModel):
    """Base model serialized with the platform's PascalCase keys."""

    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)


class JoinConferenceParameters(WireModel):
    join_token: str
    call_id: str
    meeting_id: str


class SpeakParameters(WireModel):
    text: str
    call_id: str
    engine: str = "neural"
    language_code: str = "en-US"
    text_type: str = "text"
    voice_id: str = "Joanna"


class AudioSource(WireModel):
    type: str = "S3"
    bucket_name: str
    key: str


class PlayAudioParameters(WireModel):
    call_id: str
    repeat: int = 1
    audio_source: AudioSource


class HangupParameters(WireModel):
    call_id: str
    sip_response_code: str = "0"


class JoinConference(WireModel):
    """Bridge a call leg into a conferencing session."""

    type: Literal["JoinChimeMeeting"] = "JoinChimeMeeting"
    parameters: JoinConferenceParameters


class Speak(WireModel):
    """Synthesize text on a call leg."""

    type: Literal["Speak"] = "Speak"
    parameters: SpeakParameters


class PlayAudio(WireModel):
    """Play a stored audio file on a call leg."""

    type: Literal["PlayAudio"] = "PlayAudio"
    parameters: PlayAudioParameters


class Hangup(WireModel):
    """Hang up a call leg."""

    type: Literal["Hangup"] = "Hangup"
    parameters: HangupParameters


Action = Annotated[
    Union[JoinConference, Speak, PlayAudio, Hangup],
    Field(discriminator="type"),
]


class TransactionAttributes(BaseModel):
    """Controller working memory, round-tripped by the telephony platform."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    meeting_id: str = Field("", alias="MeetingId")
    leg_a: str = Field("", alias="CallIdLegA")
    leg_b: str = Field("", alias="CallIdLegB")

    @field_validator("meeting_id", "leg_a", "leg_b", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> str:
        # The platform round-trips whatever it was given; never reject an event over it
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)


class ControllerResponse(WireModel):
    """Response to one telephony invocation."""

    schema_version: str = SCHEMA_VERSION
    actions: List[Action] = []
    transaction_attributes: TransactionAttributes = Field(default_factory=TransactionAttributes)
    # Attributes to hand back verbatim instead of transaction_attributes
    echoed_attributes: Optional[Dict[str, Any]] = Field(default=None, exclude=True)

    @classmethod
    def no_op(cls, raw_attributes: Optional[Dict[str, Any]] = None) -> "ControllerResponse":
        """Response with no actions that returns the inbound attributes untouched."""
        if raw_attributes is None:
            return cls()
        return cls(echoed_attributes=copy.deepcopy(raw_attributes))

    def to_wire(self) -> Dict[str, Any]:
        """Serialize with platform key names."""
        wire = self.model_dump(by_alias=True, mode="json")
        if self.echoed_attributes is not None:
            wire["TransactionAttributes"] = copy.deepcopy(self.echoed_attributes)
        return wire


def join_conference_action(join_token: str, call_id: str, meeting_id: str) -> JoinConference:
    return JoinConference(
        parameters=JoinConferenceParameters(
            join_token=join_token, call_id=call_id, meeting_id=meeting_id
        )
    )


def speak_action(
    text: str,
    call_id: str,
    voice_id: str = "Joanna",
    engine: str = "neural",
    language_code: str = "en-US",
) -> Speak:
    return Speak(
        parameters=SpeakParameters(
            text=text,
            call_id=call_id,
            engine=engine,
            language_code=language_code,
            voice_id=voice_id,
        )
    )


def play_audio_action(call_id: str, bucket_name: str, key: str, repeat: int = 2) -> PlayAudio:
    return PlayAudio(
        parameters=PlayAudioParameters(
            call_id=call_id,
            repeat=repeat,
            audio_source=AudioSource(bucket_name=bucket_name, key=key),
        )
    )


def hangup_action(call_id: str, sip_response_code: str = "0") -> Hangup:
    return Hangup(parameters=HangupParameters(call_id=call_id, sip_response_code=sip_response_code))
