"""Inbound telephony event models."""
import copy
import logging
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_pascal

from phonebot.services.telephony.actions import TransactionAttributes

logger = logging.getLogger(__name__)

LEG_A = "LEG-A"
LEG_B = "LEG-B"


class InvocationEventType(str, Enum):
    """Telephony invocation event types handled by the controller."""

    NEW_OUTBOUND_CALL = "NEW_OUTBOUND_CALL"
    RINGING = "RINGING"
    NEW_INBOUND_CALL = "NEW_INBOUND_CALL"
    ACTION_SUCCESSFUL = "ACTION_SUCCESSFUL"
    CALL_UPDATE_REQUESTED = "CALL_UPDATE_REQUESTED"
    HANGUP = "HANGUP"
    CALL_ANSWERED = "CALL_ANSWERED"

    def __str__(self) -> str:
        return self.value


class UpdateFunction(str, Enum):
    """Functions carried by an out-of-band call update."""

    THINKING = "Thinking"
    RESPONSE = "Response"

    def __str__(self) -> str:
        return self.value


class EventModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True, extra="ignore")


class Participant(EventModel):
    call_id: str = ""
    participant_tag: str = ""


class CallDetails(EventModel):
    transaction_id: str
    # Kept raw so values of any type round-trip unchanged
    transaction_attributes: Optional[Dict[str, Any]] = None
    participants: List[Participant] = []


class ActionData(EventModel):
    type: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)


class CallEvent(EventModel):
    """
    One telephony invocation.

    The event type is kept as a plain string so unknown types reach the
    controller's no-op branch instead of failing validation.
    """

    invocation_event_type: str
    call_details: CallDetails
    action_data: Optional[ActionData] = None

    @property
    def event_type(self) -> Optional[InvocationEventType]:
        try:
            return InvocationEventType(self.invocation_event_type)
        except ValueError:
            return None

    @property
    def transaction_id(self) -> str:
        return self.call_details.transaction_id

    def attributes(self) -> TransactionAttributes:
        """Working copy of the inbound attributes, or empty defaults."""
        if self.call_details.transaction_attributes is None:
            return TransactionAttributes()
        return TransactionAttributes.model_validate(copy.deepcopy(self.call_details.transaction_attributes))

    def find_participant(self, tag: str) -> Optional[Participant]:
        for participant in self.call_details.participants:
            if participant.participant_tag == tag:
                return participant
        return None

    def first_call_id(self) -> str:
        if not self.call_details.participants:
            return ""
        return self.call_details.participants[0].call_id

    def action_parameter(self, name: str) -> Any:
        if self.action_data is None:
            return None
        return self.action_data.parameters.get(name)

    def update_arguments(self) -> Dict[str, Any]:
        """Arguments of a CALL_UPDATE_REQUESTED event."""
        arguments = self.action_parameter("Arguments")
        return arguments if isinstance(arguments, dict) else {}

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["CallEvent"]:
        """Parse a raw payload, returning None when it is malformed."""
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"[TELEPHONY EVENT] Malformed event ignored: {e.error_count()} error(s)")
            return None
