"""Call-control state machine."""
import logging
from typing import Any, List, Optional

from phonebot.core.config import Settings, settings as default_settings
from phonebot.services.conferencing.base import ConferencingService
from phonebot.services.persistence.counter import CallCounter
from phonebot.services.persistence.sessions import SessionStore
from phonebot.services.telephony.actions import (
    Action,
    ControllerResponse,
    TransactionAttributes,
    hangup_action,
    join_conference_action,
    play_audio_action,
    speak_action,
)
from phonebot.services.telephony.events import (
    LEG_A,
    LEG_B,
    CallEvent,
    InvocationEventType,
    UpdateFunction,
)

logger = logging.getLogger(__name__)

JOIN_CHIME_MEETING = "JoinChimeMeeting"


class CallController:
    """
    Maps one telephony event and its round-tripped attributes to the
    actions the platform should execute next.

    The controller keeps no state between invocations: everything it needs
    arrives in the event's transaction attributes, the session store, or
    the call counter.
    """

    def __init__(
        self,
        conferencing: ConferencingService,
        session_store: SessionStore,
        call_counter: CallCounter,
        settings: Optional[Settings] = None,
    ):
        self.conferencing = conferencing
        self.session_store = session_store
        self.call_counter = call_counter
        self.settings = settings or default_settings

    async def handle(self, event: CallEvent) -> ControllerResponse:
        """Handle one telephony invocation."""
        attributes = event.attributes()
        event_type = event.event_type
        logger.info(
            f"[CONTROLLER] Event {event.invocation_event_type} - "
            f"TransactionId: {event.transaction_id}"
        )

        if event_type in (InvocationEventType.NEW_OUTBOUND_CALL, InvocationEventType.RINGING):
            actions: List[Action] = []
        elif event_type in (InvocationEventType.NEW_INBOUND_CALL, InvocationEventType.CALL_ANSWERED):
            actions = await self._admit_call(event, attributes)
        elif event_type == InvocationEventType.ACTION_SUCCESSFUL:
            actions = await self._action_successful(event, attributes)
        elif event_type == InvocationEventType.CALL_UPDATE_REQUESTED:
            actions = self._call_update_requested(event, attributes)
        elif event_type == InvocationEventType.HANGUP:
            actions = await self._hangup(event, attributes)
        else:
            logger.info(f"[CONTROLLER] Unrecognized event {event.invocation_event_type}, no actions")
            return ControllerResponse.no_op(event.call_details.transaction_attributes)

        response = ControllerResponse(actions=actions, transaction_attributes=attributes)
        logger.debug(f"[CONTROLLER] Response: {response.to_wire()}")
        return response

    async def _admit_call(self, event: CallEvent, attributes: TransactionAttributes) -> List[Action]:
        existing = await self.session_store.get_by_transaction_id(event.transaction_id)
        previous_meeting_id = existing.meeting_id if existing else None

        # The earlier session row stays in place until the new meeting is recorded,
        # so a failed retry still leaves the call counted and torn down by HANGUP
        meeting_info = await self.conferencing.create_meeting()
        try:
            replaced = False
            if previous_meeting_id:
                replaced = await self.session_store.replace_meeting(
                    event.transaction_id, meeting_info.meeting_id
                )
            if not replaced:
                await self.session_store.create_session(meeting_info.meeting_id, event.transaction_id)
        except Exception as e:
            logger.error(
                f"[CONTROLLER] Failed to persist session, dropping meeting {meeting_info.meeting_id} - "
                f"Error: {type(e).__name__}: {str(e)}"
            )
            await self._discard_meeting(meeting_info.meeting_id)
            raise

        if replaced:
            # Retried invocation: the call is already counted
            logger.warning(
                f"[CONTROLLER] Session already existed, replaced meeting {previous_meeting_id} - "
                f"TransactionId: {event.transaction_id}"
            )
            await self._discard_meeting(previous_meeting_id)
        else:
            await self._update_call_count(1)

        attributes.meeting_id = meeting_info.meeting_id
        return [
            join_conference_action(
                meeting_info.join_token, event.first_call_id(), meeting_info.meeting_id
            )
        ]

    async def _action_successful(
        self, event: CallEvent, attributes: TransactionAttributes
    ) -> List[Action]:
        leg_a = event.find_participant(LEG_A)
        leg_b = event.find_participant(LEG_B)
        attributes.leg_a = leg_a.call_id if leg_a else ""
        attributes.leg_b = leg_b.call_id if leg_b else ""

        action_type = event.action_data.type if event.action_data else None
        if action_type != JOIN_CHIME_MEETING:
            logger.debug(f"[CONTROLLER] No follow-up for successful action {action_type}")
            return []

        if attributes.leg_a and attributes.leg_b:
            await self.session_store.attach_legs(
                event.transaction_id, attributes.leg_a, attributes.leg_b
            )
        return [self._speak(self.settings.onboarding_prompt, attributes.leg_a)]

    def _call_update_requested(
        self, event: CallEvent, attributes: TransactionAttributes
    ) -> List[Action]:
        arguments = event.update_arguments()
        function = arguments.get("Function")

        if function == UpdateFunction.RESPONSE.value:
            return [self._speak(str(arguments.get("Text") or ""), attributes.leg_a)]
        if function == UpdateFunction.THINKING.value:
            return [
                play_audio_action(
                    attributes.leg_a,
                    self.settings.hold_audio_bucket,
                    self.settings.hold_audio_key,
                    repeat=self.settings.hold_audio_repeat,
                )
            ]

        logger.warning(f"[CONTROLLER] Unknown update function {function!r}, no actions")
        return []

    async def _hangup(self, event: CallEvent, attributes: TransactionAttributes) -> List[Action]:
        if event.action_parameter("ParticipantTag") == LEG_A:
            logger.info("[CONTROLLER] Hangup from leg A, hanging up leg B")
            actions: List[Action] = [hangup_action(attributes.leg_b)]
        else:
            actions = []

        meeting_id = attributes.meeting_id
        if not meeting_id:
            record = await self.session_store.get_by_transaction_id(event.transaction_id)
            meeting_id = record.meeting_id if record else ""
        if meeting_id:
            await self.conferencing.delete_meeting(meeting_id)

        if await self.session_store.release(event.transaction_id):
            await self._update_call_count(-1)
        else:
            logger.info(
                f"[CONTROLLER] Call already torn down, counter unchanged - "
                f"TransactionId: {event.transaction_id}"
            )
        return actions

    def _speak(self, text: str, call_id: str) -> Action:
        return speak_action(
            text,
            call_id,
            voice_id=self.settings.voice_id,
            engine=self.settings.voice_engine,
            language_code=self.settings.language_code,
        )

    async def _discard_meeting(self, meeting_id: str) -> None:
        try:
            await self.conferencing.delete_meeting(meeting_id)
        except Exception as e:
            logger.error(f"[CONTROLLER] Could not delete meeting {meeting_id}: {str(e)}")

    async def _update_call_count(self, delta: int) -> None:
        try:
            await self.call_counter.add(delta)
        except Exception as e:
            logger.error(
                f"[CONTROLLER] Call counter update by {delta} failed: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )


def unrecognized_response(payload: Any) -> ControllerResponse:
    """No-op response for a payload that is not a valid telephony event."""
    if isinstance(payload, dict):
        details = payload.get("CallDetails")
        raw = details.get("TransactionAttributes") if isinstance(details, dict) else None
        if isinstance(raw, dict):
            return ControllerResponse.no_op(raw)
    logger.warning("[CONTROLLER] Payload carries no transaction attributes, answering with defaults")
    return ControllerResponse.no_op()
