"""Unit tests for the call-control state machine."""
import pytest

from phonebot.services.conferencing.base import ConferencingError
from phonebot.services.persistence.counter import CallCounter
from phonebot.services.persistence.sessions import SessionStore
from phonebot.services.telephony.actions import Hangup, JoinConference, PlayAudio, Speak


CALLER = {"CallId": "A1", "ParticipantTag": "LEG-A"}
BOT = {"CallId": "B1", "ParticipantTag": "LEG-B"}


async def admit(controller, make_event, transaction_id="txn-1", event_type="NEW_INBOUND_CALL"):
    """Admit a call and return the attributes the platform would round-trip."""
    response = await controller.handle(
        make_event(event_type, transaction_id=transaction_id, participants=[CALLER])
    )
    return response.transaction_attributes.model_dump(by_alias=True)


class TestCallAdmission:
    """Test NEW_INBOUND_CALL and CALL_ANSWERED."""

    @pytest.mark.asyncio
    async def test_new_inbound_call_joins_conference(self, controller, make_event, test_db):
        """Inbound call with no attributes creates a meeting and joins it."""
        counter = CallCounter(test_db)
        before = await counter.value()

        response = await controller.handle(make_event("NEW_INBOUND_CALL", participants=[CALLER]))

        assert len(response.actions) == 1
        action = response.actions[0]
        assert isinstance(action, JoinConference)
        assert action.parameters.call_id == "A1"
        assert action.parameters.join_token == "join-token-1"
        assert action.parameters.meeting_id == "meeting-1"
        assert response.transaction_attributes.meeting_id == "meeting-1"
        assert await counter.value() == before + 1

        record = await SessionStore(test_db).get_by_transaction_id("txn-1")
        assert record is not None
        assert record.meeting_id == "meeting-1"

    @pytest.mark.asyncio
    async def test_call_answered_reuses_join_logic(self, controller, make_event, test_db):
        """Answered outbound call is admitted exactly like an inbound call."""
        response = await controller.handle(make_event("CALL_ANSWERED", participants=[CALLER]))

        assert [type(action) for action in response.actions] == [JoinConference]
        assert response.transaction_attributes.meeting_id == "meeting-1"
        assert await CallCounter(test_db).value() == 1

    @pytest.mark.asyncio
    async def test_retried_admission_replaces_meeting_without_recounting(
        self, controller, make_event, mock_conferencing, test_db
    ):
        """A second admission for the same transaction keeps one live meeting."""
        await admit(controller, make_event)
        response = await controller.handle(make_event("NEW_INBOUND_CALL", participants=[CALLER]))

        assert response.transaction_attributes.meeting_id == "meeting-2"
        mock_conferencing.delete_meeting.assert_awaited_once_with("meeting-1")
        assert await CallCounter(test_db).value() == 1

        store = SessionStore(test_db)
        assert await store.get_by_meeting_id("meeting-1") is None
        assert (await store.get_by_transaction_id("txn-1")).meeting_id == "meeting-2"

    @pytest.mark.asyncio
    async def test_conferencing_failure_propagates(
        self, controller, make_event, mock_conferencing, test_db
    ):
        """Meeting creation failure fails the invocation and admits nothing."""
        mock_conferencing.create_meeting.side_effect = ConferencingError("unavailable")

        with pytest.raises(ConferencingError):
            await controller.handle(make_event("NEW_INBOUND_CALL", participants=[CALLER]))

        assert await CallCounter(test_db).value() == 0
        assert await SessionStore(test_db).get_by_transaction_id("txn-1") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("event_type", ["NEW_OUTBOUND_CALL", "RINGING"])
    async def test_outbound_and_ringing_have_no_actions(
        self, controller, make_event, mock_conferencing, event_type
    ):
        """Outbound setup events need no actions."""
        response = await controller.handle(make_event(event_type, participants=[CALLER]))

        assert response.actions == []
        mock_conferencing.create_meeting.assert_not_awaited()


class TestActionSuccessful:
    """Test ACTION_SUCCESSFUL handling."""

    @pytest.mark.asyncio
    async def test_join_success_greets_caller(self, controller, make_event, test_db, test_settings):
        """After joining, legs are recorded and the caller hears the onboarding prompt."""
        attributes = await admit(controller, make_event)

        response = await controller.handle(
            make_event(
                "ACTION_SUCCESSFUL",
                attributes=attributes,
                participants=[CALLER, BOT],
                action_data={"Type": "JoinChimeMeeting", "Parameters": {}},
            )
        )

        assert response.transaction_attributes.leg_a == "A1"
        assert response.transaction_attributes.leg_b == "B1"
        assert response.transaction_attributes.meeting_id == "meeting-1"
        assert len(response.actions) == 1
        speak = response.actions[0]
        assert isinstance(speak, Speak)
        assert speak.parameters.text == test_settings.onboarding_prompt
        assert speak.parameters.call_id == "A1"

        record = await SessionStore(test_db).get_by_transaction_id("txn-1")
        assert record.leg_a == "A1"
        assert record.leg_b == "B1"

    @pytest.mark.asyncio
    async def test_missing_legs_become_empty_strings(self, controller, make_event):
        """Unmatched participant tags yield empty leg ids, not missing fields."""
        response = await controller.handle(
            make_event(
                "ACTION_SUCCESSFUL",
                attributes={"MeetingId": "meeting-9"},
                participants=[{"CallId": "X1", "ParticipantTag": "OTHER"}],
                action_data={"Type": "JoinChimeMeeting", "Parameters": {}},
            )
        )

        wire = response.to_wire()["TransactionAttributes"]
        assert wire["CallIdLegA"] == ""
        assert wire["CallIdLegB"] == ""
        assert response.actions[0].parameters.call_id == ""

    @pytest.mark.asyncio
    async def test_other_successful_action_has_no_follow_up(self, controller, make_event):
        """Only a successful join triggers the onboarding prompt."""
        response = await controller.handle(
            make_event(
                "ACTION_SUCCESSFUL",
                attributes={"MeetingId": "meeting-1"},
                participants=[CALLER, BOT],
                action_data={"Type": "Speak", "Parameters": {}},
            )
        )

        assert response.actions == []
        assert response.transaction_attributes.leg_a == "A1"


class TestCallUpdateRequested:
    """Test out-of-band updates."""

    ATTRIBUTES = {"MeetingId": "meeting-1", "CallIdLegA": "A1", "CallIdLegB": "B1"}

    @pytest.mark.asyncio
    async def test_thinking_plays_hold_audio(self, controller, make_event):
        """Thinking update plays the hold audio twice on the caller leg."""
        response = await controller.handle(
            make_event(
                "CALL_UPDATE_REQUESTED",
                attributes=self.ATTRIBUTES,
                action_data={"Type": "CallUpdateRequest", "Parameters": {"Arguments": {"Function": "Thinking"}}},
            )
        )

        assert len(response.actions) == 1
        play = response.actions[0]
        assert isinstance(play, PlayAudio)
        assert play.parameters.call_id == "A1"
        assert play.parameters.repeat == 2
        assert play.parameters.audio_source.bucket_name == "test-bucket"
        assert play.parameters.audio_source.key == "timer.wav"

    @pytest.mark.asyncio
    async def test_response_speaks_text(self, controller, make_event):
        """Response update speaks the given text on the caller leg."""
        response = await controller.handle(
            make_event(
                "CALL_UPDATE_REQUESTED",
                attributes=self.ATTRIBUTES,
                action_data={
                    "Type": "CallUpdateRequest",
                    "Parameters": {
                        "Arguments": {"Function": "Response", "Text": "Paris is the capital of France."}
                    },
                },
            )
        )

        assert len(response.actions) == 1
        speak = response.actions[0]
        assert isinstance(speak, Speak)
        assert speak.parameters.text == "Paris is the capital of France."
        assert speak.parameters.call_id == "A1"

    @pytest.mark.asyncio
    async def test_unknown_function_has_no_actions(self, controller, make_event):
        response = await controller.handle(
            make_event(
                "CALL_UPDATE_REQUESTED",
                attributes=self.ATTRIBUTES,
                action_data={"Type": "CallUpdateRequest", "Parameters": {"Arguments": {"Function": "Dance"}}},
            )
        )

        assert response.actions == []


class TestHangup:
    """Test HANGUP teardown."""

    @pytest.mark.asyncio
    async def test_caller_hangup_hangs_up_bot_leg(
        self, controller, make_event, mock_conferencing, test_db
    ):
        """Leg A hangup tears down the meeting and hangs up leg B."""
        attributes = await admit(controller, make_event)
        attributes.update({"CallIdLegA": "A1", "CallIdLegB": "B1"})
        counter = CallCounter(test_db)
        before = await counter.value()

        response = await controller.handle(
            make_event(
                "HANGUP",
                attributes=attributes,
                participants=[CALLER, BOT],
                action_data={"Type": "Hangup", "Parameters": {"ParticipantTag": "LEG-A"}},
            )
        )

        assert len(response.actions) == 1
        hangup = response.actions[0]
        assert isinstance(hangup, Hangup)
        assert hangup.parameters.call_id == "B1"
        assert hangup.parameters.sip_response_code == "0"
        mock_conferencing.delete_meeting.assert_awaited_once_with("meeting-1")
        assert await counter.value() == before - 1
        assert await SessionStore(test_db).get_by_transaction_id("txn-1") is None

    @pytest.mark.asyncio
    async def test_bot_leg_hangup_still_tears_down(
        self, controller, make_event, mock_conferencing, test_db
    ):
        """Teardown does not depend on which leg hung up."""
        attributes = await admit(controller, make_event)

        response = await controller.handle(
            make_event(
                "HANGUP",
                attributes=attributes,
                action_data={"Type": "Hangup", "Parameters": {"ParticipantTag": "LEG-B"}},
            )
        )

        assert response.actions == []
        mock_conferencing.delete_meeting.assert_awaited_once_with("meeting-1")
        assert await CallCounter(test_db).value() == 0

    @pytest.mark.asyncio
    async def test_repeated_hangup_does_not_double_decrement(self, controller, make_event, test_db):
        """A second HANGUP for a torn-down call neither fails nor decrements."""
        await admit(controller, make_event, transaction_id="txn-other")
        attributes = await admit(controller, make_event)
        hangup = make_event(
            "HANGUP",
            attributes=attributes,
            action_data={"Type": "Hangup", "Parameters": {"ParticipantTag": "LEG-A"}},
        )

        await controller.handle(hangup)
        await controller.handle(hangup)

        assert await CallCounter(test_db).value() == 1

    @pytest.mark.asyncio
    async def test_hangup_without_session_keeps_counter_at_zero(
        self, controller, make_event, mock_conferencing, test_db
    ):
        """HANGUP for a call that was never admitted cannot drive the counter negative."""
        response = await controller.handle(
            make_event("HANGUP", action_data={"Type": "Hangup", "Parameters": {"ParticipantTag": "LEG-B"}})
        )

        assert response.actions == []
        mock_conferencing.delete_meeting.assert_not_awaited()
        assert await CallCounter(test_db).value() == 0

    @pytest.mark.asyncio
    async def test_meeting_delete_failure_propagates_and_keeps_count(
        self, controller, make_event, mock_conferencing, test_db
    ):
        """A failed teardown leaves the call counted so a retry can finish it."""
        attributes = await admit(controller, make_event)
        mock_conferencing.delete_meeting.side_effect = ConferencingError("unavailable")

        with pytest.raises(ConferencingError):
            await controller.handle(
                make_event(
                    "HANGUP",
                    attributes=attributes,
                    action_data={"Type": "Hangup", "Parameters": {"ParticipantTag": "LEG-A"}},
                )
            )

        assert await CallCounter(test_db).value() == 1
        assert await SessionStore(test_db).get_by_transaction_id("txn-1") is not None

    @pytest.mark.asyncio
    async def test_counter_net_change_is_zero(self, controller, make_event, test_db):
        """Every admitted call is matched by exactly one decrement."""
        counter = CallCounter(test_db)
        before = await counter.value()

        admitted = []
        for n, event_type in enumerate(["NEW_INBOUND_CALL", "CALL_ANSWERED", "NEW_INBOUND_CALL"]):
            transaction_id = f"txn-{n}"
            attributes = await admit(controller, make_event, transaction_id, event_type)
            admitted.append((transaction_id, attributes))
        assert await counter.value() == before + 3

        for transaction_id, attributes in admitted:
            await controller.handle(
                make_event(
                    "HANGUP",
                    transaction_id=transaction_id,
                    attributes=attributes,
                    action_data={"Type": "Hangup", "Parameters": {"ParticipantTag": "LEG-A"}},
                )
            )

        assert await counter.value() == before


class TestUnrecognizedEvents:
    """Test the no-op branch."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("event_type", ["ACTION_FAILED", "INVALID_LAMBDA_RESPONSE", ""])
    async def test_unrecognized_event_is_noop(
        self, controller, make_event, mock_conferencing, test_db, event_type
    ):
        """Unknown event types return no actions and unchanged attributes."""
        attributes = {"MeetingId": "meeting-7", "CallIdLegA": "A1", "CallIdLegB": "B1", "Custom": "kept"}

        response = await controller.handle(make_event(event_type, attributes=attributes))

        assert response.actions == []
        assert response.to_wire()["TransactionAttributes"] == attributes
        mock_conferencing.create_meeting.assert_not_awaited()
        mock_conferencing.delete_meeting.assert_not_awaited()
        assert await CallCounter(test_db).value() == 0

    @pytest.mark.asyncio
    async def test_inbound_attributes_are_not_mutated(self, controller, make_event):
        """The controller works on a copy of the round-tripped attributes."""
        event = make_event(
            "ACTION_SUCCESSFUL",
            attributes={"MeetingId": "meeting-1", "CallIdLegA": "", "CallIdLegB": ""},
            participants=[CALLER, BOT],
            action_data={"Type": "JoinChimeMeeting", "Parameters": {}},
        )

        await controller.handle(event)

        assert event.call_details.transaction_attributes == {"MeetingId": "meeting-1", "CallIdLegA": "", "CallIdLegB": ""}

    @pytest.mark.asyncio
    async def test_unrecognized_event_adds_no_keys(self, controller, make_event):
        """Attributes without the controller's own keys come back exactly as sent."""
        response = await controller.handle(make_event("ACTION_FAILED", attributes={"Note": "x"}))

        assert response.to_wire()["TransactionAttributes"] == {"Note": "x"}

    @pytest.mark.asyncio
    async def test_unrecognized_event_keeps_non_string_values(self, controller, make_event):
        attributes = {"MeetingId": "meeting-1", "CallIdLegA": 7, "Retries": [1, 2]}

        response = await controller.handle(make_event("ACTION_FAILED", attributes=attributes))

        assert response.to_wire()["TransactionAttributes"] == attributes


class TestAttributeTyping:
    """Attribute values of unexpected types never block a valid event."""

    @pytest.mark.asyncio
    async def test_numeric_leg_id_still_tears_down(
        self, controller, make_event, mock_conferencing, test_db
    ):
        await admit(controller, make_event)

        response = await controller.handle(
            make_event(
                "HANGUP",
                attributes={"MeetingId": "meeting-1", "CallIdLegA": 7, "CallIdLegB": 8},
                action_data={"Type": "Hangup", "Parameters": {"ParticipantTag": "LEG-A"}},
            )
        )

        assert response.actions[0].parameters.call_id == "8"
        mock_conferencing.delete_meeting.assert_awaited_once_with("meeting-1")
        assert await CallCounter(test_db).value() == 0


class TestRetriedAdmission:
    """A retried admission never leaves the counter out of step with sessions."""

    @pytest.mark.asyncio
    async def test_failed_retry_keeps_session_for_hangup(
        self, controller, make_event, mock_conferencing, test_db
    ):
        """If the retry cannot create a meeting, the first session still ends the call."""
        attributes = await admit(controller, make_event)
        mock_conferencing.create_meeting.side_effect = ConferencingError("unavailable")

        with pytest.raises(ConferencingError):
            await controller.handle(make_event("NEW_INBOUND_CALL", participants=[CALLER]))

        mock_conferencing.delete_meeting.assert_not_awaited()
        assert (await SessionStore(test_db).get_by_transaction_id("txn-1")).meeting_id == "meeting-1"

        await controller.handle(
            make_event(
                "HANGUP",
                attributes=attributes,
                action_data={"Type": "Hangup", "Parameters": {"ParticipantTag": "LEG-A"}},
            )
        )

        assert await CallCounter(test_db).value() == 0

    @pytest.mark.asyncio
    async def test_successful_retry_then_hangup_nets_zero(
        self, controller, make_event, mock_conferencing, test_db
    ):
        await admit(controller, make_event)
        attributes = await admit(controller, make_event)

        await controller.handle(
            make_event(
                "HANGUP",
                attributes=attributes,
                action_data={"Type": "Hangup", "Parameters": {"ParticipantTag": "LEG-A"}},
            )
        )

        assert [c.args[0] for c in mock_conferencing.delete_meeting.await_args_list] == [
            "meeting-1",
            "meeting-2",
        ]
        assert await CallCounter(test_db).value() == 0

    @pytest.mark.asyncio
    async def test_old_meeting_delete_failure_does_not_fail_retry(
        self, controller, make_event, mock_conferencing, test_db
    ):
        await admit(controller, make_event)
        mock_conferencing.delete_meeting.side_effect = ConferencingError("unavailable")

        response = await controller.handle(make_event("NEW_INBOUND_CALL", participants=[CALLER]))

        assert response.transaction_attributes.meeting_id == "meeting-2"
        assert (await SessionStore(test_db).get_by_transaction_id("txn-1")).meeting_id == "meeting-2"
        assert await CallCounter(test_db).value() == 1


class TestHangupMeetingFallback:
    """HANGUP without a MeetingId attribute uses the stored session."""

    @pytest.mark.asyncio
    async def test_meeting_from_session_is_deleted(
        self, controller, make_event, mock_conferencing, test_db
    ):
        await admit(controller, make_event)

        await controller.handle(
            make_event("HANGUP", action_data={"Type": "Hangup", "Parameters": {"ParticipantTag": "LEG-B"}})
        )

        mock_conferencing.delete_meeting.assert_awaited_once_with("meeting-1")
        assert await CallCounter(test_db).value() == 0
