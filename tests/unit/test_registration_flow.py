"""Tests for the registration Conversation Flow Manager."""

import pytest
from dataclasses import replace

from app.core.registration.context import ConversationContext, SelectedSession
from app.core.registration.errors import InvalidTransitionError
from app.core.registration.flow import ConversationFlow
from app.core.registration.schedule import DaySelection, TimeOfDay
from app.core.registration.state import ConversationState


@pytest.fixture
def flow():
    return ConversationFlow()


@pytest.fixture
def context():
    return ConversationContext(conversation_id="conv-1", organization_id="org-1")


@pytest.fixture
def selection():
    return SelectedSession(
        session_id="s-1",
        program_name="Little Kickers",
        location_name="North Field",
        day_of_week=6,
        start_time="09:00",
        price_in_cents=12000,
    )


class TestDecide:
    """Test automatic transitions on message turns."""

    def test_greeting_moves_to_child_info(self, flow, context):
        action = flow.decide(context)
        assert action.next_state == ConversationState.COLLECTING_CHILD_INFO
        assert action.prompt_for == "childName"
        assert not action.should_match

    def test_child_info_moves_to_preferences(self, flow, context):
        context = replace(
            context,
            current_state=ConversationState.COLLECTING_CHILD_INFO,
            child_name="Emma",
            child_age=5,
        )
        action = flow.decide(context)
        assert action.next_state == ConversationState.COLLECTING_PREFERENCES
        assert action.prompt_for == "schedulePreference"

    def test_single_message_cascades_to_recommendations(self, flow, context):
        context = replace(
            context,
            child_name="Emma",
            child_age=5,
            preferred_days=DaySelection.of([0, 6]),
            preferred_time_of_day=TimeOfDay.MORNING,
        )
        action = flow.decide(context)
        assert action.next_state == ConversationState.SHOWING_RECOMMENDATIONS
        assert action.should_match
        assert action.prompt_for is None

    def test_age_without_name_stays_collecting(self, flow, context):
        context = replace(
            context,
            current_state=ConversationState.COLLECTING_CHILD_INFO,
            child_age=5,
            preferred_time_of_day=TimeOfDay.MORNING,
        )
        action = flow.decide(context)
        assert action.next_state == ConversationState.COLLECTING_CHILD_INFO

    def test_showing_rematches_on_every_turn(self, flow, context):
        context = replace(
            context,
            current_state=ConversationState.SHOWING_RECOMMENDATIONS,
            child_name="Emma",
            child_age=5,
            preferred_time_of_day=TimeOfDay.AFTERNOON,
        )
        action = flow.decide(context)
        assert action.next_state == ConversationState.SHOWING_RECOMMENDATIONS
        assert action.should_match

    def test_error_state_restarts_collection(self, flow, context):
        context = replace(context, current_state=ConversationState.ERROR, child_name="Emma")
        action = flow.decide(context)
        assert action.next_state == ConversationState.COLLECTING_CHILD_INFO

    @pytest.mark.parametrize(
        "state",
        [
            ConversationState.CONFIRMING_SELECTION,
            ConversationState.COLLECTING_PAYMENT,
            ConversationState.CONFIRMED,
        ],
    )
    def test_event_driven_states_hold(self, flow, context, state):
        context = replace(context, current_state=state, child_name="Emma", child_age=5)
        action = flow.decide(context, hint="greeting")
        assert action.next_state == state
        assert not action.should_match

    def test_hint_is_not_authoritative(self, flow, context):
        action = flow.decide(context, hint="collecting_payment")
        assert action.next_state == ConversationState.COLLECTING_CHILD_INFO

    def test_unknown_hint_is_ignored(self, flow, context):
        action = flow.decide(context, hint="teleport")
        assert action.next_state == ConversationState.COLLECTING_CHILD_INFO


class TestEvents:
    """Test explicit selection, confirmation, completion and back events."""

    def test_full_happy_path(self, flow, context, selection):
        context = replace(context, current_state=ConversationState.SHOWING_RECOMMENDATIONS)

        context = flow.select_session(context, selection)
        assert context.current_state == ConversationState.CONFIRMING_SELECTION
        assert context.selected_session == selection

        context = flow.confirm_selection(context)
        assert context.current_state == ConversationState.COLLECTING_PAYMENT

        context = flow.complete_registration(context)
        assert context.current_state == ConversationState.CONFIRMED

    def test_select_requires_showing(self, flow, context, selection):
        context = replace(context, current_state=ConversationState.COLLECTING_PREFERENCES)
        with pytest.raises(InvalidTransitionError):
            flow.select_session(context, selection)

    def test_confirm_requires_selection(self, flow, context):
        context = replace(context, current_state=ConversationState.CONFIRMING_SELECTION)
        with pytest.raises(InvalidTransitionError):
            flow.confirm_selection(context)

    def test_complete_requires_payment_state(self, flow, context):
        context = replace(context, current_state=ConversationState.CONFIRMING_SELECTION)
        with pytest.raises(InvalidTransitionError):
            flow.complete_registration(context)

    def test_back_from_confirming_clears_selection(self, flow, context, selection):
        context = replace(
            context,
            current_state=ConversationState.CONFIRMING_SELECTION,
            selected_session=selection,
        )
        context = flow.go_back(context)
        assert context.current_state == ConversationState.SHOWING_RECOMMENDATIONS
        assert context.selected_session is None

    def test_back_from_payment_keeps_selection(self, flow, context, selection):
        context = replace(
            context,
            current_state=ConversationState.COLLECTING_PAYMENT,
            selected_session=selection,
        )
        context = flow.go_back(context)
        assert context.current_state == ConversationState.CONFIRMING_SELECTION
        assert context.selected_session == selection

    @pytest.mark.parametrize(
        "state",
        [ConversationState.GREETING, ConversationState.CONFIRMED, ConversationState.ERROR],
    )
    def test_back_rejected_without_previous_step(self, flow, context, state):
        with pytest.raises(InvalidTransitionError):
            flow.go_back(replace(context, current_state=state))

    def test_fail_keeps_facts(self, flow, context):
        context = replace(context, child_name="Emma", child_age=5)
        failed = flow.fail(context)
        assert failed.current_state == ConversationState.ERROR
        assert failed.child_name == "Emma"
