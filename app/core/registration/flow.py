"""
Conversation Flow Manager.

Single authority for registration state transitions. Message turns run
the automatic rules against the merged context; selection, confirmation,
completion and "go back" are explicit events.
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional

from app.core.registration.context import ConversationContext, SelectedSession
from app.core.registration.errors import InvalidTransitionError
from app.core.registration.state import (
    ConversationState,
    can_transition,
    get_back_state,
    is_event_driven_state,
    parse_state,
)

logger = logging.getLogger(__name__)


@dataclass
class FlowAction:
    """Decision made by the flow manager for one message turn."""

    next_state: ConversationState
    should_match: bool = False  # Whether to run the session lookup
    prompt_for: Optional[str] = None  # First missing fact, if any


class ConversationFlow:
    """
    State machine manager for registration conversations.

    The next state is always recomputed from the merged context:
    - greeting (and error) restart at collecting_child_info
    - child info known -> collecting_preferences
    - age plus one schedule axis known -> showing_recommendations
    Rules cascade, so a single detailed message can land on
    showing_recommendations. The extractor's proposed state is only
    compared and logged.
    """

    def decide(
        self,
        context: ConversationContext,
        hint: Optional[str] = None,
    ) -> FlowAction:
        """Determine the next state after a message turn.

        Args:
            context: Context after reconciliation
            hint: State proposed by the extractor (non-authoritative)

        Returns:
            FlowAction with next state and whether to look up sessions
        """
        current = context.current_state

        if is_event_driven_state(current):
            next_state = current
        else:
            next_state = current
            if next_state in (ConversationState.GREETING, ConversationState.ERROR):
                next_state = ConversationState.COLLECTING_CHILD_INFO
            if (
                next_state == ConversationState.COLLECTING_CHILD_INFO
                and context.has_child_info
            ):
                next_state = ConversationState.COLLECTING_PREFERENCES
            if (
                next_state == ConversationState.COLLECTING_PREFERENCES
                and context.ready_for_recommendations
            ):
                next_state = ConversationState.SHOWING_RECOMMENDATIONS

        if next_state != current:
            logger.info(
                f"Conversation {context.conversation_id}: "
                f"{current.value} -> {next_state.value}"
            )

        hint_state = parse_state(hint)
        if hint_state is not None and hint_state != next_state:
            logger.info(
                f"Conversation {context.conversation_id}: extractor proposed "
                f"{hint_state.value}, staying with {next_state.value}"
            )
        elif hint and hint_state is None:
            logger.warning(f"Ignoring unknown state hint: {hint!r}")

        missing = context.missing_fields()
        return FlowAction(
            next_state=next_state,
            should_match=next_state == ConversationState.SHOWING_RECOMMENDATIONS,
            prompt_for=missing[0] if missing else None,
        )

    def select_session(
        self,
        context: ConversationContext,
        selection: SelectedSession,
    ) -> ConversationContext:
        """Record the parent's pick and move to confirming_selection."""
        self._require(context, ConversationState.CONFIRMING_SELECTION, "select a session")
        return replace(
            context,
            selected_session=selection,
            current_state=ConversationState.CONFIRMING_SELECTION,
        )

    def confirm_selection(self, context: ConversationContext) -> ConversationContext:
        """Confirm the selected session and move on to payment."""
        self._require(context, ConversationState.COLLECTING_PAYMENT, "confirm a selection")
        if context.selected_session is None:
            raise InvalidTransitionError(context.current_state.value, "confirm without a selection")
        return replace(context, current_state=ConversationState.COLLECTING_PAYMENT)

    def complete_registration(self, context: ConversationContext) -> ConversationContext:
        """Mark payment done. Called once the payment step reports success."""
        self._require(context, ConversationState.CONFIRMED, "complete registration")
        return replace(context, current_state=ConversationState.CONFIRMED)

    def go_back(self, context: ConversationContext) -> ConversationContext:
        """Step back one state. Leaving confirming_selection drops the pick."""
        target = get_back_state(context.current_state)
        if target is None:
            raise InvalidTransitionError(context.current_state.value, "go back")

        updated = replace(context, current_state=target)
        if context.current_state == ConversationState.CONFIRMING_SELECTION:
            updated = replace(updated, selected_session=None)

        logger.info(
            f"Conversation {context.conversation_id}: back "
            f"{context.current_state.value} -> {target.value}"
        )
        return updated

    def fail(self, context: ConversationContext) -> ConversationContext:
        """Move the conversation to the error state, keeping known facts."""
        return replace(context, current_state=ConversationState.ERROR)

    def _require(
        self,
        context: ConversationContext,
        target: ConversationState,
        event: str,
    ) -> None:
        if not can_transition(context.current_state, target):
            raise InvalidTransitionError(context.current_state.value, event)


# Singleton
_flow: Optional[ConversationFlow] = None


def get_conversation_flow() -> ConversationFlow:
    """Get singleton ConversationFlow."""
    global _flow
    if _flow is None:
        _flow = ConversationFlow()
    return _flow
