"""
Response templates for the registration assistant.

The extractor writes the conversational reply for ordinary turns. These
templates cover the turns it cannot speak for: corrective prompts,
recommendation and no-match summaries (it never sees the inventory),
explicit events and failures.
"""

from typing import Optional

from app.core.matching.alternatives import AlternativeResult, SessionIssue
from app.core.matching.types import RecommendationResult
from app.core.registration.context import ConversationContext, SelectedSession
from app.core.registration.schedule import DAY_NAMES, format_clock_12h
from app.core.registration.state import ConversationState


FAILURE_MESSAGES = {
    "AI_ERROR": (
        "I'm having a little trouble understanding right now. "
        "You can keep going with the registration form instead."
    ),
    "AI_TIMEOUT": (
        "Sorry, that took longer than it should have. "
        "You can try again or switch to the registration form."
    ),
    "INTERNAL_ERROR": (
        "Something went wrong on our side. "
        "Your details are safe, and the registration form is ready if you'd like to continue there."
    ),
}


class ResponseBuilder:
    """Template responses. Warm, short, one question at a time."""

    def greeting(self) -> str:
        return (
            "Hi there! I'm Kai, and I'll help you find the perfect program. "
            "What's your child's name and how old are they?"
        )

    def age_out_of_range(self, min_age: int, max_age: int) -> str:
        return (
            "Hmm, that age doesn't seem quite right for our youth programs "
            f"(ages {min_age}-{max_age}). Could you double-check and let me know their actual age?"
        )

    def prompt_for(
        self,
        state: ConversationState,
        context: ConversationContext,
        missing: Optional[str] = None,
    ) -> str:
        """Fallback question for a state when no reply was generated.

        Args:
            state: State the conversation is in
            context: Current context
            missing: First fact still needed; worked out from the context if omitted
        """
        name = context.child_name
        if missing is None:
            outstanding = context.missing_fields()
            missing = outstanding[0] if outstanding else None

        if state in (ConversationState.GREETING, ConversationState.COLLECTING_CHILD_INFO):
            if missing == "childAge" and name:
                return f"Thanks! How old is {name}?"
            if missing == "childName" and context.child_age is not None:
                return "Great! And what's your child's first name?"
            return "What's your child's name and how old are they?"

        if state == ConversationState.COLLECTING_PREFERENCES:
            who = name or "your child"
            return f"What days and times work best for {who}?"

        if state == ConversationState.SHOWING_RECOMMENDATIONS:
            return "Would you like to pick one of these sessions, or see other times?"

        if state == ConversationState.CONFIRMING_SELECTION:
            return "Shall I go ahead and sign you up for this session?"

        if state == ConversationState.COLLECTING_PAYMENT:
            return "You're almost done! Just complete the payment details to finish."

        if state == ConversationState.CONFIRMED:
            return "You're all set! Is there anything else I can help with?"

        return "I'm here to help. Could you tell me a bit more?"

    def recommendations(
        self,
        results: list[RecommendationResult],
        context: ConversationContext,
    ) -> str:
        who = context.child_name or "your child"
        if len(results) == 1:
            return f"I found a great option for {who}! Take a look and let me know if it works."
        return f"I found {len(results)} great options for {who}! Which one looks best?"

    def no_matches(
        self,
        context: ConversationContext,
        alternatives: Optional[AlternativeResult] = None,
    ) -> str:
        """Explain an empty match and what can be offered instead."""
        who = context.child_name or "your child"
        parts = []

        if alternatives is not None and alternatives.requested:
            parts.append(self._describe_requested(alternatives))
        else:
            parts.append(f"I couldn't find any open sessions for {who} with those preferences.")

        if alternatives is not None and alternatives.has_alternatives:
            count = len(alternatives.alternatives)
            noun = "option" if count == 1 else "options"
            parts.append(f"Here {'is' if count == 1 else 'are'} {count} similar {noun} that could work.")

        if alternatives is None or alternatives.recommend_waitlist:
            parts.append("I can also add you to the waitlist so you hear as soon as a spot opens.")
        elif not alternatives.has_alternatives:
            parts.append("Would you like to try different days or times?")

        return " ".join(parts)

    def _describe_requested(self, alternatives: AlternativeResult) -> str:
        first = alternatives.requested[0]
        session = first.session
        label = (
            f"{session.program_name} on {DAY_NAMES[session.day_of_week]} "
            f"at {format_clock_12h(session.start_time)}"
        )

        if first.issue == SessionIssue.FULL:
            return f"The {label} session is full right now."
        if first.issue == SessionIssue.CANCELLED:
            return f"The {label} session has been cancelled."
        return f"The {label} session is for a different age group."

    def selection_confirmation(self, selected: SelectedSession) -> str:
        return (
            f"Great choice! {selected.program_name} on {DAY_NAMES[selected.day_of_week]}s "
            f"at {format_clock_12h(selected.start_time)}"
            f"{' at ' + selected.location_name if selected.location_name else ''}. "
            "Shall I go ahead and sign you up?"
        )

    def payment_prompt(self, selected: Optional[SelectedSession]) -> str:
        if selected is None:
            return "You're almost done! Just complete the payment details to finish."
        price = f"${selected.price_in_cents / 100:,.2f}"
        return f"Wonderful! The total is {price}. Just complete the payment details to finish."

    def registration_confirmed(self, context: ConversationContext) -> str:
        who = context.child_name or "Your child"
        return f"You're all set! {who} is registered. We'll send a confirmation email shortly."

    def went_back(self, state: ConversationState, context: ConversationContext) -> str:
        if state == ConversationState.SHOWING_RECOMMENDATIONS:
            return "No problem! Here are the options again. Which one would you like?"
        if state == ConversationState.COLLECTING_PREFERENCES:
            return "Sure! What days and times would work better?"
        if state == ConversationState.COLLECTING_CHILD_INFO:
            return "Of course. Let's update your child's details. What should I change?"
        return self.prompt_for(state, context)

    def failure(self, code: str) -> str:
        return FAILURE_MESSAGES.get(code, FAILURE_MESSAGES["INTERNAL_ERROR"])


# Singleton
_builder: Optional[ResponseBuilder] = None


def get_response_builder() -> ResponseBuilder:
    """Get singleton ResponseBuilder."""
    global _builder
    if _builder is None:
        _builder = ResponseBuilder()
    return _builder
