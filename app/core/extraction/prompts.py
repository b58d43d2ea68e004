"""
Prompt construction for fact extraction.

build_extraction_request is pure: the same context and message always
produce the same prompt.
"""

import json

from app.core.extraction.types import ExtractionRequest
from app.core.registration.context import ConversationContext
from app.core.registration.schedule import (
    DAY_NAMES,
    DEFAULT_AFTERNOON_END_HOUR,
    MORNING_END_HOUR,
)
from app.core.registration.state import ConversationState

ASSISTANT_NAME = "Kai"

# (parent phrase, preferredDays, preferredTimeOfDay)
EXTRACTION_RULES = (
    ("Weekend mornings", [0, 6], "morning"),
    ("Weekday afternoons", [1, 2, 3, 4, 5], "afternoon"),
    ("Show me all options", [0, 1, 2, 3, 4, 5, 6], "any"),
    ("I'm flexible", [0, 1, 2, 3, 4, 5, 6], "any"),
)

COMMUNICATION_STYLE = """- Warm, upbeat and brief: 2-3 sentences, at most one question.
- Use the child's name once you know it.
- Never mention internal states, JSON, or that you are extracting data.
- Do not list sessions yourself; the app shows matching sessions as cards."""

BUSINESS_RULES = """- Programs serve children aged 2 to 18.
- Ask for the child's first name and age before schedule preferences.
- Sessions need the child's age plus a day or time preference to match."""

STATE_GUIDANCE: dict[ConversationState, str] = {
    ConversationState.GREETING: "Welcome the parent and ask for their child's name and age.",
    ConversationState.COLLECTING_CHILD_INFO: "Collect the child's first name and age.",
    ConversationState.COLLECTING_PREFERENCES: (
        "Ask which days and times work (weekday afternoons, weekend mornings, or anything)."
    ),
    ConversationState.SHOWING_RECOMMENDATIONS: (
        "Sessions are on screen. Help the parent compare them or adjust preferences."
    ),
    ConversationState.CONFIRMING_SELECTION: "The parent picked a session; answer questions about it.",
    ConversationState.COLLECTING_PAYMENT: "Payment is handled by the form; answer questions briefly.",
    ConversationState.CONFIRMED: "Registration is complete; answer follow-up questions.",
    ConversationState.ERROR: "Something went wrong earlier; pick up collecting the child's details.",
}

RESPONSE_FORMAT = """Respond with ONLY valid JSON (use null for anything not mentioned in the latest message):
{
    "message": "<your reply to the parent>",
    "extractedData": {
        "childName": "<first name or null>",
        "childAge": <integer 2-18 or null>,
        "preferredDays": [<day numbers>] or null,
        "preferredTime": "<HH:MM 24-hour or null>",
        "preferredTimeOfDay": "<morning|afternoon|evening|any or null>",
        "preferredProgram": "<sport keyword such as soccer or swim, or null>"
    },
    "nextState": "<greeting|collecting_child_info|collecting_preferences|showing_recommendations|confirming_selection|collecting_payment>"
}"""


def _describe_day_numbers() -> str:
    return ", ".join(f"{i}={name}" for i, name in enumerate(DAY_NAMES))


def _describe_time_buckets(afternoon_end_hour: int) -> str:
    return (
        f"morning = starts before {MORNING_END_HOUR}:00, "
        f"afternoon = {MORNING_END_HOUR}:00 to {afternoon_end_hour}:00, "
        f"evening = {afternoon_end_hour}:00 or later"
    )


def _describe_rules() -> str:
    return "\n".join(
        f'- "{phrase}" = preferredDays: {json.dumps(days)}, preferredTimeOfDay: "{time_of_day}"'
        for phrase, days, time_of_day in EXTRACTION_RULES
    )


def _describe_known(context: ConversationContext) -> str:
    def known(value) -> str:
        return "unknown" if value is None else str(value)

    days = context.preferred_days
    return "\n".join([
        f"- Child Name: {known(context.child_name)}",
        f"- Child Age: {known(context.child_age)}",
        f"- Preferred Days: {days.describe() if days is not None else 'unknown'}",
        f"- Preferred Time: {known(context.preferred_time)}",
        f"- Preferred Time of Day: "
        f"{context.preferred_time_of_day.value if context.preferred_time_of_day else 'unknown'}",
        f"- Preferred Program: {known(context.preferred_program)}",
    ])


def build_system_prompt(afternoon_end_hour: int = DEFAULT_AFTERNOON_END_HOUR) -> str:
    return f"""You are {ASSISTANT_NAME}, a friendly assistant helping parents register their children for youth sports programs.

## COMMUNICATION STYLE
{COMMUNICATION_STYLE}

## BUSINESS RULES
{BUSINESS_RULES}

## EXTRACTION RULES
- Day numbers: {_describe_day_numbers()}
- Time of day: {_describe_time_buckets(afternoon_end_hour)}
- Only extract what the latest message says; never repeat known facts.
{_describe_rules()}

{RESPONSE_FORMAT}"""


def build_extraction_request(
    context: ConversationContext,
    message: str,
    afternoon_end_hour: int = DEFAULT_AFTERNOON_END_HOUR,
) -> ExtractionRequest:
    """Build the prompt pair for one turn.

    Args:
        context: Conversation context before this message
        message: The parent's latest message
        afternoon_end_hour: Evening boundary used in the time-of-day rules

    Returns:
        ExtractionRequest with system prompt and user prompt
    """
    guidance = STATE_GUIDANCE.get(context.current_state, "")
    prompt = "\n".join([
        f"## CURRENT CONVERSATION STATE: {context.current_state.value}",
        guidance,
        "",
        "## WHAT YOU KNOW SO FAR:",
        _describe_known(context),
        "",
        "## PARENT'S LATEST MESSAGE:",
        json.dumps(message.strip(), ensure_ascii=False),
    ])

    return ExtractionRequest(
        system_prompt=build_system_prompt(afternoon_end_hour),
        prompt=prompt,
    )
