"""
LLM-based fact extraction using Claude.

Extracts: child name and age, preferred days, time and time of day,
program keyword. Also returns the conversational reply and a proposed
next state (a hint the flow manager is free to ignore).
"""

import json
import logging
import time
from typing import Any, Optional, Protocol

from app.config import settings
from app.core.extraction.prompts import build_extraction_request
from app.core.extraction.types import ExtractedFacts, ExtractionResult
from app.core.registration.context import ConversationContext
from app.core.registration.errors import ExtractionError, ExtractionTimeoutError
from app.core.registration.schedule import DaySelection, TimeOfDay, format_clock, parse_clock
from app.infra.claude import ClaudeClient, ClaudeClientError, get_claude_client

logger = logging.getLogger(__name__)


class FactExtractor(Protocol):
    """Anything that can turn a parent message into facts and a reply."""

    async def extract(self, message: str, context: ConversationContext) -> ExtractionResult:
        ...


class ClaudeExtractor:
    """Fact extraction backed by the Claude API."""

    def __init__(self, claude_client: Optional[ClaudeClient] = None):
        """Initialize extractor.

        Args:
            claude_client: Optional Claude client (for testing)
        """
        self._client = claude_client

    async def _get_client(self) -> ClaudeClient:
        """Get or create Claude client."""
        if self._client is None:
            try:
                self._client = await get_claude_client()
            except ValueError as e:
                raise ExtractionError(f"Extractor not configured: {e}") from e
        return self._client

    async def extract(self, message: str, context: ConversationContext) -> ExtractionResult:
        """
        Extract facts from a parent message.

        Args:
            message: Parent's message
            context: Conversation context before this message

        Returns:
            ExtractionResult with reply, facts and state hint

        Raises:
            ExtractionTimeoutError: If the model did not answer in time
            ExtractionError: If the call failed or the reply was unusable
        """
        start_time = time.time()
        request = build_extraction_request(
            context, message, afternoon_end_hour=settings.afternoon_end_hour
        )
        client = await self._get_client()

        try:
            response = await client.generate(
                prompt=request.prompt,
                system_prompt=request.system_prompt,
                max_tokens=400,
                temperature=0,
                use_fallback_on_error=True,
            )
        except ClaudeClientError as e:
            logger.error(f"Claude API error during extraction: {e}")
            if e.timed_out:
                raise ExtractionTimeoutError(str(e)) from e
            raise ExtractionError(str(e)) from e

        result = self.parse_response(response.content)
        result.model = response.model
        result.raw_response = response.content
        result.processing_time_ms = (time.time() - start_time) * 1000

        logger.debug(
            f"Extracted facts: {result.facts.to_dict()} next_state={result.next_state}"
        )
        return result

    def parse_response(self, response: str) -> ExtractionResult:
        """Parse the model's JSON reply.

        Raises:
            ExtractionError: If the reply is not a JSON object with a message
        """
        # Clean markdown if present
        response = response.strip()
        if response.startswith("```"):
            lines = response.split("\n")
            # Remove first line (```json or ```)
            lines = lines[1:]
            # Remove last line if it's closing ```
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]
            response = "\n".join(lines)
        response = response.strip()

        try:
            data = json.loads(response)
        except json.JSONDecodeError as e:
            logger.warning(f"Unparseable extraction response: {response[:200]}")
            raise ExtractionError(f"Malformed extraction response: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("message"), str):
            raise ExtractionError("Extraction response is missing a message")

        extracted = data.get("extractedData") or {}
        if not isinstance(extracted, dict):
            logger.warning(f"Ignoring non-object extractedData: {extracted!r}")
            extracted = {}

        next_state = data.get("nextState")
        return ExtractionResult(
            message=data["message"].strip(),
            facts=self._parse_facts(extracted),
            next_state=next_state if isinstance(next_state, str) else None,
        )

    def _parse_facts(self, data: dict[str, Any]) -> ExtractedFacts:
        return ExtractedFacts(
            child_name=_parse_text(data.get("childName")),
            child_age=_parse_age(data.get("childAge")),
            preferred_days=_parse_days(data.get("preferredDays")),
            preferred_time=_parse_time(data.get("preferredTime")),
            preferred_time_of_day=_parse_time_of_day(data.get("preferredTimeOfDay")),
            preferred_program=_parse_text(data.get("preferredProgram")),
        )


def _parse_text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value or value.lower() in ("null", "none", "unknown"):
        return None
    return value


def _parse_age(value: Any) -> Optional[int]:
    """Whole-number ages only. Range checks belong to the reconciler."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    number = value
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            number = None
    if isinstance(number, float):
        return int(number) if number.is_integer() else None
    logger.warning(f"Invalid age value: {value!r}")
    return None


def _parse_days(value: Any) -> Optional[DaySelection]:
    if not isinstance(value, list) or not value:
        return None
    valid = [d for d in value if isinstance(d, int) and not isinstance(d, bool) and 0 <= d <= 6]
    if len(valid) != len(value):
        logger.warning(f"Dropped invalid day numbers from {value!r}")
    if not valid:
        return None
    return DaySelection.of(valid)


def _parse_time(value: Any) -> Optional[str]:
    if value is None:
        return None
    parsed = parse_clock(value) if isinstance(value, str) else None
    if parsed is None:
        logger.warning(f"Invalid time format: {value!r}")
        return None
    return format_clock(parsed)


def _parse_time_of_day(value: Any) -> Optional[TimeOfDay]:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return TimeOfDay(value.strip().lower())
    except ValueError:
        logger.warning(f"Invalid time of day: {value!r}")
        return None


# Singleton
_extractor: Optional[ClaudeExtractor] = None


def get_fact_extractor() -> ClaudeExtractor:
    """Get singleton ClaudeExtractor."""
    global _extractor
    if _extractor is None:
        _extractor = ClaudeExtractor()
    return _extractor
