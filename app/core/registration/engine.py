"""
Registration Engine - Main Orchestrator.

Runs one conversation turn end to end:
extract facts -> reconcile -> decide next state -> match sessions ->
compose reply -> persist state and context.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional

from app.config import settings
from app.core.extraction.extractor import FactExtractor, get_fact_extractor
from app.core.extraction.types import ExtractedFacts, ExtractionResult
from app.core.matching.alternatives import (
    AlternativeFinder,
    AlternativeResult,
    get_alternative_finder,
)
from app.core.matching.filter import AvailabilityFilter, get_availability_filter
from app.core.matching.inventory import SessionInventory, get_session_inventory
from app.core.matching.types import MatchCriteria, RecommendationResult
from app.core.registration.context import ConversationContext, SelectedSession
from app.core.registration.errors import (
    ContextMismatchError,
    ConversationNotFoundError,
    ExtractionError,
    ExtractionTimeoutError,
    InvalidSelectionError,
    InvalidTransitionError,
)
from app.core.registration.flow import ConversationFlow, get_conversation_flow
from app.core.registration.reconciler import reconcile
from app.core.registration.response import ResponseBuilder, get_response_builder
from app.core.registration.state import (
    ConversationState,
    get_progress,
    get_quick_replies,
)
from app.core.registration.store import ConversationStore, get_conversation_store

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


@dataclass
class TurnError:
    """Turn-level failure shown to the caller."""

    code: str  # AI_ERROR, AI_TIMEOUT, INTERNAL_ERROR
    message: str
    fallback_to_form: bool = True

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "fallbackToForm": self.fallback_to_form,
        }


@dataclass
class TurnResult:
    """Outcome of one turn or event."""

    success: bool
    context: Optional[ConversationContext]  # None when the conversation could not be loaded
    message: str = ""
    extracted_data: dict = field(default_factory=dict)
    recommendations: Optional[list[RecommendationResult]] = None
    alternatives: Optional[AlternativeResult] = None
    error: Optional[TurnError] = None
    processing_time_ms: Optional[float] = None

    @property
    def next_state(self) -> ConversationState:
        return self.context.current_state

    @property
    def quick_replies(self) -> list[str]:
        return get_quick_replies(self.next_state)

    @property
    def progress(self) -> int:
        return get_progress(self.next_state)

    @property
    def waitlist_recommended(self) -> bool:
        if self.alternatives is not None:
            return self.alternatives.recommend_waitlist
        # Flexible request with nothing open: nothing to relax, offer the waitlist
        return self.recommendations is not None and not self.recommendations

    def to_dict(self) -> dict:
        """Convert to the wire format."""
        if not self.success:
            return {
                "success": False,
                "error": self.error.to_dict() if self.error else None,
                "context": self.context.to_dict() if self.context else None,
            }

        return {
            "success": True,
            "response": {
                "message": self.message,
                "nextState": self.next_state.value,
                "extractedData": self.extracted_data,
                "quickReplies": self.quick_replies,
                "progress": self.progress,
                "recommendations": (
                    [r.to_dict() for r in self.recommendations]
                    if self.recommendations is not None else None
                ),
                "alternatives": self.alternatives.to_dict() if self.alternatives else None,
                "waitlistRecommended": self.waitlist_recommended,
                "context": self.context.to_dict(),
            },
        }


class RegistrationEngine:
    """
    Main orchestrator for the registration assistant.

    Coordinates:
    - Fact extraction (external model, bounded by a timeout)
    - Reconciliation into the context
    - State decisions (ConversationFlow is the only authority)
    - Session lookup, filtering and alternatives
    - Persistence of state and context
    """

    def __init__(
        self,
        extractor: Optional[FactExtractor] = None,
        inventory: Optional[SessionInventory] = None,
        store: Optional[ConversationStore] = None,
        availability_filter: Optional[AvailabilityFilter] = None,
        alternative_finder: Optional[AlternativeFinder] = None,
        flow_manager: Optional[ConversationFlow] = None,
        responses: Optional[ResponseBuilder] = None,
        extraction_timeout: Optional[float] = None,
    ):
        """Initialize engine with optional dependencies.

        Args:
            extractor: Fact extractor (Claude-backed by default)
            inventory: Session inventory accessor
            store: Conversation store
            availability_filter: Availability filter
            alternative_finder: Alternative finder
            flow_manager: Conversation flow manager
            responses: Response templates
            extraction_timeout: Seconds allowed for one extraction
        """
        self._extractor = extractor or get_fact_extractor()
        self._inventory = inventory or get_session_inventory()
        self._store = store or get_conversation_store()
        self._filter = availability_filter or get_availability_filter()
        self._finder = alternative_finder or get_alternative_finder()
        self._flow = flow_manager or get_conversation_flow()
        self._responses = responses or get_response_builder()
        self._extraction_timeout = (
            extraction_timeout
            if extraction_timeout is not None
            else settings.extraction_timeout_seconds
        )

    async def start_conversation(
        self,
        organization_id: str,
        family_id: Optional[str] = None,
    ) -> TurnResult:
        """Create a conversation and greet the parent.

        Raises:
            ValueError: If organization_id is not a UUID
        """
        try:
            context = await self._store.create(organization_id, family_id=family_id)
            message = self._responses.greeting()
            await self._store.save(context, messages=[{"role": "assistant", "content": message}])
        except ValueError:
            raise
        except Exception as e:
            logger.error(
                f"Could not start conversation for organization {organization_id}: {e}",
                exc_info=True,
            )
            return self._failure("INTERNAL_ERROR")
        return TurnResult(success=True, context=context, message=message)

    async def get_context(self, conversation_id: str) -> ConversationContext:
        """Load a conversation's context (raises ConversationNotFoundError)."""
        return await self._store.get(conversation_id)

    async def get_messages(self, conversation_id: str) -> list[dict]:
        return await self._store.get_messages(conversation_id)

    async def process_turn(
        self,
        conversation_id: str,
        message: str,
        context: Optional[ConversationContext] = None,
    ) -> TurnResult:
        """Process one parent message.

        Args:
            conversation_id: Conversation identifier
            message: Parent's message
            context: Client copy of the context. The stored context is
                always loaded; only the parent's facts are taken from this copy.

        Returns:
            TurnResult. Extraction and internal faults come back as
            success=False with the conversation moved to the error state.

        Raises:
            ConversationNotFoundError: If the conversation does not exist
            ContextMismatchError: If the client copy disagrees with the store
        """
        start_time = _utcnow()
        try:
            context = await self._load_context(conversation_id, context)
        except (ConversationNotFoundError, ContextMismatchError):
            raise
        except Exception as e:
            logger.error(f"Could not load conversation {conversation_id}: {e}", exc_info=True)
            return self._failure("INTERNAL_ERROR")

        try:
            extraction = await self._extract(message, context)
        except ExtractionTimeoutError as e:
            logger.error(f"Extraction timed out for {conversation_id}: {e}")
            return await self._fail(context, "AI_TIMEOUT", message)
        except ExtractionError as e:
            logger.error(f"Extraction failed for {conversation_id}: {e}")
            return await self._fail(context, "AI_ERROR", message)

        if not extraction.facts.has_any():
            logger.debug(f"No new facts in message for {conversation_id}")

        reconciled = reconcile(
            context,
            extraction.facts,
            min_age=settings.min_child_age,
            max_age=settings.max_child_age,
        )
        if reconciled.rejected:
            # Nothing persisted, no lookup; state stays where it was
            return TurnResult(
                success=True,
                context=context,
                message=self._responses.age_out_of_range(
                    settings.min_child_age, settings.max_child_age
                ),
                processing_time_ms=self._elapsed_ms(start_time),
            )

        try:
            action = self._flow.decide(reconciled.context, hint=extraction.next_state)
            updated = replace(reconciled.context, current_state=action.next_state)

            recommendations = None
            alternatives = None
            reply = extraction.message

            if action.should_match:
                recommendations, alternatives = await self._match(updated)
                if recommendations:
                    reply = reply or self._responses.recommendations(recommendations, updated)
                else:
                    reply = self._responses.no_matches(updated, alternatives)

            if not reply:
                reply = self._responses.prompt_for(action.next_state, updated, action.prompt_for)

            await self._store.save(updated, messages=[
                {"role": "user", "content": message},
                {"role": "assistant", "content": reply},
            ])

            return TurnResult(
                success=True,
                context=updated,
                message=reply,
                extracted_data=extraction.facts.to_dict(),
                recommendations=recommendations,
                alternatives=alternatives,
                processing_time_ms=self._elapsed_ms(start_time),
            )

        except Exception as e:
            logger.error(f"Error processing turn for {conversation_id}: {e}", exc_info=True)
            return await self._fail(context, "INTERNAL_ERROR", message)

    async def select_session(
        self,
        conversation_id: str,
        session_id: str,
        context: Optional[ConversationContext] = None,
    ) -> TurnResult:
        """Select a recommended (or alternative) session.

        Raises:
            ConversationNotFoundError: Unknown conversation
            InvalidTransitionError: Not currently showing recommendations
            InvalidSelectionError: Session unknown, unavailable or wrong age
            ContextMismatchError: Client context disagrees with the store
        """
        context = await self._load_context(conversation_id, context)
        if context.current_state != ConversationState.SHOWING_RECOMMENDATIONS:
            raise InvalidTransitionError(context.current_state.value, "select a session")

        candidates = await self._inventory.list_candidate_sessions(context.organization_id)
        session = next((s for s in candidates if s.session_id == session_id), None)
        if session is None:
            raise InvalidSelectionError(session_id, "not offered by this organization")

        issue = self._finder.issue_for(session, context.child_age) if context.child_age is not None else None
        if issue is not None:
            raise InvalidSelectionError(session_id, f"session is {issue.value}", issue=issue.value)
        if not session.is_available:
            raise InvalidSelectionError(session_id, "session is not open for registration")

        selection = SelectedSession(
            session_id=session.session_id,
            program_name=session.program_name,
            location_name=session.location_name or "",
            day_of_week=session.day_of_week,
            start_time=session.start_time,
            price_in_cents=session.price_in_cents,
        )
        updated = self._flow.select_session(context, selection)
        reply = self._responses.selection_confirmation(selection)
        await self._store.save(updated, messages=[{"role": "assistant", "content": reply}])
        return TurnResult(success=True, context=updated, message=reply)

    async def confirm_selection(
        self,
        conversation_id: str,
        context: Optional[ConversationContext] = None,
    ) -> TurnResult:
        """Confirm the selected session and hand off to payment."""
        context = await self._load_context(conversation_id, context)
        updated = self._flow.confirm_selection(context)
        reply = self._responses.payment_prompt(updated.selected_session)
        await self._store.save(updated, messages=[{"role": "assistant", "content": reply}])
        return TurnResult(success=True, context=updated, message=reply)

    async def complete_registration(
        self,
        conversation_id: str,
        context: Optional[ConversationContext] = None,
    ) -> TurnResult:
        """Record that payment succeeded."""
        context = await self._load_context(conversation_id, context)
        updated = self._flow.complete_registration(context)
        reply = self._responses.registration_confirmed(updated)
        await self._store.save(updated, messages=[{"role": "assistant", "content": reply}])
        logger.info(f"Registration completed for conversation {conversation_id}")
        return TurnResult(success=True, context=updated, message=reply)

    async def go_back(
        self,
        conversation_id: str,
        context: Optional[ConversationContext] = None,
    ) -> TurnResult:
        """Step back one state, re-running the lookup when returning to results."""
        context = await self._load_context(conversation_id, context)
        updated = self._flow.go_back(context)

        recommendations = None
        alternatives = None
        if updated.current_state == ConversationState.SHOWING_RECOMMENDATIONS:
            recommendations, alternatives = await self._match(updated)

        reply = self._responses.went_back(updated.current_state, updated)
        await self._store.save(updated, messages=[{"role": "assistant", "content": reply}])
        return TurnResult(
            success=True,
            context=updated,
            message=reply,
            recommendations=recommendations,
            alternatives=alternatives,
        )

    async def _load_context(
        self,
        conversation_id: str,
        client_context: Optional[ConversationContext] = None,
    ) -> ConversationContext:
        """Load the stored context, layering the client's parent facts on top.

        Identity, state and the selected session always come from the store.
        Client facts go through the reconciler, so empty values never erase
        and an out-of-range age is refused.

        Raises:
            ConversationNotFoundError: Unknown conversation
            ContextMismatchError: Client copy names another conversation,
                organization or state, or carries an out-of-range age
        """
        stored = await self._store.get(conversation_id)
        if client_context is None:
            return stored

        for attr, wire_name in (
            ("conversation_id", "conversationId"),
            ("organization_id", "organizationId"),
            ("current_state", "currentState"),
        ):
            if getattr(client_context, attr) != getattr(stored, attr):
                logger.warning(
                    f"Client context for {conversation_id} disagrees with stored {wire_name}"
                )
                raise ContextMismatchError(conversation_id, wire_name)

        merged = reconcile(
            stored,
            ExtractedFacts(
                child_name=client_context.child_name,
                child_age=client_context.child_age,
                preferred_days=client_context.preferred_days,
                preferred_time=client_context.preferred_time,
                preferred_time_of_day=client_context.preferred_time_of_day,
                preferred_program=client_context.preferred_program,
            ),
            min_age=settings.min_child_age,
            max_age=settings.max_child_age,
        )
        if merged.rejected:
            raise ContextMismatchError(conversation_id, "childAge")
        return merged.context

    async def _extract(self, message: str, context: ConversationContext) -> ExtractionResult:
        try:
            return await asyncio.wait_for(
                self._extractor.extract(message, context),
                timeout=self._extraction_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ExtractionTimeoutError(
                f"No extraction within {self._extraction_timeout}s"
            ) from e

    async def _match(
        self,
        context: ConversationContext,
    ) -> tuple[list[RecommendationResult], Optional[AlternativeResult]]:
        """Look up sessions; fall back to alternatives for specific requests."""
        criteria = MatchCriteria.from_context(context, afternoon_end_hour=settings.afternoon_end_hour)
        candidates = await self._inventory.list_candidate_sessions(criteria.organization_id)
        matches = self._filter.filter(candidates, criteria)

        logger.info(
            f"Matched {len(matches)} of {len(candidates)} sessions for "
            f"conversation {context.conversation_id}"
        )
        if matches:
            return [RecommendationResult.from_session(s) for s in matches], None

        if not criteria.is_specific:
            return [], None

        return [], self._finder.find(candidates, criteria)

    async def _fail(
        self,
        context: ConversationContext,
        code: str,
        user_message: Optional[str] = None,
    ) -> TurnResult:
        """Move to the error state and build a failure result."""
        failed = self._flow.fail(context)
        try:
            entries = [{"role": "user", "content": user_message}] if user_message else []
            await self._store.save(failed, messages=entries)
        except Exception as e:
            logger.error(
                f"Could not persist error state for {context.conversation_id}: {e}",
                exc_info=True,
            )

        return self._failure(code, failed)

    def _failure(
        self,
        code: str,
        context: Optional[ConversationContext] = None,
    ) -> TurnResult:
        message = self._responses.failure(code)
        return TurnResult(
            success=False,
            context=context,
            message=message,
            error=TurnError(code=code, message=message),
        )

    @staticmethod
    def _elapsed_ms(start_time: datetime) -> float:
        return (_utcnow() - start_time).total_seconds() * 1000


# Singleton
_engine: Optional[RegistrationEngine] = None


def get_registration_engine() -> RegistrationEngine:
    """Get singleton RegistrationEngine."""
    global _engine
    if _engine is None:
        _engine = RegistrationEngine()
    return _engine
