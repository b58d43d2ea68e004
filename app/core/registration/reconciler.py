"""
Extraction reconciler.

Merges the facts extracted from one message into the conversation
context. Non-empty values override, missing or empty values never erase,
and an out-of-range age rejects the whole extraction for that turn.
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional

from app.core.extraction.types import ExtractedFacts
from app.core.registration.context import ConversationContext

logger = logging.getLogger(__name__)

MIN_CHILD_AGE = 2
MAX_CHILD_AGE = 18

AGE_OUT_OF_RANGE = "age_out_of_range"


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of merging one extraction."""

    context: ConversationContext
    rejection_reason: Optional[str] = None
    applied_fields: tuple[str, ...] = ()

    @property
    def rejected(self) -> bool:
        return self.rejection_reason is not None

    @property
    def changed(self) -> bool:
        return bool(self.applied_fields)


def reconcile(
    context: ConversationContext,
    extracted: ExtractedFacts,
    min_age: int = MIN_CHILD_AGE,
    max_age: int = MAX_CHILD_AGE,
) -> ReconcileResult:
    """Merge extracted facts into the context.

    Args:
        context: Current conversation context
        extracted: Facts from the latest message
        min_age: Youngest accepted age (inclusive)
        max_age: Oldest accepted age (inclusive)

    Returns:
        ReconcileResult with the updated context, or the unchanged context
        and a rejection reason
    """
    if extracted.child_age is not None and not min_age <= extracted.child_age <= max_age:
        logger.info(
            f"Rejected extraction for {context.conversation_id}: "
            f"age {extracted.child_age} outside [{min_age}, {max_age}]"
        )
        return ReconcileResult(context=context, rejection_reason=AGE_OUT_OF_RANGE)

    updates: dict = {}

    name = (extracted.child_name or "").strip()
    if name:
        updates["child_name"] = name

    if extracted.child_age is not None:
        updates["child_age"] = extracted.child_age

    if extracted.preferred_days is not None and not extracted.preferred_days.is_empty:
        updates["preferred_days"] = extracted.preferred_days

    if extracted.preferred_time:
        updates["preferred_time"] = extracted.preferred_time

    if extracted.preferred_time_of_day is not None:
        updates["preferred_time_of_day"] = extracted.preferred_time_of_day

    program = (extracted.preferred_program or "").strip()
    if program:
        updates["preferred_program"] = program

    # Only record fields whose value actually changes
    applied = tuple(k for k, v in updates.items() if getattr(context, k) != v)
    if not applied:
        return ReconcileResult(context=context)

    return ReconcileResult(
        context=replace(context, **{k: updates[k] for k in applied}),
        applied_fields=applied,
    )
