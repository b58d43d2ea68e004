"""
Conversation persistence.

One row per conversation: ``state`` and ``context`` are overwritten at the
end of each turn and the transcript grows in ``messages``. Turns for one
conversation are serialized by the caller; the last write wins.
"""

import logging
import uuid
from typing import AsyncContextManager, Callable, Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.registration.context import ConversationContext
from app.core.registration.errors import ConversationNotFoundError
from app.core.registration.state import ConversationState
from app.infra.database import get_db_context
from app.models.database import Conversation

logger = logging.getLogger(__name__)


SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]

# Transcript entries kept per conversation
MAX_MESSAGES = 100


def _parse_id(conversation_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(conversation_id))
    except ValueError as e:
        raise ConversationNotFoundError(conversation_id) from e


class ConversationStore:
    """Reads and writes conversations through async SQLAlchemy."""

    def __init__(self, session_factory: Optional[SessionFactory] = None):
        self._session_factory = session_factory or get_db_context

    async def create(
        self,
        organization_id: str,
        family_id: Optional[str] = None,
        channel: str = "web",
    ) -> ConversationContext:
        """Start a conversation in the greeting state.

        Raises:
            ValueError: If organization_id is not a UUID
        """
        org_uuid = uuid.UUID(str(organization_id))
        conversation_id = uuid.uuid4()
        context = ConversationContext(
            conversation_id=str(conversation_id),
            organization_id=str(org_uuid),
            family_id=family_id,
        )

        async with self._session_factory() as db:
            db.add(Conversation(
                id=conversation_id,
                organization_id=org_uuid,
                family_id=family_id,
                channel=channel,
                state=context.current_state.value,
                context=context.to_dict(),
                messages=[],
            ))

        logger.info(f"Created conversation {conversation_id} for organization {org_uuid}")
        return context

    async def get(self, conversation_id: str) -> ConversationContext:
        """Load a conversation's context.

        Raises:
            ConversationNotFoundError: If the conversation does not exist
        """
        async with self._session_factory() as db:
            conversation = await db.get(Conversation, _parse_id(conversation_id))
            if conversation is None:
                raise ConversationNotFoundError(conversation_id)

            data = dict(conversation.context or {})
            data.setdefault("conversationId", str(conversation.id))
            data.setdefault("organizationId", str(conversation.organization_id))
            # The state column is authoritative
            data["currentState"] = conversation.state or ConversationState.GREETING.value
            return ConversationContext.from_dict(data)

    async def get_messages(self, conversation_id: str) -> list[dict]:
        async with self._session_factory() as db:
            conversation = await db.get(Conversation, _parse_id(conversation_id))
            if conversation is None:
                raise ConversationNotFoundError(conversation_id)
            return list(conversation.messages or [])

    async def save(
        self,
        context: ConversationContext,
        messages: Optional[list[dict]] = None,
    ) -> None:
        """Write state and context, appending transcript entries.

        Raises:
            ConversationNotFoundError: If the conversation does not exist
        """
        async with self._session_factory() as db:
            conversation = await db.get(Conversation, _parse_id(context.conversation_id))
            if conversation is None:
                raise ConversationNotFoundError(context.conversation_id)

            conversation.state = context.current_state.value
            conversation.context = context.to_dict()
            if messages:
                history = [*(conversation.messages or []), *messages]
                conversation.messages = history[-MAX_MESSAGES:]
            conversation.updated_at = func.now()

        logger.debug(
            f"Saved conversation {context.conversation_id} in state {context.current_state.value}"
        )


# Singleton
_store: Optional[ConversationStore] = None


def get_conversation_store() -> ConversationStore:
    """Get singleton ConversationStore."""
    global _store
    if _store is None:
        _store = ConversationStore()
    return _store
