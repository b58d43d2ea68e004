"""
Conversation API Endpoints.

One registration conversation per parent: start it, send messages, and
drive the explicit selection / confirmation / completion / go-back events.
Turn failures (extractor down or slow, internal faults) are reported in the
body with HTTP 200 so the client can fall back to the registration form.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.core.registration.context import ConversationContext
from app.core.registration.engine import RegistrationEngine, get_registration_engine
from app.core.registration.state import get_progress

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["Conversations"])


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StartConversationRequest(CamelModel):
    """Start a registration conversation."""

    organization_id: str = Field(
        ...,
        description="Organization (club) the parent is registering with",
        examples=["6f1d2c8e-1b7a-4a52-9a55-2f4b1d9c0e11"],
    )
    family_id: Optional[str] = Field(
        default=None,
        description="Known family identifier, if the parent is signed in",
    )


class TurnRequest(CamelModel):
    """One parent message."""

    message: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        description="Parent's message",
        examples=["My daughter Emma is 5 and we'd love weekend mornings"],
    )
    conversation_id: Optional[str] = Field(
        default=None,
        description="Must match the path id when given",
    )
    context: Optional[dict[str, Any]] = Field(
        default=None,
        description="Client copy of the context; only the parent-supplied facts are used",
    )


class SelectionRequest(CamelModel):
    """Pick a session from the recommendations or alternatives."""

    session_id: str = Field(..., description="Session to register for")
    context: Optional[dict[str, Any]] = None


class EventRequest(CamelModel):
    """Body for confirmation, completion and go-back events."""

    context: Optional[dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Error response."""

    error: str
    detail: Optional[Any] = None


def get_engine() -> RegistrationEngine:
    """Dependency returning the registration engine (overridable in tests)."""
    return get_registration_engine()


def _resolve_context(
    conversation_id: str,
    data: Optional[dict[str, Any]],
) -> Optional[ConversationContext]:
    """Parse a client-sent context. The engine checks it against the stored one."""
    if not data:
        return None
    try:
        context = ConversationContext.from_dict(data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if context.conversation_id != conversation_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Context belongs to a different conversation",
        )
    return context


@router.post(
    "",
    response_model=dict,
    status_code=status.HTTP_201_CREATED,
    summary="Start a conversation",
    responses={400: {"model": ErrorResponse, "description": "Invalid organization id"}},
)
async def start_conversation(
    request: StartConversationRequest,
    engine: RegistrationEngine = Depends(get_engine),
) -> dict:
    try:
        result = await engine.start_conversation(
            organization_id=request.organization_id,
            family_id=request.family_id,
        )
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="organizationId must be a UUID",
        )
    return result.to_dict()


@router.get(
    "/{conversation_id}",
    response_model=dict,
    summary="Get conversation state",
    responses={404: {"model": ErrorResponse, "description": "Conversation not found"}},
)
async def get_conversation(
    conversation_id: str,
    engine: RegistrationEngine = Depends(get_engine),
) -> dict:
    context = await engine.get_context(conversation_id)
    return {
        "conversationId": context.conversation_id,
        "state": context.current_state.value,
        "progress": get_progress(context.current_state),
        "context": context.to_dict(),
        "messages": await engine.get_messages(conversation_id),
    }


@router.post(
    "/{conversation_id}/messages",
    response_model=dict,
    status_code=status.HTTP_200_OK,
    summary="Send a message",
    description="Process one parent message and return the reply, next state and any sessions.",
    responses={
        400: {"model": ErrorResponse, "description": "Mismatched or malformed context"},
        404: {"model": ErrorResponse, "description": "Conversation not found"},
        409: {"model": ErrorResponse, "description": "Context does not match the stored conversation"},
    },
)
async def send_message(
    conversation_id: str,
    request: TurnRequest,
    engine: RegistrationEngine = Depends(get_engine),
) -> dict:
    if request.conversation_id and request.conversation_id != conversation_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="conversationId does not match the URL",
        )

    context = _resolve_context(conversation_id, request.context)
    result = await engine.process_turn(conversation_id, request.message, context=context)
    if not result.success:
        logger.warning(
            f"Turn failed for {conversation_id} with {result.error.code if result.error else 'unknown'}"
        )
    return result.to_dict()


@router.post(
    "/{conversation_id}/selection",
    response_model=dict,
    summary="Select a session",
    responses={
        404: {"model": ErrorResponse, "description": "Conversation not found"},
        409: {"model": ErrorResponse, "description": "Not showing recommendations"},
        422: {"model": ErrorResponse, "description": "Session cannot be selected"},
    },
)
async def select_session(
    conversation_id: str,
    request: SelectionRequest,
    engine: RegistrationEngine = Depends(get_engine),
) -> dict:
    context = _resolve_context(conversation_id, request.context)
    result = await engine.select_session(conversation_id, request.session_id, context=context)
    return result.to_dict()


@router.post(
    "/{conversation_id}/confirmation",
    response_model=dict,
    summary="Confirm the selected session",
    responses={409: {"model": ErrorResponse, "description": "Nothing to confirm"}},
)
async def confirm_selection(
    conversation_id: str,
    request: Optional[EventRequest] = None,
    engine: RegistrationEngine = Depends(get_engine),
) -> dict:
    context = _resolve_context(conversation_id, request.context if request else None)
    result = await engine.confirm_selection(conversation_id, context=context)
    return result.to_dict()


@router.post(
    "/{conversation_id}/completion",
    response_model=dict,
    summary="Mark payment complete",
    responses={409: {"model": ErrorResponse, "description": "Not collecting payment"}},
)
async def complete_registration(
    conversation_id: str,
    request: Optional[EventRequest] = None,
    engine: RegistrationEngine = Depends(get_engine),
) -> dict:
    context = _resolve_context(conversation_id, request.context if request else None)
    result = await engine.complete_registration(conversation_id, context=context)
    return result.to_dict()


@router.post(
    "/{conversation_id}/back",
    response_model=dict,
    summary="Go back one step",
    responses={409: {"model": ErrorResponse, "description": "Nothing to go back to"}},
)
async def go_back(
    conversation_id: str,
    request: Optional[EventRequest] = None,
    engine: RegistrationEngine = Depends(get_engine),
) -> dict:
    context = _resolve_context(conversation_id, request.context if request else None)
    result = await engine.go_back(conversation_id, context=context)
    return result.to_dict()
