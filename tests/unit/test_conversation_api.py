"""Tests for the HTTP API (conversations, sessions, health)."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from app.api.routes import health
from app.api.routes.conversations import get_engine
from app.api.routes.sessions import get_inventory
from app.core.extraction.types import ExtractedFacts, ExtractionResult
from app.core.matching.alternatives import AlternativeFinder
from app.core.matching.filter import AvailabilityFilter
from app.core.registration.context import ConversationContext
from app.core.registration.engine import RegistrationEngine, TurnError, TurnResult
from app.core.registration.errors import (
    ContextMismatchError,
    ConversationNotFoundError,
    InvalidSelectionError,
    InvalidTransitionError,
)
from app.core.registration.flow import ConversationFlow
from app.core.registration.response import ResponseBuilder
from app.core.registration.schedule import TimeOfDay
from app.core.registration.state import ConversationState
from app.core.matching.types import SessionStatus
from app.main import app

ORG_ID = "6f1d2c8e-1b7a-4a52-9a55-2f4b1d9c0e11"
CONV_ID = "0b3a6f2e-9c41-4d0e-8a7b-5f6e2d1c3b4a"


@pytest.fixture
def context():
    return ConversationContext(conversation_id=CONV_ID, organization_id=ORG_ID)


@pytest.fixture
def mock_engine(context):
    engine = MagicMock()
    engine.start_conversation = AsyncMock(
        return_value=TurnResult(success=True, context=context, message="Hi there!")
    )
    engine.process_turn = AsyncMock(
        return_value=TurnResult(success=True, context=context, message="Nice to meet you!")
    )
    engine.get_context = AsyncMock(return_value=context)
    engine.get_messages = AsyncMock(return_value=[{"role": "assistant", "content": "Hi there!"}])
    engine.select_session = AsyncMock()
    engine.confirm_selection = AsyncMock()
    engine.complete_registration = AsyncMock()
    engine.go_back = AsyncMock()
    return engine


@pytest.fixture
def mock_inventory():
    inventory = MagicMock()
    inventory.list_candidate_sessions = AsyncMock(return_value=[])
    return inventory


@pytest.fixture
def client(mock_engine, mock_inventory):
    app.dependency_overrides[get_engine] = lambda: mock_engine
    app.dependency_overrides[get_inventory] = lambda: mock_inventory
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestConversationEndpoints:
    """Test /conversations."""

    def test_start_conversation(self, client, mock_engine):
        response = client.post("/conversations", json={"organizationId": ORG_ID})

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["response"]["message"] == "Hi there!"
        assert body["response"]["nextState"] == "greeting"
        mock_engine.start_conversation.assert_awaited_once_with(
            organization_id=ORG_ID, family_id=None
        )

    def test_start_with_bad_organization(self, client, mock_engine):
        mock_engine.start_conversation.side_effect = ValueError("badly formed hexadecimal UUID string")
        response = client.post("/conversations", json={"organizationId": "acme"})
        assert response.status_code == 400

    def test_send_message(self, client, mock_engine):
        response = client.post(
            f"/conversations/{CONV_ID}/messages",
            json={"message": "Her name is Emma", "conversationId": CONV_ID},
        )

        assert response.status_code == 200
        assert response.json()["response"]["message"] == "Nice to meet you!"
        args = mock_engine.process_turn.await_args
        assert args.args == (CONV_ID, "Her name is Emma")
        assert args.kwargs["context"] is None

    def test_send_message_with_client_context(self, client, mock_engine, context):
        client.post(
            f"/conversations/{CONV_ID}/messages",
            json={"message": "hi", "context": context.to_dict()},
        )
        assert mock_engine.process_turn.await_args.kwargs["context"] == context

    def test_turn_failure_is_200_with_error(self, client, mock_engine, context):
        failed = ConversationContext(
            conversation_id=CONV_ID,
            organization_id=ORG_ID,
            current_state=ConversationState.ERROR,
        )
        mock_engine.process_turn.return_value = TurnResult(
            success=False,
            context=failed,
            error=TurnError(code="AI_TIMEOUT", message="Sorry"),
        )

        response = client.post(f"/conversations/{CONV_ID}/messages", json={"message": "hi"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "AI_TIMEOUT"
        assert body["error"]["fallbackToForm"] is True
        assert body["context"]["currentState"] == "error"

    def test_mismatched_conversation_id(self, client, mock_engine):
        response = client.post(
            f"/conversations/{CONV_ID}/messages",
            json={"message": "hi", "conversationId": "someone-else"},
        )
        assert response.status_code == 400
        mock_engine.process_turn.assert_not_awaited()

    def test_context_for_other_conversation(self, client):
        other = ConversationContext(conversation_id="other", organization_id=ORG_ID)
        response = client.post(
            f"/conversations/{CONV_ID}/messages",
            json={"message": "hi", "context": other.to_dict()},
        )
        assert response.status_code == 400

    def test_malformed_context(self, client):
        response = client.post(
            f"/conversations/{CONV_ID}/messages",
            json={"message": "hi", "context": {"conversationId": CONV_ID}},
        )
        assert response.status_code == 400

    def test_out_of_range_client_age(self, client, mock_engine, context):
        data = {**context.to_dict(), "childAge": 40}
        response = client.post(
            f"/conversations/{CONV_ID}/messages",
            json={"message": "hi", "context": data},
        )
        assert response.status_code == 400
        mock_engine.process_turn.assert_not_awaited()

    def test_context_mismatch_is_409(self, client, mock_engine):
        mock_engine.process_turn.side_effect = ContextMismatchError(CONV_ID, "organizationId")
        response = client.post(f"/conversations/{CONV_ID}/messages", json={"message": "hi"})

        assert response.status_code == 409
        assert response.json()["detail"]["field"] == "organizationId"

    def test_failure_without_context(self, client, mock_engine):
        mock_engine.process_turn.return_value = TurnResult(
            success=False,
            context=None,
            error=TurnError(code="INTERNAL_ERROR", message="Something went wrong"),
        )

        response = client.post(f"/conversations/{CONV_ID}/messages", json={"message": "hi"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["context"] is None
        assert body["error"]["fallbackToForm"] is True

    def test_empty_message_rejected(self, client):
        response = client.post(f"/conversations/{CONV_ID}/messages", json={"message": ""})
        assert response.status_code == 422

    def test_unknown_conversation(self, client, mock_engine):
        mock_engine.process_turn.side_effect = ConversationNotFoundError(CONV_ID)
        response = client.post(f"/conversations/{CONV_ID}/messages", json={"message": "hi"})
        assert response.status_code == 404

    def test_get_conversation(self, client):
        response = client.get(f"/conversations/{CONV_ID}")

        assert response.status_code == 200
        body = response.json()
        assert body["state"] == "greeting"
        assert body["progress"] == 0
        assert body["messages"][0]["content"] == "Hi there!"

    def test_invalid_selection_is_422(self, client, mock_engine):
        mock_engine.select_session.side_effect = InvalidSelectionError(
            "s-1", "session is full", issue="full"
        )
        response = client.post(
            f"/conversations/{CONV_ID}/selection", json={"sessionId": "s-1"}
        )

        assert response.status_code == 422
        assert response.json()["detail"]["issue"] == "full"

    def test_invalid_transition_is_409(self, client, mock_engine):
        mock_engine.complete_registration.side_effect = InvalidTransitionError(
            "showing_recommendations", "complete registration"
        )
        response = client.post(f"/conversations/{CONV_ID}/completion")

        assert response.status_code == 409
        assert response.json()["detail"]["state"] == "showing_recommendations"

    def test_go_back(self, client, mock_engine, context):
        mock_engine.go_back.return_value = TurnResult(
            success=True, context=context, message="Sure!"
        )
        response = client.post(f"/conversations/{CONV_ID}/back", json={})
        assert response.status_code == 200
        assert response.json()["response"]["message"] == "Sure!"


class TestClientContextEnforcement:
    """Client-sent contexts against a real engine with mocked storage."""

    @pytest.fixture
    def stored(self):
        return ConversationContext(
            conversation_id=CONV_ID,
            organization_id=ORG_ID,
            current_state=ConversationState.COLLECTING_PREFERENCES,
            child_name="Emma",
            child_age=5,
        )

    @pytest.fixture
    def store(self, stored):
        store = MagicMock()
        store.get = AsyncMock(return_value=stored)
        store.save = AsyncMock()
        return store

    @pytest.fixture
    def inventory(self, make_session):
        inventory = MagicMock()
        inventory.list_candidate_sessions = AsyncMock(return_value=[make_session("sat-morning")])
        return inventory

    @pytest.fixture
    def engine_client(self, store, inventory):
        extractor = MagicMock()
        extractor.extract = AsyncMock(return_value=ExtractionResult(
            message="",
            facts=ExtractedFacts(preferred_time_of_day=TimeOfDay.MORNING),
        ))
        engine = RegistrationEngine(
            extractor=extractor,
            inventory=inventory,
            store=store,
            availability_filter=AvailabilityFilter(),
            alternative_finder=AlternativeFinder(),
            flow_manager=ConversationFlow(),
            responses=ResponseBuilder(),
            extraction_timeout=1.0,
        )
        app.dependency_overrides[get_engine] = lambda: engine
        yield TestClient(app)
        app.dependency_overrides.clear()

    def test_foreign_organization_is_409(self, engine_client, stored, store, inventory):
        forged = {**stored.to_dict(), "organizationId": "11111111-2222-3333-4444-555555555555"}

        response = engine_client.post(
            f"/conversations/{CONV_ID}/messages",
            json={"message": "mornings", "context": forged},
        )

        assert response.status_code == 409
        assert response.json()["detail"]["field"] == "organizationId"
        inventory.list_candidate_sessions.assert_not_awaited()
        store.save.assert_not_awaited()

    def test_forged_payment_state_is_409(self, engine_client, stored, store):
        forged = {
            **stored.to_dict(),
            "currentState": "collecting_payment",
            "selectedSession": {"sessionId": "sat-morning", "dayOfWeek": 6, "startTime": "09:00"},
        }

        response = engine_client.post(
            f"/conversations/{CONV_ID}/completion",
            json={"context": forged},
        )

        assert response.status_code == 409
        assert response.json()["detail"]["field"] == "currentState"
        store.save.assert_not_awaited()

    def test_matching_context_is_accepted(self, engine_client, stored, inventory):
        response = engine_client.post(
            f"/conversations/{CONV_ID}/messages",
            json={"message": "mornings", "context": stored.to_dict()},
        )

        assert response.status_code == 200
        assert response.json()["response"]["nextState"] == "showing_recommendations"
        inventory.list_candidate_sessions.assert_awaited_once_with(ORG_ID)

    def test_store_failure_is_reported_in_body(self, engine_client, store):
        store.get.side_effect = ConnectionRefusedError("db down")

        response = engine_client.post(f"/conversations/{CONV_ID}/messages", json={"message": "hi"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "INTERNAL_ERROR"
        assert body["error"]["fallbackToForm"] is True


class TestSessionEndpoints:
    """Test /organizations/{id}/sessions."""

    def test_lists_sessions(self, client, mock_inventory, make_session):
        mock_inventory.list_candidate_sessions.return_value = [
            make_session("open"),
            make_session("full", enrolled_count=10, status=SessionStatus.FULL),
        ]

        body = client.get(f"/organizations/{ORG_ID}/sessions").json()

        assert body["total"] == 2
        assert body["full"] == 1
        assert body["sessions"][0]["isAvailable"] is True
        assert body["sessions"][1]["status"] == "full"

    def test_available_only(self, client, mock_inventory, make_session):
        mock_inventory.list_candidate_sessions.return_value = [
            make_session("open"),
            make_session("full", enrolled_count=10),
        ]

        body = client.get(f"/organizations/{ORG_ID}/sessions?availableOnly=true").json()

        assert [s["sessionId"] for s in body["sessions"]] == ["open"]


class TestHealthEndpoints:
    """Test /health probes."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ready_degraded_without_redis(self, client, monkeypatch):
        monkeypatch.setattr(health, "check_db_health", AsyncMock(return_value=True))
        monkeypatch.setattr(health, "check_redis_health", AsyncMock(return_value=False))

        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["checks"]["redis"] == "failed"

    def test_not_ready_without_database(self, client, monkeypatch):
        monkeypatch.setattr(health, "check_db_health", AsyncMock(side_effect=OSError("refused")))
        monkeypatch.setattr(health, "check_redis_health", AsyncMock(return_value=True))

        response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["checks"]["database"] == "error"
