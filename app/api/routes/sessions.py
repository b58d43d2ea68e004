"""
Session Inventory Endpoints.

Read-only view of an organization's upcoming sessions with enrollment,
availability and review aggregates. Used by staff to check test data and
by the client to render session details.
"""

import logging

from fastapi import APIRouter, Depends, Query

from app.core.matching.inventory import SessionInventory, get_session_inventory
from app.core.matching.types import RecommendationResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/organizations", tags=["Sessions"])


def get_inventory() -> SessionInventory:
    """Dependency returning the session inventory (overridable in tests)."""
    return get_session_inventory()


@router.get(
    "/{organization_id}/sessions",
    response_model=dict,
    summary="List upcoming sessions",
    description="All sessions starting today or later, including full and cancelled ones.",
)
async def list_sessions(
    organization_id: str,
    available_only: bool = Query(False, alias="availableOnly"),
    inventory: SessionInventory = Depends(get_inventory),
) -> dict:
    records = await inventory.list_candidate_sessions(organization_id)
    if available_only:
        records = [r for r in records if r.is_available]

    sessions = []
    for record in records:
        item = RecommendationResult.from_session(record).to_dict()
        item["status"] = record.status.value
        item["isAvailable"] = record.is_available
        sessions.append(item)

    return {
        "organizationId": organization_id,
        "total": len(sessions),
        "full": sum(1 for r in records if r.is_full),
        "sessions": sessions,
    }
