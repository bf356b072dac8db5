"""Target Resolution Routes — the target owner accepts or rejects a proposal.

Invariants:
    - Only the owner of the edge's target swap may resolve it (403 otherwise)
    - Resolving an edge that is no longer active is EDGE_NOT_ACTIVE (409)
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Request

from swap_targeting.api.dependencies import get_coordinator
from swap_targeting.api.rate_limit import rate_limit
from swap_targeting.api.request_context import envelope
from swap_targeting.schemas.targeting import EdgeOut, ResolutionResult
from swap_targeting.services.proposal_coordinator import (
    ProposalLifecycleCoordinator, ResolutionOutcome,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/targets", tags=["targeting"])


def _result(outcome: ResolutionOutcome) -> dict:
    return ResolutionResult(
        edge=EdgeOut.model_validate(outcome.edge),
        rejected_edge_ids=outcome.rejected_edge_ids,
        cancelled_edge_ids=outcome.cancelled_edge_ids,
    ).model_dump(mode="json", by_alias=True)


@router.post("/{edge_id}/accept")
async def accept_target(
    edge_id: UUID,
    request: Request,
    user_id: str = Depends(rate_limit("resolution")),
    coordinator: ProposalLifecycleCoordinator = Depends(get_coordinator),
):
    """Accept a proposal; competing proposals to the same swap are rejected."""
    return envelope(request, _result(await coordinator.accept(edge_id, user_id)))


@router.post("/{edge_id}/reject")
async def reject_target(
    edge_id: UUID,
    request: Request,
    user_id: str = Depends(rate_limit("resolution")),
    coordinator: ProposalLifecycleCoordinator = Depends(get_coordinator),
):
    """Reject a proposal; the target swap becomes open to new proposals."""
    return envelope(request, _result(await coordinator.reject(edge_id, user_id)))
