"""Swap Targeting Routes — target, retarget, remove and per-swap reads.

Invariants:
    - Every route requires the caller's identity (X-User-Id) and a rate-limit slot
    - Mutations delegate to ProposalLifecycleCoordinator; routes never touch edges
    - Eligibility warnings travel in metadata.warnings, never in data
    - Page size clamped to settings.max_page_size

Design Decisions:
    - DELETE carries a JSON body ({sourceSwapId}): the path names the target,
      the body names which of the caller's swaps withdraws
    - get_swap_or_404 shared by read routes that do not go through a service
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from swap_targeting.api.dependencies import get_coordinator, get_history_log, get_views
from swap_targeting.api.rate_limit import rate_limit
from swap_targeting.api.request_context import envelope
from swap_targeting.config import get_settings
from swap_targeting.core.errors import ResourceNotFoundError, user_message
from swap_targeting.infrastructure.database import get_db
from swap_targeting.models.swap import Swap
from swap_targeting.schemas.targeting import (
    CanTargetOut, EdgeOut, HistoryEntryOut, Page, RemoveTargetRequest,
    RemoveTargetResult, RetargetRequest, TargetingEdgeView, TargetingResult,
    TargetRequest,
)
from swap_targeting.services.history_log import HistoryLog
from swap_targeting.services.proposal_coordinator import ProposalLifecycleCoordinator
from swap_targeting.services.targeting_views import TargetingViews

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/swaps", tags=["targeting"])


async def get_swap_or_404(swap_id: UUID, db: AsyncSession) -> Swap:
    swap = await db.get(Swap, swap_id)
    if swap is None:
        raise ResourceNotFoundError("Swap", str(swap_id))
    return swap


def _dump(model) -> dict:
    return model.model_dump(mode="json", by_alias=True)


def _page_size(limit: int) -> int:
    return min(limit, get_settings().max_page_size)


# --- Mutations ----------------------------------------------------------------

@router.post("/{target_id}/target", status_code=status.HTTP_201_CREATED)
async def target_swap(
    target_id: UUID,
    body: TargetRequest,
    request: Request,
    user_id: str = Depends(rate_limit("targeting")),
    coordinator: ProposalLifecycleCoordinator = Depends(get_coordinator),
):
    """Propose an exchange: the caller's source swap targets target_id."""
    outcome = await coordinator.target(
        body.source_swap_id, target_id, user_id, body.message, body.conditions,
    )
    result = TargetingResult(edge=EdgeOut.model_validate(outcome.edge))
    return envelope(request, _dump(result), outcome.warnings)


@router.put("/{target_id}/retarget")
async def retarget_swap(
    target_id: UUID,
    body: RetargetRequest,
    request: Request,
    user_id: str = Depends(rate_limit("retargeting")),
    coordinator: ProposalLifecycleCoordinator = Depends(get_coordinator),
):
    """Move the caller's source swap from its current target to target_id."""
    outcome = await coordinator.retarget(
        body.source_swap_id, target_id, user_id, body.message, body.conditions,
    )
    result = TargetingResult(
        edge=EdgeOut.model_validate(outcome.edge),
        replaced_edge_id=outcome.replaced_edge.id if outcome.replaced_edge else None,
    )
    return envelope(request, _dump(result), outcome.warnings)


@router.delete("/{target_id}/target")
async def remove_target(
    target_id: UUID,
    body: RemoveTargetRequest,
    request: Request,
    user_id: str = Depends(rate_limit("removal")),
    coordinator: ProposalLifecycleCoordinator = Depends(get_coordinator),
):
    """Withdraw the source swap's active proposal. Idempotent."""
    edge = await coordinator.remove_target(body.source_swap_id, user_id)
    warnings = []
    if edge is not None and edge.target_swap_id != target_id:
        warnings.append("The withdrawn proposal targeted a different swap")
    result = RemoveTargetResult(
        removed=edge is not None,
        edge=EdgeOut.model_validate(edge) if edge is not None else None,
    )
    return envelope(request, _dump(result), warnings)


# --- Reads --------------------------------------------------------------------

@router.get("/{swap_id}/targeting-status")
async def get_targeting_status(
    swap_id: UUID,
    request: Request,
    user_id: str = Depends(rate_limit("reads")),
    views: TargetingViews = Depends(get_views),
):
    """Incoming and outgoing active edges plus auction state."""
    return envelope(request, _dump(await views.swap_view(swap_id)))


@router.get("/{swap_id}/can-target")
async def can_target(
    swap_id: UUID,
    request: Request,
    source_swap_id: UUID | None = Query(None, alias="sourceSwapId"),
    user_id: str = Depends(rate_limit("reads")),
    coordinator: ProposalLifecycleCoordinator = Depends(get_coordinator),
):
    """Would proposing to swap_id succeed right now? Never writes."""
    result = await coordinator.check_eligibility(swap_id, user_id, source_swap_id)
    decision = result.decision
    out = CanTargetOut(
        can_target=decision.allowed,
        source_swap_id=result.source_swap_id,
        reason=decision.reason.value if decision.reason else None,
        message=user_message(decision.reason) if decision.reason else None,
    )
    return envelope(request, _dump(out), decision.warnings)


@router.get("/{swap_id}/targeting-history")
async def get_targeting_history(
    swap_id: UUID,
    request: Request,
    limit: int = Query(20, ge=1),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(rate_limit("reads")),
    history: HistoryLog = Depends(get_history_log),
    db: AsyncSession = Depends(get_db),
):
    """History entries where the swap is source or target, newest first."""
    await get_swap_or_404(swap_id, db)
    limit = _page_size(limit)
    entries, total = await history.for_swap(swap_id, limit, offset)
    page = Page[HistoryEntryOut].build(
        [HistoryEntryOut.model_validate(e) for e in entries], total, limit, offset,
    )
    return envelope(request, _dump(page))


@router.get("/{swap_id}/targeted-by")
async def get_targeted_by(
    swap_id: UUID,
    request: Request,
    limit: int = Query(20, ge=1),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(rate_limit("reads")),
    views: TargetingViews = Depends(get_views),
):
    """Active edges into the swap, oldest first."""
    limit = _page_size(limit)
    items, total = await views.targeted_by(swap_id, limit, offset)
    page = Page[TargetingEdgeView].build(items, total, limit, offset)
    return envelope(request, _dump(page))
