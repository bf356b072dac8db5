"""User Targeting Routes — a user's activity feed and proposal portfolio.

Invariants:
    - A caller may only read their own activity and portfolio (403 otherwise)
    - Activity is newest-first with total / hasMore
"""

import logging

from fastapi import APIRouter, Depends, Query, Request

from swap_targeting.api.dependencies import get_history_log, get_views
from swap_targeting.api.rate_limit import rate_limit
from swap_targeting.api.request_context import envelope
from swap_targeting.config import get_settings
from swap_targeting.core.errors import ErrorContext, ForbiddenError
from swap_targeting.schemas.targeting import HistoryEntryOut, Page
from swap_targeting.services.history_log import HistoryLog
from swap_targeting.services.targeting_views import TargetingViews

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/users", tags=["targeting"])


def _require_self(user_id: str, caller_id: str) -> None:
    if user_id != caller_id:
        raise ForbiddenError(ErrorContext(user_id=caller_id))


@router.get("/{user_id}/targeting-activity")
async def get_targeting_activity(
    user_id: str,
    request: Request,
    limit: int = Query(20, ge=1),
    offset: int = Query(0, ge=0),
    caller_id: str = Depends(rate_limit("reads")),
    history: HistoryLog = Depends(get_history_log),
):
    """History entries the user acted on or that touch the user's swaps."""
    _require_self(user_id, caller_id)
    limit = min(limit, get_settings().max_page_size)
    entries, total = await history.for_user(user_id, limit, offset)
    page = Page[HistoryEntryOut].build(
        [HistoryEntryOut.model_validate(e) for e in entries], total, limit, offset,
    )
    return envelope(request, page.model_dump(mode="json", by_alias=True))


@router.get("/{user_id}/targeting")
async def get_targeting_portfolio(
    user_id: str,
    request: Request,
    caller_id: str = Depends(rate_limit("reads")),
    views: TargetingViews = Depends(get_views),
):
    """Incoming and outgoing active edges across every swap the user owns."""
    _require_self(user_id, caller_id)
    portfolio = await views.user_portfolio(user_id)
    return envelope(request, portfolio.model_dump(mode="json", by_alias=True))
