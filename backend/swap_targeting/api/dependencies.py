"""API Dependencies — identity, database session and coordinator wiring.

Invariants:
    - User identity comes only from the header set by the upstream auth layer
    - One coordinator per request, bound to the request's AsyncSession

Design Decisions:
    - Notifier built once per process (lru_cache); the coordinator is cheap and
      per-request so its session never leaks across requests
"""

from functools import lru_cache

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from swap_targeting.config import get_settings
from swap_targeting.core.errors import UnauthenticatedError
from swap_targeting.infrastructure.database import get_db
from swap_targeting.infrastructure.notifications import LoggingNotifier
from swap_targeting.services.history_log import HistoryLog
from swap_targeting.services.proposal_coordinator import ProposalLifecycleCoordinator
from swap_targeting.services.swap_lifecycle import DatabaseSwapLifecycle
from swap_targeting.services.targeting_views import TargetingViews


async def get_current_user_id(request: Request) -> str:
    user_id = request.headers.get(get_settings().user_id_header, "").strip()
    if not user_id:
        raise UnauthenticatedError()
    return user_id


@lru_cache
def get_notifier() -> LoggingNotifier:
    return LoggingNotifier()


async def get_coordinator(
    db: AsyncSession = Depends(get_db),
) -> ProposalLifecycleCoordinator:
    return ProposalLifecycleCoordinator(
        db,
        lifecycle=DatabaseSwapLifecycle(db),
        notifiers=[get_notifier()],
        crowded_threshold=get_settings().auction_crowded_threshold,
    )


async def get_views(db: AsyncSession = Depends(get_db)) -> TargetingViews:
    return TargetingViews(db)


async def get_history_log(db: AsyncSession = Depends(get_db)) -> HistoryLog:
    return HistoryLog(db)
