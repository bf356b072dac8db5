"""History Log — append-only audit trail of targeting transitions and its queries.

Invariants:
    - append() only inserts; there is no update or delete path in this module
    - append() never commits: entries land in the same transaction as the transition
    - Queries are newest-first with a stable tie-break on id
    - for_user() covers entries where the user acted or owns either swap

Design Decisions:
    - created_at stamped in Python at append time: entries are handed to the
      notification hooks before any refresh from the DB
    - Pagination returns (entries, total): the route layer derives hasMore
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from swap_targeting.core.domain_types import HistoryAction
from swap_targeting.models.swap import Swap
from swap_targeting.models.targeting_edge import TargetingEdge
from swap_targeting.models.targeting_history import TargetingHistoryEntry

logger = logging.getLogger(__name__)


class HistoryLog:
    """Append and query targeting_history within one AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def append(
        self,
        edge: TargetingEdge,
        action: HistoryAction,
        actor_id: str | None,
        details: dict | None = None,
    ) -> TargetingHistoryEntry:
        entry = TargetingHistoryEntry(
            edge_id=edge.id,
            source_swap_id=edge.source_swap_id,
            target_swap_id=edge.target_swap_id,
            action=action.value,
            actor_id=actor_id,
            details=details or {},
            created_at=datetime.now(timezone.utc),
        )
        self.db.add(entry)
        return entry

    async def for_swap(
        self, swap_id: UUID, limit: int = 20, offset: int = 0,
    ) -> tuple[list[TargetingHistoryEntry], int]:
        """Entries where the swap is the source or the target."""
        condition = or_(
            TargetingHistoryEntry.source_swap_id == swap_id,
            TargetingHistoryEntry.target_swap_id == swap_id,
        )
        return await self._page(
            select(TargetingHistoryEntry).where(condition),
            select(func.count()).select_from(TargetingHistoryEntry).where(condition),
            limit, offset,
        )

    async def for_edge(self, edge_id: UUID) -> list[TargetingHistoryEntry]:
        result = await self.db.execute(
            select(TargetingHistoryEntry)
            .where(TargetingHistoryEntry.edge_id == edge_id)
            .order_by(TargetingHistoryEntry.created_at, TargetingHistoryEntry.id),
        )
        return list(result.scalars().all())

    async def for_user(
        self, user_id: str, limit: int = 20, offset: int = 0,
    ) -> tuple[list[TargetingHistoryEntry], int]:
        """Entries the user acted on, or that touch a swap the user owns."""
        source_swap = aliased(Swap)
        target_swap = aliased(Swap)
        condition = or_(
            TargetingHistoryEntry.actor_id == user_id,
            source_swap.owner_id == user_id,
            target_swap.owner_id == user_id,
        )

        def _joined(query):
            return (
                query
                .outerjoin(
                    source_swap,
                    source_swap.id == TargetingHistoryEntry.source_swap_id,
                )
                .outerjoin(
                    target_swap,
                    target_swap.id == TargetingHistoryEntry.target_swap_id,
                )
                .where(condition)
            )

        return await self._page(
            _joined(select(TargetingHistoryEntry)),
            _joined(select(func.count()).select_from(TargetingHistoryEntry)),
            limit, offset,
        )

    async def _page(
        self, query, count_query, limit: int, offset: int,
    ) -> tuple[list[TargetingHistoryEntry], int]:
        total = (await self.db.execute(count_query)).scalar_one()
        result = await self.db.execute(
            query.order_by(
                TargetingHistoryEntry.created_at.desc(),
                TargetingHistoryEntry.id.desc(),
            )
            .limit(limit)
            .offset(offset),
        )
        return list(result.scalars().all()), total
