"""Targeting Store — SQL access to swaps, edges and proposals for the coordinator.

Invariants:
    - Never commits: the caller owns the transaction boundary
    - Lock order is fixed: graph lock -> swap rows (sorted by id) -> edge rows
    - Locked reads use populate_existing so objects already in the identity map are
      refreshed with the row version the lock returned
    - Edge status and proposal status change together (PROPOSAL_STATUS_FOR_EDGE)

Design Decisions:
    - Global advisory lock for edge creation on PostgreSQL: acyclicity is a global
      property, two inserts on disjoint swaps can jointly close a cycle
    - SELECT ... FOR UPDATE on swaps serializes every mutation touching a target;
      SQLite ignores FOR UPDATE and serializes writers itself
"""

import logging
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from swap_targeting.core.domain_types import (
    EdgeStatus, PROPOSAL_STATUS_FOR_EDGE, TARGETABLE_SWAP_STATES,
)
from swap_targeting.models.proposal import Proposal
from swap_targeting.models.swap import Swap
from swap_targeting.models.targeting_edge import TargetingEdge

logger = logging.getLogger(__name__)

# Arbitrary constant shared by every process that creates edges
GRAPH_LOCK_KEY = 7_402_318_551

_ACTIVE = EdgeStatus.ACTIVE.value


class TargetingStore:
    """Edge/proposal persistence scoped to one AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # --- Locks ----------------------------------------------------------------

    async def lock_graph(self) -> None:
        """Serialize edge creation across the whole graph for this transaction."""
        if self.db.get_bind().dialect.name == "postgresql":
            await self.db.execute(
                text("SELECT pg_advisory_xact_lock(:key)"), {"key": GRAPH_LOCK_KEY},
            )

    async def lock_swaps(self, swap_ids: Iterable[UUID]) -> dict[UUID, Swap]:
        """Lock swap rows in id order. Missing ids are absent from the result."""
        ordered = sorted(set(swap_ids), key=str)
        result = await self.db.execute(
            select(Swap)
            .where(Swap.id.in_(ordered))
            .order_by(Swap.id)
            .with_for_update()
            .execution_options(populate_existing=True),
        )
        return {swap.id: swap for swap in result.scalars().all()}

    # --- Swaps ----------------------------------------------------------------

    async def get_swap(self, swap_id: UUID) -> Swap | None:
        result = await self.db.execute(select(Swap).where(Swap.id == swap_id))
        return result.scalar_one_or_none()

    async def find_candidate_source(
        self, owner_id: str, exclude_swap_id: UUID,
    ) -> Swap | None:
        """Oldest swap of owner_id still able to propose (legacy can-target behaviour)."""
        result = await self.db.execute(
            select(Swap)
            .where(Swap.owner_id == owner_id)
            .where(Swap.id != exclude_swap_id)
            .where(Swap.status.in_([s.value for s in TARGETABLE_SWAP_STATES]))
            .order_by(Swap.created_at, Swap.id)
            .limit(1),
        )
        return result.scalar_one_or_none()

    # --- Edges ----------------------------------------------------------------

    async def get_edge(
        self, edge_id: UUID, for_update: bool = False,
    ) -> TargetingEdge | None:
        query = select(TargetingEdge).where(TargetingEdge.id == edge_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_active_outgoing(
        self, source_swap_id: UUID, for_update: bool = False,
    ) -> TargetingEdge | None:
        query = (
            select(TargetingEdge)
            .where(TargetingEdge.source_swap_id == source_swap_id)
            .where(TargetingEdge.status == _ACTIVE)
        )
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_active_incoming(
        self,
        target_swap_id: UUID,
        exclude_edge_id: UUID | None = None,
        for_update: bool = False,
    ) -> list[TargetingEdge]:
        query = (
            select(TargetingEdge)
            .where(TargetingEdge.target_swap_id == target_swap_id)
            .where(TargetingEdge.status == _ACTIVE)
            .order_by(TargetingEdge.created_at, TargetingEdge.id)
        )
        if exclude_edge_id is not None:
            query = query.where(TargetingEdge.id != exclude_edge_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_active_incoming(
        self, target_swap_id: UUID, exclude_source_id: UUID | None = None,
    ) -> int:
        query = (
            select(func.count())
            .select_from(TargetingEdge)
            .where(TargetingEdge.target_swap_id == target_swap_id)
            .where(TargetingEdge.status == _ACTIVE)
        )
        if exclude_source_id is not None:
            query = query.where(TargetingEdge.source_swap_id != exclude_source_id)
        result = await self.db.execute(query)
        return result.scalar_one()

    async def load_active_pairs(self) -> list[tuple[UUID, UUID]]:
        """(source, target) for every active edge — the cycle-check snapshot."""
        result = await self.db.execute(
            select(TargetingEdge.source_swap_id, TargetingEdge.target_swap_id)
            .where(TargetingEdge.status == _ACTIVE),
        )
        return [(row[0], row[1]) for row in result.all()]

    # --- Writes ---------------------------------------------------------------

    async def insert_edge(
        self,
        source: Swap,
        target: Swap,
        proposer_id: str,
        message: str | None,
        conditions: list[str] | None,
        exclusive: bool,
    ) -> TargetingEdge:
        """Insert proposal + active edge and flush (IntegrityError surfaces here)."""
        proposal = Proposal(
            source_swap_id=source.id,
            target_swap_id=target.id,
            proposer_id=proposer_id,
            message=message,
            conditions=list(conditions or []),
            status=PROPOSAL_STATUS_FOR_EDGE[EdgeStatus.ACTIVE].value,
        )
        self.db.add(proposal)
        await self.db.flush()

        edge = TargetingEdge(
            source_swap_id=source.id,
            target_swap_id=target.id,
            proposal_id=proposal.id,
            status=_ACTIVE,
            is_exclusive=exclusive,
        )
        edge.proposal = proposal
        self.db.add(edge)
        await self.db.flush()
        return edge

    async def set_edge_status(self, edge: TargetingEdge, status: EdgeStatus) -> None:
        """Move an active edge (and its proposal) to a terminal status; flush."""
        edge.status = status.value
        if edge.proposal is not None:
            edge.proposal.status = PROPOSAL_STATUS_FOR_EDGE[status].value
        await self.db.flush()
