"""Targeting Views — read-only aggregation of active edges for display.

Invariants:
    - Never writes, never commits, never takes locks
    - Missing user, booking or counterpart swap rows yield placeholders; an active
      edge is never dropped from a view
    - Auction state is computed on read (should_finalize), never by a scheduler

Design Decisions:
    - One outer-joined query per direction (incoming / outgoing) instead of a
      lookup per edge; the portfolio view batches all of a user's swaps
    - Returns schema objects: routes serialize without reshaping
"""

import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from swap_targeting.core.acceptance_strategy import (
    auction_has_ended, is_auction, should_finalize, strategy_of,
)
from swap_targeting.core.domain_types import EdgeStatus
from swap_targeting.core.errors import ResourceNotFoundError
from swap_targeting.models.booking import Booking
from swap_targeting.models.swap import Swap
from swap_targeting.models.targeting_edge import TargetingEdge
from swap_targeting.models.user import User
from swap_targeting.schemas.targeting import (
    AuctionState, BookingSummary, CounterpartSwap, SwapTargetingStatus,
    TargetingEdgeView, UserTargetingPortfolio,
)

logger = logging.getLogger(__name__)

UNKNOWN_USER = "Unknown user"
UNTITLED_BOOKING = "Untitled booking"

_ACTIVE = EdgeStatus.ACTIVE.value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TargetingViews:
    """Per-swap and per-user views over the active targeting graph."""

    def __init__(
        self, db: AsyncSession, clock: Callable[[], datetime] = _utcnow,
    ):
        self.db = db
        self._clock = clock

    async def swap_view(self, swap_id: UUID) -> SwapTargetingStatus:
        swap = await self._get_swap(swap_id)
        incoming = await self._edges(
            TargetingEdge.target_swap_id == swap.id, incoming=True,
        )
        outgoing = await self._edges(
            TargetingEdge.source_swap_id == swap.id, incoming=False,
        )
        return self._status(swap, incoming, outgoing[0] if outgoing else None)

    async def user_portfolio(self, user_id: str) -> UserTargetingPortfolio:
        result = await self.db.execute(
            select(Swap)
            .where(Swap.owner_id == user_id)
            .order_by(Swap.created_at, Swap.id),
        )
        swaps = list(result.scalars().all())
        if not swaps:
            return UserTargetingPortfolio(user_id=user_id)

        ids = [s.id for s in swaps]
        incoming = _group(await self._edges(
            TargetingEdge.target_swap_id.in_(ids), incoming=True,
        ))
        outgoing = _group(await self._edges(
            TargetingEdge.source_swap_id.in_(ids), incoming=False,
        ))

        statuses = []
        for swap in swaps:
            out = outgoing.get(swap.id, [])
            statuses.append(self._status(swap, incoming.get(swap.id, []), out[0] if out else None))
        return UserTargetingPortfolio(
            user_id=user_id,
            swaps=statuses,
            incoming_count=sum(len(v) for v in incoming.values()),
            outgoing_count=sum(len(v) for v in outgoing.values()),
        )

    async def targeted_by(
        self, swap_id: UUID, limit: int = 20, offset: int = 0,
    ) -> tuple[list[TargetingEdgeView], int]:
        """Active edges into swap_id, oldest first, with the total count."""
        swap = await self._get_swap(swap_id)
        total = (await self.db.execute(
            select(func.count())
            .select_from(TargetingEdge)
            .where(TargetingEdge.target_swap_id == swap.id)
            .where(TargetingEdge.status == _ACTIVE),
        )).scalar_one()
        rows = await self._edges(
            TargetingEdge.target_swap_id == swap.id, incoming=True,
            limit=limit, offset=offset,
        )
        return [view for _, view in rows], total

    # --- Internals ------------------------------------------------------------

    async def _get_swap(self, swap_id: UUID) -> Swap:
        swap = await self.db.get(Swap, swap_id)
        if swap is None:
            raise ResourceNotFoundError("Swap", str(swap_id))
        return swap

    async def _edges(
        self,
        condition,
        incoming: bool,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[tuple[UUID, TargetingEdgeView]]:
        """Active edges matching condition as (own swap id, view of the counterpart)."""
        counterpart = aliased(Swap)
        other_col = TargetingEdge.source_swap_id if incoming else TargetingEdge.target_swap_id
        query = (
            select(TargetingEdge, counterpart, User, Booking)
            .outerjoin(counterpart, counterpart.id == other_col)
            .outerjoin(User, User.id == counterpart.owner_id)
            .outerjoin(Booking, Booking.id == counterpart.booking_id)
            .where(condition)
            .where(TargetingEdge.status == _ACTIVE)
            .order_by(TargetingEdge.created_at, TargetingEdge.id)
        )
        if limit is not None:
            query = query.limit(limit).offset(offset)
        result = await self.db.execute(query)

        rows = []
        for edge, other, owner, booking in result.all():
            own_id = edge.target_swap_id if incoming else edge.source_swap_id
            other_id = edge.source_swap_id if incoming else edge.target_swap_id
            rows.append((own_id, _edge_view(edge, other_id, other, owner, booking)))
        return rows

    def _status(
        self,
        swap: Swap,
        incoming: list[tuple[UUID, TargetingEdgeView]],
        outgoing: tuple[UUID, TargetingEdgeView] | None,
    ) -> SwapTargetingStatus:
        now = self._clock()
        incoming_views = [view for _, view in incoming]
        return SwapTargetingStatus(
            swap_id=swap.id,
            status=swap.status,
            has_active_targeting=bool(incoming_views) or outgoing is not None,
            incoming_targets=incoming_views,
            outgoing_target=outgoing[1] if outgoing else None,
            auction=AuctionState(
                strategy=strategy_of(swap).value,
                end_date=swap.auction_end_date if is_auction(swap) else None,
                ended=auction_has_ended(swap, now),
                awaiting_selection=should_finalize(swap, now),
                winner_edge_id=swap.winner_edge_id,
                proposal_count=len(incoming_views),
            ),
        )


def _group(
    rows: Iterable[tuple[UUID, TargetingEdgeView]],
) -> dict[UUID, list[tuple[UUID, TargetingEdgeView]]]:
    grouped: dict[UUID, list[tuple[UUID, TargetingEdgeView]]] = {}
    for own_id, view in rows:
        grouped.setdefault(own_id, []).append((own_id, view))
    return grouped


def _edge_view(
    edge: TargetingEdge,
    other_id: UUID,
    other: Swap | None,
    owner: User | None,
    booking: Booking | None,
) -> TargetingEdgeView:
    proposal = edge.proposal
    return TargetingEdgeView(
        edge_id=edge.id,
        proposal_id=edge.proposal_id,
        status=edge.status,
        created_at=edge.created_at,
        message=proposal.message if proposal else None,
        conditions=list(proposal.conditions or []) if proposal else [],
        counterpart=CounterpartSwap(
            swap_id=other_id,
            owner_id=other.owner_id if other else None,
            owner_name=(owner.display_name if owner and owner.display_name else UNKNOWN_USER),
            status=other.status if other else None,
            acceptance_strategy=other.acceptance_strategy if other else None,
            booking=_booking_summary(booking),
        ),
    )


def _booking_summary(booking: Booking | None) -> BookingSummary:
    if booking is None:
        return BookingSummary(title=UNTITLED_BOOKING)
    return BookingSummary(
        id=booking.id,
        title=booking.title or UNTITLED_BOOKING,
        location=booking.location,
        check_in=booking.check_in,
        check_out=booking.check_out,
        price=float(booking.price) if booking.price is not None else None,
    )
