"""Swap Lifecycle Adapter — default SwapLifecycleHook backed by the swaps table.

Invariants:
    - Runs inside the caller's transaction (never commits)
    - Only transitions listed in _TRANSITIONS are applied; unknown events raise

Design Decisions:
    - The swap subsystem owns richer lifecycle logic (payments, escrow); this adapter
      performs only the status change the targeting core needs, so the core works
      stand-alone and in tests
"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from swap_targeting.core.domain_types import SwapLifecycleEvent, SwapStatus
from swap_targeting.core.errors import ResourceNotFoundError
from swap_targeting.models.swap import Swap

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[SwapLifecycleEvent, SwapStatus] = {
    SwapLifecycleEvent.PROPOSAL_ACCEPTED: SwapStatus.ACCEPTED,
}


class DatabaseSwapLifecycle:
    """Apply lifecycle events directly to swaps.status."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def advance_swap_state(self, swap_id: UUID, event: str) -> None:
        new_status = _TRANSITIONS[SwapLifecycleEvent(event)]
        swap = await self.db.get(Swap, swap_id)
        if swap is None:
            raise ResourceNotFoundError("Swap", str(swap_id))
        logger.info(
            f"Swap {swap_id}: {swap.status} -> {new_status.value} ({event})",
            extra={"swap_id": swap_id, "action": event},
        )
        swap.status = new_status.value
        await self.db.flush()
