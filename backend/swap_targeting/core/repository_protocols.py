"""Boundary Protocols — contracts between core and shell.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - External collaborators (swap lifecycle, notifications) accessed through Protocol types
    - Implementations provided by shell via dependency injection

Design Decisions:
    - Protocol over ABC: structural subtyping, ORM rows and test fixtures both satisfy SwapLike
    - Async in hook Protocols: implementations do IO, but the pure checks that read
      SwapLike objects are never async themselves
"""

from datetime import datetime
from typing import Protocol
from uuid import UUID


class SwapLike(Protocol):
    """Structural contract for swaps passed to the pure eligibility/strategy checks."""
    id: UUID
    owner_id: str
    status: str
    acceptance_strategy: str
    auction_end_date: datetime | None
    winner_edge_id: UUID | None


class HistoryEntryLike(Protocol):
    """Structural contract for history entries handed to notification hooks."""
    id: UUID
    edge_id: UUID
    source_swap_id: UUID
    target_swap_id: UUID
    action: str
    actor_id: str | None
    created_at: datetime
    details: dict


class SwapLifecycleHook(Protocol):
    """Advances a swap's own lifecycle when one of its proposals is accepted.

    Called inside the coordinator's transaction: a failure aborts the acceptance.
    """
    async def advance_swap_state(self, swap_id: UUID, event: str) -> None: ...


class NotificationHook(Protocol):
    """Fire-and-forget delivery of lifecycle transitions.

    Called after commit; failures are logged and never roll anything back.
    """
    async def notify(self, entry: HistoryEntryLike) -> None: ...
