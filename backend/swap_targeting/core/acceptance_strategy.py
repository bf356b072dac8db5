"""Acceptance Strategy Resolver — exclusive (first_match) vs competitive (auction) admission.

Invariants:
    - All functions are PURE: no IO, no async, no DB; `now` is always passed in
    - first_match admits a new edge only when the target has zero active incoming edges
    - auction admits new edges until end_date (exclusive), regardless of count
    - should_finalize is True once an auction has ended and no winner was chosen

Design Decisions:
    - Opportunistic finalization: read paths call should_finalize to surface
      "auction ended"; correctness never depends on a background scheduler
    - Missing strategy treated as first_match (legacy swaps created before auctions existed)
    - Naive datetimes treated as UTC: SQLite returns naive values for tz-aware columns
"""

from datetime import datetime, timezone

from swap_targeting.core.domain_types import AcceptanceStrategyType
from swap_targeting.core.repository_protocols import SwapLike


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def strategy_of(swap: SwapLike) -> AcceptanceStrategyType:
    try:
        return AcceptanceStrategyType(swap.acceptance_strategy)
    except ValueError:
        return AcceptanceStrategyType.FIRST_MATCH


def is_auction(swap: SwapLike) -> bool:
    return strategy_of(swap) is AcceptanceStrategyType.AUCTION


def auction_has_ended(swap: SwapLike, now: datetime) -> bool:
    """True for auctions whose end_date is at or before now.

    An auction without an end date never ends on its own.
    """
    if not is_auction(swap) or swap.auction_end_date is None:
        return False
    return ensure_utc(swap.auction_end_date) <= ensure_utc(now)


def is_admissible(
    target_swap: SwapLike, existing_active_incoming_count: int, now: datetime,
) -> bool:
    """Can the target accept one more active incoming edge right now?"""
    if is_auction(target_swap):
        return not auction_has_ended(target_swap, now)
    return existing_active_incoming_count == 0


def should_finalize(target_swap: SwapLike, now: datetime) -> bool:
    """Auction ended and still waiting for the owner to pick a winner."""
    return (
        auction_has_ended(target_swap, now)
        and target_swap.winner_edge_id is None
    )
