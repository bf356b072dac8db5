"""Eligibility Enforcement — decides whether a proposed targeting edge is allowed.

Invariants:
    - All functions are PURE: no IO, no async, no DB, no side effects
    - Each check returns a TargetingErrorCode on violation, None on success
    - Checks run in a fixed order and short-circuit on the first failure:
        1. own swap          -> CANNOT_TARGET_OWN_SWAP
        2. availability      -> AUCTION_ENDED / SWAP_UNAVAILABLE
        3. circular chain    -> CIRCULAR_TARGETING
        4. admission         -> PROPOSAL_PENDING
    - The snapshot is read once by the caller inside the write transaction

Design Decisions:
    - Snapshot dataclass instead of repository access: tests build it in memory
    - Ownership of the source swap is an authorization concern (403), checked by the
      coordinator before eligibility, not here
"""

from dataclasses import dataclass, field
from datetime import datetime

from swap_targeting.core.acceptance_strategy import (
    auction_has_ended, is_admissible, is_auction,
)
from swap_targeting.core.domain_types import SwapStatus, TARGETABLE_SWAP_STATES
from swap_targeting.core.errors import TargetingErrorCode
from swap_targeting.core.repository_protocols import SwapLike
from swap_targeting.core.targeting_graph import Adjacency, would_close_cycle


@dataclass(frozen=True)
class TargetingSnapshot:
    """Everything the checker needs, read inside one transaction."""
    source: SwapLike
    target: SwapLike
    adjacency: Adjacency
    # Active incoming edges into target from swaps other than source
    incoming_active_count: int
    now: datetime


@dataclass(frozen=True)
class EligibilityDecision:
    """allow, or deny with a reason. Warnings never block."""
    allowed: bool
    reason: TargetingErrorCode | None = None
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def deny(cls, reason: TargetingErrorCode) -> "EligibilityDecision":
        return cls(allowed=False, reason=reason)


# --- Individual checks --------------------------------------------------------

def check_not_own_swap(
    snapshot: TargetingSnapshot, user_id: str,
) -> TargetingErrorCode | None:
    """A swap can never target itself, nor another swap with the same owner."""
    source, target = snapshot.source, snapshot.target
    if (
        source.id == target.id
        or source.owner_id == target.owner_id
        or target.owner_id == user_id
    ):
        return TargetingErrorCode.CANNOT_TARGET_OWN_SWAP
    return None


def check_swaps_available(snapshot: TargetingSnapshot) -> TargetingErrorCode | None:
    """Target must accept proposals; source must still be exchangeable."""
    target = snapshot.target
    if is_auction(target):
        if auction_has_ended(target, snapshot.now):
            return TargetingErrorCode.AUCTION_ENDED
        if _status(target) not in TARGETABLE_SWAP_STATES:
            return TargetingErrorCode.SWAP_UNAVAILABLE
    elif _status(target) is not SwapStatus.AVAILABLE:
        return TargetingErrorCode.SWAP_UNAVAILABLE

    if _status(snapshot.source) not in TARGETABLE_SWAP_STATES:
        return TargetingErrorCode.SWAP_UNAVAILABLE
    return None


def check_no_cycle(snapshot: TargetingSnapshot) -> TargetingErrorCode | None:
    """Source must not be reachable from target through active edges."""
    if would_close_cycle(snapshot.adjacency, snapshot.source.id, snapshot.target.id):
        return TargetingErrorCode.CIRCULAR_TARGETING
    return None


def check_admission(snapshot: TargetingSnapshot) -> TargetingErrorCode | None:
    """Strategy-specific admission (first_match exclusivity)."""
    if not is_admissible(snapshot.target, snapshot.incoming_active_count, snapshot.now):
        return TargetingErrorCode.PROPOSAL_PENDING
    return None


# --- Composite validator ------------------------------------------------------

def evaluate_targeting(
    snapshot: TargetingSnapshot, user_id: str, crowded_threshold: int = 5,
) -> EligibilityDecision:
    """Run all checks in order; first failure wins."""
    reason = (
        check_not_own_swap(snapshot, user_id)
        or check_swaps_available(snapshot)
        or check_no_cycle(snapshot)
        or check_admission(snapshot)
    )
    if reason:
        return EligibilityDecision.deny(reason)

    warnings = []
    if is_auction(snapshot.target) and snapshot.incoming_active_count > crowded_threshold:
        warnings.append(
            "This auction already has many proposals - consider the competition",
        )
    return EligibilityDecision(allowed=True, warnings=warnings)


# --- Helper -------------------------------------------------------------------

def _status(swap: SwapLike) -> SwapStatus | None:
    try:
        return SwapStatus(swap.status)
    except ValueError:
        return None
