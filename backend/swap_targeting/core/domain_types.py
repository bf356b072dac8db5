"""Domain Types — closed sets of states and events for swaps, edges and proposals.

Invariants:
    - All valid states encoded as Enums — no raw string matching
    - Identifiers stay plain UUIDs; user ids are opaque strings from the auth gateway

Design Decisions:
    - str Enums: serialize to JSON and to String columns without custom encoders
"""

from enum import Enum


# ─── Enums ───────────────────────────────────────────────────────

class SwapStatus(str, Enum):
    """Swap lifecycle states — maps to swaps.status."""
    AVAILABLE = "available"
    PENDING = "pending"
    ACCEPTED = "accepted"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class AcceptanceStrategyType(str, Enum):
    """How a swap admits incoming proposals."""
    FIRST_MATCH = "first_match"
    AUCTION = "auction"


class EdgeStatus(str, Enum):
    """TargetingEdge states. Only ACTIVE is non-terminal."""
    ACTIVE = "active"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    REPLACED = "replaced"


class ProposalStatus(str, Enum):
    """Proposal states — derived from the owning edge's status."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class HistoryAction(str, Enum):
    """Lifecycle transitions recorded in targeting_history."""
    TARGETED = "targeted"
    RETARGETED = "retargeted"
    REMOVED = "removed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class SwapLifecycleEvent(str, Enum):
    """Events sent to the swap lifecycle hook."""
    PROPOSAL_ACCEPTED = "proposal_accepted"


# Swap states from which a swap may send or receive proposals
TARGETABLE_SWAP_STATES = frozenset({SwapStatus.AVAILABLE, SwapStatus.PENDING})

PROPOSAL_STATUS_FOR_EDGE: dict[EdgeStatus, ProposalStatus] = {
    EdgeStatus.ACTIVE: ProposalStatus.PENDING,
    EdgeStatus.ACCEPTED: ProposalStatus.ACCEPTED,
    EdgeStatus.REJECTED: ProposalStatus.REJECTED,
    EdgeStatus.CANCELLED: ProposalStatus.WITHDRAWN,
    EdgeStatus.REPLACED: ProposalStatus.WITHDRAWN,
}
