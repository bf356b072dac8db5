"""Targeting Schemas — request bodies and response payloads for the targeting API.

Invariants:
    - Request bodies accept camelCase (sourceSwapId) and snake_case alike
    - message: at most 2000 chars, stripped, empty becomes None
    - conditions: at most 20 entries of 1-500 chars each
    - Responses serialize with by_alias=True (camelCase)

Design Decisions:
    - from_attributes on output models: ORM rows validate directly into responses
    - History `details` is exposed as `metadata`, the column name clients know
"""

from datetime import date, datetime
from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class ApiModel(BaseModel):
    """Base for every schema: camelCase on the wire."""
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True,
    )


# --- Requests -----------------------------------------------------------------

class TargetRequest(ApiModel):
    """Body of POST /swaps/{id}/target and PUT /swaps/{id}/retarget."""
    source_swap_id: UUID
    message: str | None = Field(None, max_length=2000)
    conditions: list[str] | None = Field(None, max_length=20)

    @field_validator("message")
    @classmethod
    def strip_message(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None

    @field_validator("conditions")
    @classmethod
    def check_conditions(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return None
        cleaned = [c.strip() for c in v]
        for c in cleaned:
            if not c:
                raise ValueError("conditions cannot contain empty entries")
            if len(c) > 500:
                raise ValueError("each condition must be at most 500 characters")
        return cleaned


class RetargetRequest(TargetRequest):
    """Same shape as TargetRequest; message/conditions default to the previous proposal."""


class RemoveTargetRequest(ApiModel):
    """Body of DELETE /swaps/{id}/target."""
    source_swap_id: UUID


# --- Edges --------------------------------------------------------------------

class ProposalOut(ApiModel):
    id: UUID
    message: str | None = None
    conditions: list[str] = []
    status: str


class EdgeOut(ApiModel):
    """A targeting edge with its proposal."""
    id: UUID
    source_swap_id: UUID
    target_swap_id: UUID
    status: str
    is_exclusive: bool
    created_at: datetime
    updated_at: datetime
    proposal: ProposalOut | None = None


class TargetingResult(ApiModel):
    """Result of target / retarget."""
    edge: EdgeOut
    replaced_edge_id: UUID | None = None


class RemoveTargetResult(ApiModel):
    """Result of remove_target. removed=False when nothing was active."""
    removed: bool
    edge: EdgeOut | None = None


class ResolutionResult(ApiModel):
    """Result of accept / reject."""
    edge: EdgeOut
    rejected_edge_ids: list[UUID] = []
    cancelled_edge_ids: list[UUID] = []


class CanTargetOut(ApiModel):
    """GET /swaps/{id}/can-target."""
    can_target: bool
    source_swap_id: UUID | None = None
    reason: str | None = None
    message: str | None = None


# --- History ------------------------------------------------------------------

class HistoryEntryOut(ApiModel):
    id: UUID
    edge_id: UUID
    source_swap_id: UUID
    target_swap_id: UUID
    action: str
    actor_id: str | None = None
    created_at: datetime
    details: dict = Field(default_factory=dict, serialization_alias="metadata")


class Page(ApiModel, Generic[T]):
    """Offset pagination envelope."""
    items: list[T]
    total: int
    limit: int
    offset: int
    has_more: bool

    @classmethod
    def build(cls, items: list, total: int, limit: int, offset: int) -> "Page":
        return cls(
            items=items, total=total, limit=limit, offset=offset,
            has_more=offset + len(items) < total,
        )


# --- Views --------------------------------------------------------------------

class BookingSummary(ApiModel):
    id: UUID | None = None
    title: str
    location: str | None = None
    check_in: date | None = None
    check_out: date | None = None
    price: float | None = None


class CounterpartSwap(ApiModel):
    """The swap on the other end of an edge, denormalized for display."""
    swap_id: UUID
    owner_id: str | None = None
    owner_name: str
    status: str | None = None
    acceptance_strategy: str | None = None
    booking: BookingSummary


class TargetingEdgeView(ApiModel):
    """One active edge as seen from one of its swaps."""
    edge_id: UUID
    proposal_id: UUID
    status: str
    created_at: datetime
    message: str | None = None
    conditions: list[str] = []
    counterpart: CounterpartSwap


class AuctionState(ApiModel):
    strategy: str
    end_date: datetime | None = None
    ended: bool = False
    awaiting_selection: bool = False
    winner_edge_id: UUID | None = None
    proposal_count: int = 0


class SwapTargetingStatus(ApiModel):
    """GET /swaps/{id}/targeting-status."""
    swap_id: UUID
    status: str
    has_active_targeting: bool
    incoming_targets: list[TargetingEdgeView] = []
    outgoing_target: TargetingEdgeView | None = None
    auction: AuctionState


class UserTargetingPortfolio(ApiModel):
    """GET /users/{id}/targeting: status of every swap the user owns."""
    user_id: str
    swaps: list[SwapTargetingStatus] = []
    incoming_count: int = 0
    outgoing_count: int = 0
