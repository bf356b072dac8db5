"""Swap ORM — an exchangeable reservation owned by exactly one user.

Invariants:
    - owner_id is the opaque auth-layer user id (no FK: profile rows may be missing)
    - status in: available, pending, accepted, cancelled, expired
    - acceptance_strategy in: first_match, auction; auction_end_date only meaningful for auction
    - winner_edge_id set once, when an incoming edge is accepted

Design Decisions:
    - Strategy stored as two flat columns instead of JSON: the eligibility query
      filters on them and Postgres can index them
    - booking_id nullable with SET NULL: a deleted booking degrades the view, it
      does not cascade into targeting data
    - winner_edge_id has no FK: avoids a swaps <-> targeting_edges FK cycle
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from swap_targeting.db.base import Base


class Swap(Base):
    """Exchangeable reservation — the node of the targeting graph."""
    __tablename__ = "swaps"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    owner_id: Mapped[str] = mapped_column(
        String(64), nullable=False, index=True,
    )
    booking_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("bookings.id", ondelete="SET NULL"),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="available",
    )
    acceptance_strategy: Mapped[str] = mapped_column(
        String(20), nullable=False, default="first_match",
    )
    auction_end_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    winner_edge_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
