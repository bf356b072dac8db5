"""TargetingEdge ORM — directed proposal relationship source swap -> target swap.

Invariants:
    - source_swap_id != target_swap_id (CHECK constraint)
    - At most one ACTIVE edge per source swap (partial unique index)
    - At most one ACTIVE exclusive edge per target swap (partial unique index);
      is_exclusive snapshots the target's first_match strategy at creation
    - status in: active, accepted, rejected, cancelled, replaced; only active is mutable
    - The active-edge graph is acyclic (enforced by the coordinator, not the DB)

Design Decisions:
    - Unique indexes back up the row locks: the loser of a race hits IntegrityError,
      which the coordinator reports as PROPOSAL_PENDING / ALREADY_TARGETING
    - Single edge table: no second "regular proposal" representation to UNION at read time
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    String, Boolean, DateTime, ForeignKey, Uuid,
    CheckConstraint, Index, text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from swap_targeting.db.base import Base


class TargetingEdge(Base):
    """Directed edge in the targeting graph."""
    __tablename__ = "targeting_edges"
    __table_args__ = (
        CheckConstraint(
            "source_swap_id <> target_swap_id",
            name="ck_targeting_edges_not_self",
        ),
        Index(
            "uq_targeting_edges_active_source", "source_swap_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index(
            "uq_targeting_edges_active_exclusive_target", "target_swap_id",
            unique=True,
            postgresql_where=text("status = 'active' AND is_exclusive"),
            sqlite_where=text("status = 'active' AND is_exclusive = 1"),
        ),
        Index("ix_targeting_edges_target_status", "target_swap_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    source_swap_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("swaps.id"), nullable=False,
    )
    target_swap_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("swaps.id"), nullable=False,
    )
    proposal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("proposals.id"), nullable=False,
        unique=True,
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="active",
    )
    is_exclusive: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
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

    # Relationships
    proposal: Mapped["Proposal"] = relationship(
        "Proposal", lazy="selectin",
    )
