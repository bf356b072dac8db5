"""TargetingHistoryEntry ORM — append-only audit trail of lifecycle transitions.

Invariants:
    - Rows are inserted, never updated or deleted
    - action in: targeted, retargeted, removed, accepted, rejected, cancelled
    - source/target swap ids denormalized: per-swap queries need no join to edges

Design Decisions:
    - Python attribute `details` maps to the `metadata` column (`metadata` is
      reserved on declarative classes)
    - actor_id nullable: system-driven transitions (none today) would have no actor
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, JSON, ForeignKey, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from swap_targeting.db.base import Base


class TargetingHistoryEntry(Base):
    """Immutable record of one targeting lifecycle transition."""
    __tablename__ = "targeting_history"
    __table_args__ = (
        Index("ix_targeting_history_source_created", "source_swap_id", "created_at"),
        Index("ix_targeting_history_target_created", "target_swap_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    edge_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("targeting_edges.id"), nullable=False,
    )
    source_swap_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), nullable=False,
    )
    target_swap_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), nullable=False,
    )
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    details: Mapped[dict] = mapped_column(
        "metadata", JSON, nullable=False, default=dict,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
