"""Proposal ORM — negotiable payload attached 1:1 to a targeting edge.

Invariants:
    - Created in the same transaction as its edge, never on its own
    - status mirrors the edge: pending (active), accepted, rejected, withdrawn
    - conditions is a JSON list of strings

Design Decisions:
    - Separate table from targeting_edges: the edge is the graph structure, the
      proposal is the conversation; retarget withdraws one and creates another
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Text, DateTime, JSON, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from swap_targeting.db.base import Base


class Proposal(Base):
    """Message and conditions offered along a targeting edge."""
    __tablename__ = "proposals"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    source_swap_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("swaps.id"), nullable=False,
    )
    target_swap_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("swaps.id"), nullable=False,
    )
    proposer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    conditions: Mapped[list] = mapped_column(
        JSON, nullable=False, default=list,
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending",
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
