"""Swap targeting schema — users, bookings, swaps, proposals, targeting_edges, targeting_history.

Revision ID: 001_swap_targeting
Revises: None
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_swap_targeting"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("display_name", sa.String(200), nullable=True),
        sa.Column("email", sa.String(320), nullable=True),
    )

    op.create_table(
        "bookings",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("title", sa.String(300), nullable=True),
        sa.Column("location", sa.String(300), nullable=True),
        sa.Column("check_in", sa.Date, nullable=True),
        sa.Column("check_out", sa.Date, nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=True),
    )

    op.create_table(
        "swaps",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column(
            "booking_id", UUID(as_uuid=True),
            sa.ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="available"),
        sa.Column(
            "acceptance_strategy", sa.String(20), nullable=False,
            server_default="first_match",
        ),
        sa.Column("auction_end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("winner_edge_id", UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_swaps_owner_id", "swaps", ["owner_id"])

    op.create_table(
        "proposals",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("source_swap_id", UUID(as_uuid=True), sa.ForeignKey("swaps.id"), nullable=False),
        sa.Column("target_swap_id", UUID(as_uuid=True), sa.ForeignKey("swaps.id"), nullable=False),
        sa.Column("proposer_id", sa.String(64), nullable=False),
        sa.Column("message", sa.Text, nullable=True),
        sa.Column("conditions", sa.JSON, nullable=False, server_default="[]"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "targeting_edges",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("source_swap_id", UUID(as_uuid=True), sa.ForeignKey("swaps.id"), nullable=False),
        sa.Column("target_swap_id", UUID(as_uuid=True), sa.ForeignKey("swaps.id"), nullable=False),
        sa.Column(
            "proposal_id", UUID(as_uuid=True), sa.ForeignKey("proposals.id"),
            nullable=False, unique=True,
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("is_exclusive", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "source_swap_id <> target_swap_id", name="ck_targeting_edges_not_self",
        ),
    )
    op.create_index(
        "uq_targeting_edges_active_source", "targeting_edges", ["source_swap_id"],
        unique=True, postgresql_where=sa.text("status = 'active'"),
    )
    op.create_index(
        "uq_targeting_edges_active_exclusive_target", "targeting_edges", ["target_swap_id"],
        unique=True, postgresql_where=sa.text("status = 'active' AND is_exclusive"),
    )
    op.create_index(
        "ix_targeting_edges_target_status", "targeting_edges", ["target_swap_id", "status"],
    )

    op.create_table(
        "targeting_history",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("edge_id", UUID(as_uuid=True), sa.ForeignKey("targeting_edges.id"), nullable=False),
        sa.Column("source_swap_id", UUID(as_uuid=True), nullable=False),
        sa.Column("target_swap_id", UUID(as_uuid=True), nullable=False),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("actor_id", sa.String(64), nullable=True),
        sa.Column("metadata", sa.JSON, nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_targeting_history_source_created", "targeting_history",
        ["source_swap_id", "created_at"],
    )
    op.create_index(
        "ix_targeting_history_target_created", "targeting_history",
        ["target_swap_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_table("targeting_history")
    op.drop_table("targeting_edges")
    op.drop_table("proposals")
    op.drop_table("swaps")
    op.drop_table("bookings")
    op.drop_table("users")
