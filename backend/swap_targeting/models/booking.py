"""Booking ORM — the reservation a swap offers, owned by the inventory subsystem.

Invariants:
    - Read-only from the targeting core's point of view
    - Every presentation field is nullable: views substitute placeholders
"""

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import String, Date, Numeric, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from swap_targeting.db.base import Base


class Booking(Base):
    """Booking summary shown next to a swap."""
    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    title: Mapped[str | None] = mapped_column(String(300), nullable=True)
    location: Mapped[str | None] = mapped_column(String(300), nullable=True)
    check_in: Mapped[date | None] = mapped_column(Date, nullable=True)
    check_out: Mapped[date | None] = mapped_column(Date, nullable=True)
    price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
