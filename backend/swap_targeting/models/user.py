"""User ORM — read-only profile rows owned by the accounts subsystem.

Invariants:
    - id is the opaque user id issued by the auth layer (string, not UUID)
    - This core never writes users; rows may be missing for a valid user id

Design Decisions:
    - Only the columns the targeting views display are mapped
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from swap_targeting.db.base import Base


class User(Base):
    """User profile — display data for targeting views."""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
