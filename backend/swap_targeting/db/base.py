"""SQLAlchemy Declarative Base — shared base class and metadata for all ORM models.

Invariants:
    - All models inherit from Base
    - Base.metadata is the single source of truth for table metadata (Alembic reads it)
    - Unnamed indexes, FKs and PKs get deterministic names from the naming convention

Design Decisions:
    - Separate file for Base: avoids circular imports between models
    - CHECK constraints and partial indexes are always named explicitly in the
      model, so the convention leaves them alone
"""

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all swap targeting ORM models."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)
