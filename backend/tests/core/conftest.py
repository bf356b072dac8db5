"""Core test fixtures — in-memory swaps satisfying SwapLike.

Invariants:
    - No DB, no async: core functions are pure
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

import pytest

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


@dataclass
class FakeSwap:
    owner_id: str
    status: str = "available"
    acceptance_strategy: str = "first_match"
    auction_end_date: datetime | None = None
    winner_edge_id: uuid.UUID | None = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_swap():
    def _make(owner_id: str = "alice", **kwargs) -> FakeSwap:
        return FakeSwap(owner_id=owner_id, **kwargs)
    return _make
