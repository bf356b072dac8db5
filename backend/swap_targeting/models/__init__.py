"""ORM Models — SQLAlchemy declarative models for all persisted entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - Only the Proposal Lifecycle Coordinator writes edges, proposals and history

Design Decisions:
    - One file per entity for locality
    - All models imported here so SQLAlchemy resolves string-based relationship()
      references before any query runs
"""

from swap_targeting.models.user import User  # noqa: F401
from swap_targeting.models.booking import Booking  # noqa: F401
from swap_targeting.models.swap import Swap  # noqa: F401
from swap_targeting.models.proposal import Proposal  # noqa: F401
from swap_targeting.models.targeting_edge import TargetingEdge  # noqa: F401
from swap_targeting.models.targeting_history import TargetingHistoryEntry  # noqa: F401
