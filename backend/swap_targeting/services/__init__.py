"""Services — transactional orchestration over the pure core and the ORM.

Invariants:
    - Only ProposalLifecycleCoordinator commits targeting writes
    - Views, history queries and the store never commit
"""
