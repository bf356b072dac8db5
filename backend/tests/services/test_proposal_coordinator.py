"""Proposal lifecycle tests — target, retarget, remove, accept, reject against SQLite.

Invariants:
    - Every failing operation leaves edges, proposals and history unchanged
    - Notifications are delivered only after a successful commit
    - ORM objects are re-read with populate_existing after a failure (rollback expires them)
"""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select

from swap_targeting.core.enforce_eligibility import EligibilityDecision
from swap_targeting.core.errors import (
    EdgeNotActiveError, ForbiddenError, RequestValidationFailed,
    ResourceNotFoundError, TargetingErrorCode, TargetingRuleViolation,
)
from swap_targeting.models.proposal import Proposal
from swap_targeting.models.swap import Swap
from swap_targeting.models.targeting_edge import TargetingEdge
from swap_targeting.models.targeting_history import TargetingHistoryEntry


async def _ids(make_swap, *owners, **kwargs):
    return [(await make_swap(owner, **kwargs)).id for owner in owners]


async def _edges(db, **filters):
    query = select(TargetingEdge).execution_options(populate_existing=True)
    for column, value in filters.items():
        query = query.where(getattr(TargetingEdge, column) == value)
    return list((await db.execute(query)).scalars().all())


async def _history(db):
    result = await db.execute(
        select(TargetingHistoryEntry).order_by(TargetingHistoryEntry.created_at),
    )
    return list(result.scalars().all())


async def _swap(db, swap_id):
    return await db.get(Swap, swap_id, populate_existing=True)


# --- target -------------------------------------------------------------------

async def test_target_creates_edge_proposal_and_history(coordinator, make_swap, test_db, notifier):
    a, b = await _ids(make_swap, "alice", "bob")

    outcome = await coordinator.target(a, b, "alice", message="Swap?", conditions=["pets ok"])

    assert outcome.edge.status == "active"
    assert outcome.edge.is_exclusive is True
    assert outcome.edge.proposal.message == "Swap?"
    assert outcome.edge.proposal.conditions == ["pets ok"]
    assert outcome.edge.proposal.status == "pending"
    history = await _history(test_db)
    assert [h.action for h in history] == ["targeted"]
    assert history[0].actor_id == "alice"
    assert notifier.actions == ["targeted"]


async def test_target_self_is_rejected_before_any_write(coordinator, make_swap, test_db):
    a, = await _ids(make_swap, "alice")

    with pytest.raises(TargetingRuleViolation) as exc:
        await coordinator.target(a, a, "alice")

    assert exc.value.code is TargetingErrorCode.CANNOT_TARGET_OWN_SWAP
    assert await _edges(test_db) == []


async def test_target_swap_of_same_owner_is_rejected(coordinator, make_swap):
    a, a2 = await _ids(make_swap, "alice", "alice")

    with pytest.raises(TargetingRuleViolation) as exc:
        await coordinator.target(a, a2, "alice")

    assert exc.value.code is TargetingErrorCode.CANNOT_TARGET_OWN_SWAP
    assert exc.value.http_status == 400


async def test_target_requires_ownership_of_source(coordinator, make_swap, test_db, notifier):
    a, b = await _ids(make_swap, "alice", "bob")

    with pytest.raises(ForbiddenError):
        await coordinator.target(a, b, "mallory")

    assert await _edges(test_db) == []
    assert notifier.entries == []


async def test_target_missing_swap_is_not_found(coordinator, make_swap):
    a, = await _ids(make_swap, "alice")

    with pytest.raises(ResourceNotFoundError):
        await coordinator.target(a, uuid.uuid4(), "alice")


async def test_second_target_from_same_source_is_already_targeting(coordinator, make_swap, test_db):
    a, b, c = await _ids(make_swap, "alice", "bob", "carol")
    await coordinator.target(a, b, "alice")

    with pytest.raises(TargetingRuleViolation) as exc:
        await coordinator.target(a, c, "alice")

    assert exc.value.code is TargetingErrorCode.ALREADY_TARGETING
    assert len(await _edges(test_db, status="active")) == 1


async def test_unavailable_target_is_rejected(coordinator, make_swap):
    a, = await _ids(make_swap, "alice")
    b, = await _ids(make_swap, "bob", status="cancelled")

    with pytest.raises(TargetingRuleViolation) as exc:
        await coordinator.target(a, b, "alice")

    assert exc.value.code is TargetingErrorCode.SWAP_UNAVAILABLE


async def test_ended_auction_is_rejected(coordinator, make_swap, now):
    a, = await _ids(make_swap, "alice")
    b, = await _ids(
        make_swap, "bob", strategy="auction", auction_end_date=now - timedelta(hours=1),
    )

    with pytest.raises(TargetingRuleViolation) as exc:
        await coordinator.target(a, b, "alice")

    assert exc.value.code is TargetingErrorCode.AUCTION_ENDED


# --- exclusivity and cycles ---------------------------------------------------

async def test_first_match_admits_a_single_active_proposal(coordinator, make_swap, test_db):
    a, b, c = await _ids(make_swap, "alice", "bob", "carol")
    await coordinator.target(b, a, "bob")

    with pytest.raises(TargetingRuleViolation) as exc:
        await coordinator.target(c, a, "carol")

    assert exc.value.code is TargetingErrorCode.PROPOSAL_PENDING
    assert len(await _edges(test_db, target_swap_id=a, status="active")) == 1


async def test_source_index_loser_gets_already_targeting(coordinator, make_swap, test_db, monkeypatch):
    """Outgoing check skipped: the active-source index refuses a second edge from b."""
    a, b, c = await _ids(make_swap, "alice", "bob", "carol")
    await coordinator.target(b, a, "bob")

    async def no_outgoing(*args, **kwargs):
        return None

    monkeypatch.setattr(coordinator._store, "get_active_outgoing", no_outgoing)

    with pytest.raises(TargetingRuleViolation) as exc:
        await coordinator.target(b, c, "bob")

    assert exc.value.code is TargetingErrorCode.ALREADY_TARGETING
    active = await _edges(test_db, source_swap_id=b, status="active")
    assert [e.target_swap_id for e in active] == [a]
    proposals = (await test_db.execute(select(Proposal))).scalars().all()
    assert len(proposals) == 1


async def test_first_match_reject_then_retry(coordinator, make_swap, test_db):
    """B targets A, C is refused; A rejects B; C now succeeds."""
    a, b, c = await _ids(make_swap, "alice", "bob", "carol")
    first_id = (await coordinator.target(b, a, "bob")).edge.id
    with pytest.raises(TargetingRuleViolation):
        await coordinator.target(c, a, "carol")

    await coordinator.reject(first_id, "alice")
    retry = await coordinator.target(c, a, "carol")

    assert retry.edge.status == "active"
    statuses = {e.source_swap_id: e.status for e in await _edges(test_db, target_swap_id=a)}
    assert statuses == {b: "rejected", c: "active"}


async def test_three_swap_cycle_is_refused(coordinator, make_swap, test_db):
    a, b, c = await _ids(make_swap, "alice", "bob", "carol")
    await coordinator.target(a, b, "alice")
    await coordinator.target(b, c, "bob")

    with pytest.raises(TargetingRuleViolation) as exc:
        await coordinator.target(c, a, "carol")

    assert exc.value.code is TargetingErrorCode.CIRCULAR_TARGETING
    assert exc.value.context.debug_info["chain"] == [str(a), str(b), str(c)]
    assert len(await _edges(test_db, status="active")) == 2


async def test_two_swap_cycle_is_refused(coordinator, make_swap):
    a, b = await _ids(make_swap, "alice", "bob", strategy="auction")
    await coordinator.target(a, b, "alice")

    with pytest.raises(TargetingRuleViolation) as exc:
        await coordinator.target(b, a, "bob")

    assert exc.value.code is TargetingErrorCode.CIRCULAR_TARGETING


async def test_insert_race_loser_gets_proposal_pending(coordinator, make_swap, test_db, monkeypatch):
    """Eligibility bypassed: the exclusive-target unique index still refuses the second edge."""
    a, b, c = await _ids(make_swap, "alice", "bob", "carol")
    await coordinator.target(b, a, "bob")
    monkeypatch.setattr(
        "swap_targeting.services.proposal_coordinator.evaluate_targeting",
        lambda *args, **kwargs: EligibilityDecision(allowed=True),
    )

    with pytest.raises(TargetingRuleViolation) as exc:
        await coordinator.target(c, a, "carol")

    assert exc.value.code is TargetingErrorCode.PROPOSAL_PENDING
    assert len(await _edges(test_db, target_swap_id=a, status="active")) == 1


# --- auction ------------------------------------------------------------------

async def test_auction_accept_rejects_competitors(coordinator, make_swap, test_db, now, notifier):
    a, = await _ids(make_swap, "alice", strategy="auction", auction_end_date=now + timedelta(days=2))
    b, c, d = await _ids(make_swap, "bob", "carol", "dave")
    await coordinator.target(b, a, "bob")
    winner = await coordinator.target(c, a, "carol")
    await coordinator.target(d, a, "dave")
    assert winner.edge.is_exclusive is False
    notifier.entries.clear()

    outcome = await coordinator.accept(winner.edge.id, "alice")

    assert outcome.edge.status == "accepted"
    assert len(outcome.rejected_edge_ids) == 2
    statuses = {e.source_swap_id: e.status for e in await _edges(test_db, target_swap_id=a)}
    assert statuses == {b: "rejected", c: "accepted", d: "rejected"}
    target = await _swap(test_db, a)
    assert target.status == "accepted"
    assert target.winner_edge_id == winner.edge.id
    assert (await _swap(test_db, c)).status == "accepted"
    assert notifier.actions == ["accepted", "rejected", "rejected"]
    rejected = [e for e in notifier.entries if e.action == "rejected"]
    assert all(e.details["reason"] == "competing_proposal_accepted" for e in rejected)


async def test_crowded_auction_warns(make_swap, test_db, now):
    from swap_targeting.services.proposal_coordinator import ProposalLifecycleCoordinator
    from swap_targeting.services.swap_lifecycle import DatabaseSwapLifecycle

    coordinator = ProposalLifecycleCoordinator(
        test_db, DatabaseSwapLifecycle(test_db), clock=lambda: now, crowded_threshold=1,
    )
    a, = await _ids(make_swap, "alice", strategy="auction", auction_end_date=now + timedelta(days=1))
    b, c, d = await _ids(make_swap, "bob", "carol", "dave")
    assert (await coordinator.target(b, a, "bob")).warnings == []
    assert (await coordinator.target(c, a, "carol")).warnings == []

    outcome = await coordinator.target(d, a, "dave")

    assert len(outcome.warnings) == 1


# --- retarget -----------------------------------------------------------------

async def test_retarget_replaces_edge_atomically(coordinator, make_swap, test_db):
    a, b, c = await _ids(make_swap, "alice", "bob", "carol")
    first = await coordinator.target(a, b, "alice", message="Interested", conditions=["no smoking"])

    outcome = await coordinator.retarget(a, c, "alice")

    assert outcome.replaced_edge.id == first.edge.id
    assert outcome.edge.target_swap_id == c
    assert outcome.edge.proposal.message == "Interested"
    assert outcome.edge.proposal.conditions == ["no smoking"]
    edges = {e.id: e for e in await _edges(test_db, source_swap_id=a)}
    assert edges[first.edge.id].status == "replaced"
    assert edges[outcome.edge.id].status == "active"
    old_proposal = await test_db.get(Proposal, first.edge.proposal_id, populate_existing=True)
    assert old_proposal.status == "withdrawn"

    history = await _history(test_db)
    assert [h.action for h in history] == ["targeted", "retargeted"]
    assert history[1].details["previous_edge_id"] == str(first.edge.id)
    assert history[1].details["previous_target_swap_id"] == str(b)


async def test_retarget_overrides_message(coordinator, make_swap):
    a, b, c = await _ids(make_swap, "alice", "bob", "carol")
    await coordinator.target(a, b, "alice", message="old")

    outcome = await coordinator.retarget(a, c, "alice", message="new", conditions=[])

    assert outcome.edge.proposal.message == "new"
    assert outcome.edge.proposal.conditions == []


async def test_retarget_into_cycle_keeps_original_edge(coordinator, make_swap, test_db):
    a, b, c = await _ids(make_swap, "alice", "bob", "carol", strategy="auction")
    first_id = (await coordinator.target(a, b, "alice")).edge.id
    await coordinator.target(c, a, "carol")

    with pytest.raises(TargetingRuleViolation) as exc:
        await coordinator.retarget(a, c, "alice")

    assert exc.value.code is TargetingErrorCode.CIRCULAR_TARGETING
    active = await _edges(test_db, source_swap_id=a, status="active")
    assert [e.id for e in active] == [first_id]


async def test_retarget_to_busy_first_match_keeps_original_edge(coordinator, make_swap, test_db):
    a, b, c, d = await _ids(make_swap, "alice", "bob", "carol", "dave")
    first_id = (await coordinator.target(a, b, "alice")).edge.id
    await coordinator.target(d, c, "dave")

    with pytest.raises(TargetingRuleViolation) as exc:
        await coordinator.retarget(a, c, "alice")

    assert exc.value.code is TargetingErrorCode.PROPOSAL_PENDING
    assert [e.id for e in await _edges(test_db, source_swap_id=a, status="active")] == [first_id]


async def test_retarget_without_active_edge_is_not_found(coordinator, make_swap):
    a, b = await _ids(make_swap, "alice", "bob")

    with pytest.raises(ResourceNotFoundError):
        await coordinator.retarget(a, b, "alice")


async def test_retarget_to_current_target_is_validation_error(coordinator, make_swap):
    a, b = await _ids(make_swap, "alice", "bob")
    await coordinator.target(a, b, "alice")

    with pytest.raises(RequestValidationFailed):
        await coordinator.retarget(a, b, "alice")


# --- remove_target ------------------------------------------------------------

async def test_remove_target_cancels_edge(coordinator, make_swap, test_db):
    a, b = await _ids(make_swap, "alice", "bob")
    first = await coordinator.target(a, b, "alice")

    removed = await coordinator.remove_target(a, "alice")

    assert removed.id == first.edge.id
    assert removed.status == "cancelled"
    assert removed.proposal.status == "withdrawn"
    assert [h.action for h in await _history(test_db)] == ["targeted", "removed"]


async def test_remove_target_without_edge_is_noop(coordinator, make_swap, test_db, notifier):
    a, = await _ids(make_swap, "alice")

    assert await coordinator.remove_target(a, "alice") is None
    assert await _history(test_db) == []
    assert notifier.entries == []


async def test_remove_target_requires_ownership(coordinator, make_swap):
    a, b = await _ids(make_swap, "alice", "bob")
    await coordinator.target(a, b, "alice")

    with pytest.raises(ForbiddenError):
        await coordinator.remove_target(a, "bob")


# --- accept / reject ----------------------------------------------------------

async def test_only_target_owner_may_accept(coordinator, make_swap, test_db):
    a, b = await _ids(make_swap, "alice", "bob")
    first = await coordinator.target(a, b, "alice")

    with pytest.raises(ForbiddenError):
        await coordinator.accept(first.edge.id, "alice")

    assert (await _edges(test_db))[0].status == "active"


async def test_accept_resolved_edge_is_edge_not_active(coordinator, make_swap):
    a, b = await _ids(make_swap, "alice", "bob")
    first = await coordinator.target(a, b, "alice")
    await coordinator.reject(first.edge.id, "bob")

    with pytest.raises(EdgeNotActiveError):
        await coordinator.accept(first.edge.id, "bob")


async def test_accept_unknown_edge_is_not_found(coordinator, make_swap):
    await _ids(make_swap, "alice")

    with pytest.raises(ResourceNotFoundError):
        await coordinator.accept(uuid.uuid4(), "alice")


async def test_accept_cancels_stale_edges_around_both_swaps(coordinator, make_swap, test_db):
    a, b, x, d = await _ids(make_swap, "alice", "bob", "xavier", "dave")
    outgoing = await coordinator.target(a, x, "alice")
    incoming_to_b = await coordinator.target(d, b, "dave")
    proposal = await coordinator.target(b, a, "bob")

    outcome = await coordinator.accept(proposal.edge.id, "alice")

    assert set(outcome.cancelled_edge_ids) == {outgoing.edge.id, incoming_to_b.edge.id}
    statuses = {e.id: e.status for e in await _edges(test_db)}
    assert statuses[outgoing.edge.id] == "cancelled"
    assert statuses[incoming_to_b.edge.id] == "cancelled"
    assert statuses[proposal.edge.id] == "accepted"
    cancelled = [h for h in await _history(test_db) if h.action == "cancelled"]
    assert {h.details["reason"] for h in cancelled} == {"swap_no_longer_available"}


async def test_accept_rolls_back_when_lifecycle_hook_fails(make_swap, test_db, notifier):
    from swap_targeting.services.proposal_coordinator import ProposalLifecycleCoordinator

    class FailingLifecycle:
        async def advance_swap_state(self, swap_id, event):
            raise RuntimeError("swap service down")

    coordinator = ProposalLifecycleCoordinator(test_db, FailingLifecycle(), [notifier])
    a, b = await _ids(make_swap, "alice", "bob")
    edge_id = (await coordinator.target(a, b, "alice")).edge.id
    notifier.entries.clear()

    with pytest.raises(RuntimeError):
        await coordinator.accept(edge_id, "bob")

    assert (await _edges(test_db))[0].status == "active"
    assert (await _swap(test_db, b)).winner_edge_id is None
    assert [h.action for h in await _history(test_db)] == ["targeted"]
    assert notifier.entries == []


async def test_notification_failure_does_not_roll_back(make_swap, test_db):
    from swap_targeting.services.proposal_coordinator import ProposalLifecycleCoordinator
    from swap_targeting.services.swap_lifecycle import DatabaseSwapLifecycle

    class BrokenNotifier:
        async def notify(self, entry):
            raise ConnectionError("smtp unreachable")

    coordinator = ProposalLifecycleCoordinator(
        test_db, DatabaseSwapLifecycle(test_db), [BrokenNotifier()],
    )
    a, b = await _ids(make_swap, "alice", "bob")

    outcome = await coordinator.target(a, b, "alice")

    assert (await _edges(test_db))[0].id == outcome.edge.id


async def test_reject_reopens_first_match_target(coordinator, make_swap, test_db):
    a, b = await _ids(make_swap, "alice", "bob")
    first = await coordinator.target(a, b, "alice")

    outcome = await coordinator.reject(first.edge.id, "bob")

    assert outcome.edge.status == "rejected"
    assert outcome.edge.proposal.status == "rejected"
    assert (await _swap(test_db, b)).status == "available"


# --- check_eligibility --------------------------------------------------------

async def test_can_target_with_explicit_source(coordinator, make_swap):
    a, b = await _ids(make_swap, "alice", "bob")

    result = await coordinator.check_eligibility(b, "alice", a)

    assert result.decision.allowed
    assert result.source_swap_id == a


async def test_can_target_falls_back_to_first_available_swap(coordinator, make_swap):
    a, = await _ids(make_swap, "alice")
    await _ids(make_swap, "alice", status="accepted")
    b, = await _ids(make_swap, "bob")

    result = await coordinator.check_eligibility(b, "alice")

    assert result.decision.allowed
    assert result.source_swap_id == a


async def test_can_target_without_any_swap_is_unavailable(coordinator, make_swap):
    b, = await _ids(make_swap, "bob")

    result = await coordinator.check_eligibility(b, "alice")

    assert result.source_swap_id is None
    assert result.decision.reason is TargetingErrorCode.SWAP_UNAVAILABLE


async def test_can_target_reports_cycle_without_writing(coordinator, make_swap, test_db):
    a, b = await _ids(make_swap, "alice", "bob")
    await coordinator.target(a, b, "alice")

    result = await coordinator.check_eligibility(a, "bob", b)

    assert result.decision.reason is TargetingErrorCode.CIRCULAR_TARGETING
    assert len(await _edges(test_db)) == 1


async def test_can_target_same_target_is_already_targeting(coordinator, make_swap):
    a, b = await _ids(make_swap, "alice", "bob")
    await coordinator.target(a, b, "alice")

    result = await coordinator.check_eligibility(b, "alice", a)

    assert result.decision.reason is TargetingErrorCode.ALREADY_TARGETING


async def test_can_target_other_target_warns_about_retarget(coordinator, make_swap):
    a, b, c = await _ids(make_swap, "alice", "bob", "carol")
    await coordinator.target(a, b, "alice")

    result = await coordinator.check_eligibility(c, "alice", a)

    assert result.decision.allowed
    assert len(result.decision.warnings) == 1


async def test_can_target_foreign_source_is_forbidden(coordinator, make_swap):
    a, b = await _ids(make_swap, "alice", "bob")

    result = await coordinator.check_eligibility(b, "mallory", a)

    assert result.decision.reason is TargetingErrorCode.FORBIDDEN
