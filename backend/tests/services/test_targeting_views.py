"""Targeting view tests — denormalized per-swap and per-user views with placeholders."""

from datetime import timedelta

import pytest

from swap_targeting.core.errors import ResourceNotFoundError
from swap_targeting.services.targeting_views import UNKNOWN_USER, UNTITLED_BOOKING


async def test_swap_view_lists_incoming_with_counterpart_details(coordinator, views, make_swap, now):
    a = (await make_swap("alice", strategy="auction", auction_end_date=now + timedelta(days=1))).id
    b = (await make_swap("bob", owner_name="Bob B.", booking_title="Porto loft")).id
    await coordinator.target(b, a, "bob", message="Hi")

    view = await views.swap_view(a)

    assert view.has_active_targeting
    assert view.outgoing_target is None
    assert len(view.incoming_targets) == 1
    incoming = view.incoming_targets[0]
    assert incoming.message == "Hi"
    assert incoming.counterpart.swap_id == b
    assert incoming.counterpart.owner_name == "Bob B."
    assert incoming.counterpart.booking.title == "Porto loft"
    assert view.auction.strategy == "auction"
    assert view.auction.proposal_count == 1
    assert not view.auction.ended


async def test_swap_view_uses_placeholders_for_missing_rows(coordinator, views, make_swap):
    a = (await make_swap("alice")).id
    b = (await make_swap("bob")).id
    await coordinator.target(a, b, "alice")

    view = await views.swap_view(a)

    outgoing = view.outgoing_target
    assert outgoing.counterpart.swap_id == b
    assert outgoing.counterpart.owner_name == UNKNOWN_USER
    assert outgoing.counterpart.booking.title == UNTITLED_BOOKING
    assert outgoing.counterpart.booking.id is None


async def test_swap_view_ignores_inactive_edges(coordinator, views, make_swap):
    a = (await make_swap("alice")).id
    b = (await make_swap("bob")).id
    await coordinator.target(a, b, "alice")
    await coordinator.remove_target(a, "alice")

    view = await views.swap_view(b)

    assert not view.has_active_targeting
    assert view.incoming_targets == []


async def test_ended_auction_without_winner_awaits_selection(views, make_swap, now):
    a = (await make_swap("alice", strategy="auction", auction_end_date=now - timedelta(minutes=5))).id

    view = await views.swap_view(a)

    assert view.auction.ended
    assert view.auction.awaiting_selection


async def test_swap_view_unknown_swap_is_not_found(views, make_swap):
    import uuid

    with pytest.raises(ResourceNotFoundError):
        await views.swap_view(uuid.uuid4())


async def test_user_portfolio_unions_owned_swaps(coordinator, views, make_swap, now):
    a1 = (await make_swap("alice")).id
    a2 = (await make_swap("alice", strategy="auction", auction_end_date=now + timedelta(days=1))).id
    b = (await make_swap("bob")).id
    c = (await make_swap("carol")).id
    await coordinator.target(a1, b, "alice")
    await coordinator.target(b, a2, "bob")
    await coordinator.target(c, a2, "carol")

    portfolio = await views.user_portfolio("alice")

    assert [s.swap_id for s in portfolio.swaps] == [a1, a2]
    assert portfolio.outgoing_count == 1
    assert portfolio.incoming_count == 2
    assert portfolio.swaps[0].outgoing_target.counterpart.swap_id == b
    assert {t.counterpart.swap_id for t in portfolio.swaps[1].incoming_targets} == {b, c}


async def test_user_portfolio_without_swaps_is_empty(views):
    portfolio = await views.user_portfolio("nobody")

    assert portfolio.swaps == []
    assert portfolio.incoming_count == 0


async def test_targeted_by_paginates_oldest_first(coordinator, views, make_swap, now):
    a = (await make_swap("alice", strategy="auction", auction_end_date=now + timedelta(days=1))).id
    sources = [(await make_swap(owner)).id for owner in ("bob", "carol", "dave")]
    for source, owner in zip(sources, ("bob", "carol", "dave")):
        await coordinator.target(source, a, owner)

    items, total = await views.targeted_by(a, limit=2, offset=0)
    rest, _ = await views.targeted_by(a, limit=2, offset=2)

    assert total == 3
    assert [i.counterpart.swap_id for i in items + rest] == sources
