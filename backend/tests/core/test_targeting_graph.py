"""Targeting graph tests — adjacency building and bounded reachability."""

import uuid

from swap_targeting.core.targeting_graph import (
    build_adjacency, edge_count, find_path, would_close_cycle,
)


def _ids(n):
    return [uuid.uuid4() for _ in range(n)]


def test_build_adjacency_groups_targets_by_source():
    a, b, c = _ids(3)
    adj = build_adjacency([(a, b), (a, c), (b, c)])
    assert adj == {a: [b, c], b: [c]}
    assert edge_count(adj) == 3


def test_build_adjacency_excludes_source_edges():
    a, b, c = _ids(3)
    adj = build_adjacency([(a, b), (b, c)], exclude_source=a)
    assert adj == {b: [c]}


def test_find_path_returns_chain():
    a, b, c, d = _ids(4)
    adj = build_adjacency([(a, b), (b, c), (c, d)])
    assert find_path(adj, a, d) == [a, b, c, d]


def test_find_path_none_when_unreachable():
    a, b, c = _ids(3)
    adj = build_adjacency([(a, b), (c, b)])
    assert find_path(adj, a, c) is None


def test_find_path_same_node():
    a, = _ids(1)
    assert find_path({}, a, a) == [a]


def test_three_swap_cycle_is_detected():
    a, b, c = _ids(3)
    adj = build_adjacency([(a, b), (b, c)])
    assert would_close_cycle(adj, c, a)


def test_two_swap_cycle_is_detected():
    a, b = _ids(2)
    adj = build_adjacency([(a, b)])
    assert would_close_cycle(adj, b, a)


def test_no_cycle_on_fan_in():
    a, b, c = _ids(3)
    adj = build_adjacency([(a, c), (b, c)])
    assert not would_close_cycle(adj, a, b)


def test_long_chain_does_not_recurse():
    nodes = _ids(5000)
    adj = build_adjacency(zip(nodes, nodes[1:]))
    assert would_close_cycle(adj, nodes[-1], nodes[0])


def test_diamond_visits_each_node_once():
    a, b, c, d, e = _ids(5)
    adj = build_adjacency([(a, b), (a, c), (b, d), (c, d)])
    assert find_path(adj, a, e) is None
    assert find_path(adj, a, d)[-1] == d
