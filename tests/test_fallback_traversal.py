from evnetwork_mcp.client.fallback_traversal import subtree_sizes, traverse_members
from evnetwork_mcp.client.fragment_source import parse_root_snapshot
from evnetwork_mcp.models import TreeQuery

from tests.builders import nested_network, node


def q(side="both", min_depth=None, max_depth=None):
    return TreeQuery(root_id=1, side=side, min_depth=min_depth, max_depth=max_depth)


def test_preorder_left_before_right():
    members = traverse_members(parse_root_snapshot(nested_network()), q())
    assert [m.id for m in members] == [2, 4, 5, 8, 3, 6, 7]
    assert [m.level for m in members] == [1, 2, 2, 3, 1, 2, 2]


def test_positions_relative_to_parent_and_leg_relative_to_root():
    members = {m.id: m for m in traverse_members(parse_root_snapshot(nested_network()), q())}
    assert members[4].position == "left"
    assert members[5].position == "right"
    assert members[8].position == "left"
    assert members[8].leg == "left"
    assert members[7].position == "right"
    assert members[6].leg == "right"


def test_parents():
    members = {m.id: m for m in traverse_members(parse_root_snapshot(nested_network()), q())}
    assert (members[2].parent_id, members[2].parent_name) == (1, "You")
    assert (members[8].parent_id, members[8].parent_name) == (5, "Rahul Sharma")


def test_descendant_count_ignores_filters():
    members = {m.id: m for m in traverse_members(parse_root_snapshot(nested_network()), q(max_depth=2))}
    assert 8 not in members
    assert members[2].descendant_count == 3
    assert members[5].descendant_count == 1
    assert members[3].descendant_count == 2
    assert members[4].descendant_count == 0


def test_depth_bounds():
    snapshot = parse_root_snapshot(nested_network())
    assert [m.id for m in traverse_members(snapshot, q(min_depth=2))] == [4, 5, 8, 6, 7]
    assert [m.id for m in traverse_members(snapshot, q(max_depth=1))] == [2, 3]
    assert [m.id for m in traverse_members(snapshot, q(min_depth=3, max_depth=3))] == [8]


def test_side_filter():
    snapshot = parse_root_snapshot(nested_network())
    assert [m.id for m in traverse_members(snapshot, q("right"))] == [3, 6, 7]
    assert [m.id for m in traverse_members(snapshot, q("left"))] == [2, 4, 5, 8]


def test_inactive_flag_and_metric_carried():
    members = {m.id: m for m in traverse_members(parse_root_snapshot(nested_network()), q())}
    assert members[5].is_active is False
    assert str(members[4].metric_value) == "1500.00"


def test_root_only_tree_is_empty():
    assert traverse_members(parse_root_snapshot(node(1)), q()) == []


def test_repeated_id_emitted_once():
    raw = node(1, left_child=node(2, left_child=node(4)), right_child=node(3, right_child=node(4)))
    members = traverse_members(parse_root_snapshot(raw), q())
    assert [m.id for m in members] == [2, 4, 3]


def test_subtree_sizes():
    sizes = subtree_sizes(parse_root_snapshot(nested_network()))
    assert sizes == {1: 7, 2: 3, 4: 0, 5: 1, 8: 0, 3: 2, 6: 0, 7: 0}
