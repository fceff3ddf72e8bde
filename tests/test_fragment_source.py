import pytest

from evnetwork_mcp.client.fragment_source import leg_collections, parse_root_snapshot
from evnetwork_mcp.models import Paged, Unpaged

from tests.builders import envelope, fragment, nested_network, node, paged_network


def test_envelope_becomes_paged_with_metadata():
    snapshot = parse_root_snapshot(paged_network())
    coll = snapshot.left_child.left_side_members
    assert isinstance(coll, Paged)
    assert coll.envelope.count == 6
    assert coll.envelope.total_pages == 2
    assert coll.envelope.next is not None
    assert coll.envelope.previous is None
    assert [f.node_id for f in coll.fragments] == [10, 11, 12, 13]


def test_plain_list_becomes_unpaged():
    raw = node(1, left_child=node(2, left_side_members=[fragment(10, 2)]))
    coll = parse_root_snapshot(raw).left_child.left_side_members
    assert isinstance(coll, Unpaged)
    assert [f.node_id for f in coll.fragments] == [10]


def test_malformed_fragments_skipped_and_counted():
    results = [
        fragment(10, 2),
        {"user_id": 5, "level": 2},  # no node_id
        {"node_id": 11, "level": 2},  # no user_id
        "garbage",
        fragment(12, "deep"),  # level not an int
        fragment(13, 3, side="upward"),
        fragment(14, 3),
    ]
    snapshot = parse_root_snapshot(node(1, left_child=node(2, left_side_members=envelope(results))))
    assert [f.node_id for f in snapshot.left_child.left_side_members.fragments] == [10, 14]
    assert snapshot.skipped_fragments == 5


def test_fragment_defaults_and_aliases():
    raw = node(
        1,
        left_child=node(
            2,
            left_side_members=[
                {"node_id": 10, "user_id": 7, "name": "Alias Name", "parent_id": 2, "side": "LEFT"}
            ],
        ),
    )
    (frag,) = parse_root_snapshot(raw).left_child.left_side_members.fragments
    assert frag.level == 0
    assert frag.user_name == "Alias Name"
    assert frag.parent == 2
    assert frag.side == "left"
    assert frag.parent_name is None
    assert frag.is_active_buyer is False


def test_paginated_flag_from_own_envelope():
    snapshot = parse_root_snapshot(paged_network())
    assert snapshot.left_child.has_paginated_descendants is True
    assert snapshot.right_child.has_paginated_descendants is True


def test_paginated_flag_false_for_legacy_child():
    raw = node(1, left_child=node(2, left_side_members=[fragment(10, 2)], left_child=node(10)))
    assert parse_root_snapshot(raw).left_child.has_paginated_descendants is False


def test_paginated_flag_from_root_envelope():
    raw = node(1, left_child=node(2), right_child=node(3), left_side_members=envelope([]))
    snapshot = parse_root_snapshot(raw)
    assert snapshot.left_child.has_paginated_descendants is True
    assert snapshot.right_child.has_paginated_descendants is False


def test_children_object_shape():
    snapshot = parse_root_snapshot(nested_network())
    assert snapshot.left_child.node_id == 2
    assert snapshot.left_child.right_child.left_child.node_id == 8
    assert snapshot.right_child.position == "right"
    assert snapshot.has_side_member_fields is False


def test_side_member_fields_detected_anywhere():
    assert parse_root_snapshot(paged_network()).has_side_member_fields is True
    raw = node(1, left_child=node(2, left_child=node(4, right_side_members=[])))
    assert parse_root_snapshot(raw).has_side_member_fields is True


def test_child_without_id_is_dropped():
    raw = node(1, left_child={"user_name": "No Id"}, right_child=node(3))
    snapshot = parse_root_snapshot(raw)
    assert snapshot.left_child is None
    assert snapshot.right_child.node_id == 3
    assert snapshot.skipped_fragments == 1


def test_root_without_id_raises():
    with pytest.raises(ValueError):
        parse_root_snapshot({"user_name": "nobody"})
    with pytest.raises(ValueError):
        parse_root_snapshot(["not", "an", "object"])


def test_unknown_side_member_shape_ignored():
    raw = node(1, left_child=node(2, left_side_members={"unexpected": True}))
    snapshot = parse_root_snapshot(raw)
    assert snapshot.left_child.left_side_members is None
    assert snapshot.has_side_member_fields is False


def test_leg_collections_root_then_child():
    raw = node(
        1,
        left_child=node(2, left_side_members=[fragment(11, 2)], right_side_members=[fragment(12, 2)]),
        left_side_members=envelope([fragment(10, 2)]),
    )
    snapshot = parse_root_snapshot(raw)
    colls = leg_collections(snapshot, "left")
    assert [[f.node_id for f in c.fragments] for c in colls] == [[10], [11]]
    assert leg_collections(snapshot, "right") == []


def test_envelope_lookup():
    snapshot = parse_root_snapshot(paged_network())
    assert snapshot.envelope("left").count == 6
    assert snapshot.envelope("right").count == 2
    assert parse_root_snapshot(nested_network()).envelope("left") is None
