from evnetwork_mcp.client.fragment_source import parse_root_snapshot
from evnetwork_mcp.client.parent_resolver import build_parent_names, resolve_parent_name

from tests.builders import fragment, nested_network, node, paged_network


def test_walks_root_children_and_one_nested_level():
    names = build_parent_names(parse_root_snapshot(nested_network()))
    assert names[1] == "You"
    assert names[2] == "Amit Kumar"
    assert names[5] == "Rahul Sharma"
    assert names[7] == "Anita Desai"
    # great-grandchildren are out of reach
    assert 8 not in names


def test_fragment_names_fill_gaps():
    names = build_parent_names(parse_root_snapshot(paged_network()))
    assert names[2] == "Amit Kumar"
    assert names[10] == "Member 10"
    assert names[21] == "Member 21"


def test_structural_names_win_over_fragments():
    raw = node(1, left_child=node(2, "Structural", left_side_members=[fragment(2, 1, name="From Page")]))
    assert build_parent_names(parse_root_snapshot(raw))[2] == "Structural"


def test_empty_names_not_recorded():
    raw = node(1, "", left_child=node(2, ""))
    assert build_parent_names(parse_root_snapshot(raw)) == {}


def test_resolve_parent_name_precedence():
    names = {2: "Amit Kumar"}
    assert resolve_parent_name(2, "Own Label", names) == "Own Label"
    assert resolve_parent_name(2, None, names) == "Amit Kumar"
    assert resolve_parent_name(2, "", names) == "Amit Kumar"
    assert resolve_parent_name(9, None, names) == ""
    assert resolve_parent_name(None, None, names) == ""
