import json

import pytest

from evnetwork_mcp import snapshot_tool

from tests.builders import nested_network, paged_network


@pytest.fixture
def snapshot_file(tmp_path):
    def write(payload, name="snapshot.json"):
        path = tmp_path / name
        path.write_text(json.dumps(payload), encoding="utf-8")
        return str(path)

    return write


def test_members_json(snapshot_file, capsys):
    snapshot_tool.main([snapshot_file(paged_network()), "members", "--json"])
    members = json.loads(capsys.readouterr().out)
    assert [m["id"] for m in members] == [2, 3, 10, 11, 12, 13, 20, 21]
    by_id = {m["id"]: m for m in members}
    assert by_id[10]["parent_name"] == "Amit Kumar"
    assert by_id[10]["leg"] == "left"
    assert by_id[21]["level"] == 3


def test_members_text_with_filters(snapshot_file, capsys):
    snapshot_tool.main([snapshot_file(paged_network()), "members", "--side", "right", "--max-depth", "2"])
    out = capsys.readouterr().out
    assert "engine=merge" in out
    assert "Sneha Patel" in out
    assert "Member 20" in out
    assert "Member 21" not in out
    assert "2 member(s)" in out


def test_members_from_wrapped_response(snapshot_file, capsys):
    path = snapshot_file({"success": True, "data": nested_network()})
    snapshot_tool.main([path, "members", "--json"])
    members = json.loads(capsys.readouterr().out)
    assert [m["id"] for m in members] == [2, 4, 5, 8, 3, 6, 7]


def test_summary(snapshot_file, capsys):
    snapshot_tool.main([snapshot_file(paged_network()), "summary"])
    out = capsys.readouterr().out
    assert "engine: merge" in out
    assert "left child: 2 (Amit Kumar)" in out
    assert "page 1/2, 4 of 6 side member(s)" in out
    assert "skipped fragments: 0" in out


def test_summary_reports_fallback(snapshot_file, capsys):
    snapshot_tool.main([snapshot_file(nested_network()), "summary"])
    out = capsys.readouterr().out
    assert "engine: fallback" in out
    assert "no paginated side members" in out


def test_missing_file(tmp_path, capsys):
    with pytest.raises(SystemExit) as info:
        snapshot_tool.main([str(tmp_path / "missing.json"), "summary"])
    assert info.value.code == 1
    assert "File not found" in capsys.readouterr().err


def test_invalid_json(tmp_path, capsys):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(SystemExit):
        snapshot_tool.main([str(path), "members"])
    assert "Invalid JSON" in capsys.readouterr().err


def test_inverted_depth_bounds(snapshot_file, capsys):
    with pytest.raises(SystemExit):
        snapshot_tool.main([snapshot_file(paged_network()), "members", "--min-depth", "3", "--max-depth", "1"])
    assert "ERROR" in capsys.readouterr().err


def test_snapshot_without_id(snapshot_file, capsys):
    with pytest.raises(SystemExit):
        snapshot_tool.main([snapshot_file({"left_child": None}), "summary"])
    assert "ERROR" in capsys.readouterr().err
