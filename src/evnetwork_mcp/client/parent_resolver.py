"""Parent name lookup for fragments that arrive without ``parent_name``."""

from __future__ import annotations

from typing import Dict, Iterable, Optional

from ..models import SIDES, ChildSnapshot, RootSnapshot, SideCollection


def _collections(node: ChildSnapshot) -> Iterable[SideCollection]:
    for side in SIDES:
        coll = node.side_members(side)
        if coll is not None:
            yield coll


def build_parent_names(snapshot: RootSnapshot) -> Dict[int, str]:
    """Build an ``id -> display name`` map from what the snapshot carries locally.

    Structural nodes are walked to a fixed depth: the root, its direct
    children and their children (present only in legacy nested shapes).
    Names of fragments on the pages already in hand then fill any gaps;
    structural names always win.
    """
    names: Dict[int, str] = {}

    def _add(node_id: Optional[int], name: Optional[str]) -> None:
        if node_id is None or not name:
            return
        names.setdefault(node_id, name)

    _add(snapshot.node_id, snapshot.name)
    direct = [child for _, child in snapshot.children()]
    for child in direct:
        _add(child.node_id, child.name)
    for child in direct:
        for _, grandchild in child.children():
            _add(grandchild.node_id, grandchild.name)

    for holder in [snapshot, *direct]:
        for coll in _collections(holder):
            for fragment in coll.fragments:
                _add(fragment.node_id, fragment.user_name)

    return names


def resolve_parent_name(
    parent_id: Optional[int],
    own_name: Optional[str],
    names: Dict[int, str],
) -> str:
    """Fragment's own ``parent_name``, else the lookup, else empty."""
    if own_name:
        return own_name
    if parent_id is None:
        return ""
    return names.get(parent_id, "")
