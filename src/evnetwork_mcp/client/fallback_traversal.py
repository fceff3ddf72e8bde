"""Full recursive traversal of a nested (non-paginated) tree snapshot.

Used when the API returns no side-member collections at all: the older
response shape, or a tree that is already fully materialized locally.
The output is interchangeable with :func:`merge_members` for the same
query: same depth bounds, same side filter, same ordering rules
(pre-order, left before right), no duplicate ids.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Callable, Dict, List, Optional, Set

from ..models import ChildSnapshot, Member, RootSnapshot, Side, TreeQuery


def subtree_sizes(root: ChildSnapshot) -> Dict[int, int]:
    """Map every node id under ``root`` to the number of nodes below it (unfiltered)."""
    sizes: Dict[int, int] = {}

    def _count(node: ChildSnapshot) -> int:
        total = 0
        for _, child in node.children():
            total += 1 + _count(child)
        # First visit wins if a malformed payload repeats an id
        sizes.setdefault(node.node_id, total)
        return total

    _count(root)
    return sizes


def member_from_node(
    node: ChildSnapshot,
    parent: ChildSnapshot,
    level: int,
    leg: Side,
    descendant_count: int,
) -> Member:
    """Build a Member from a structural node."""
    return Member(
        id=node.node_id,
        display_name=node.name,
        user_id=node.user_id,
        joined_at=node.joined_at,
        position=node.position,
        leg=leg,
        metric_value=node.metric_value if node.metric_value is not None else Decimal("0"),
        level=level,
        descendant_count=descendant_count,
        is_active=node.is_active,
        parent_id=parent.node_id,
        parent_name=parent.name,
        referral_code=node.referral_code,
    )


def walk_structural(
    node: ChildSnapshot,
    parent: ChildSnapshot,
    level: int,
    leg: Side,
    query: TreeQuery,
    processed: Set[int],
    out: List[Member],
    count_descendants: Callable[[ChildSnapshot], int],
    stop_at_pages: bool = False,
) -> None:
    """Pre-order walk of ``node`` and its nested children.

    Every visited node is recorded in ``processed``; only nodes inside the
    depth bounds are appended to ``out``. Recursion continues below nodes
    that are too shallow, and stops once ``max_depth`` is reached. With
    ``stop_at_pages`` the walk does not descend into nodes whose
    descendants are served as pages.
    """
    if node.node_id in processed:
        return
    processed.add(node.node_id)

    if query.depth_allows(level):
        out.append(member_from_node(node, parent, level, leg, count_descendants(node)))

    if stop_at_pages and node.has_paginated_descendants:
        return
    if query.max_depth is not None and level >= query.max_depth:
        return

    for _, child in node.children():
        walk_structural(
            child, node, level + 1, leg, query, processed, out,
            count_descendants, stop_at_pages,
        )


def traverse_members(snapshot: RootSnapshot, query: TreeQuery) -> List[Member]:
    """Materialize members by walking the nested tree; the root is never emitted.

    ``descendant_count`` is the size of each node's full subtree, independent
    of the depth and side filters.
    """
    sizes = subtree_sizes(snapshot)
    processed: Set[int] = {snapshot.node_id}
    members: List[Member] = []

    for leg in query.legs:
        child: Optional[ChildSnapshot] = snapshot.child(leg)
        if child is None:
            continue
        walk_structural(
            child, snapshot, 1, leg, query, processed, members,
            lambda n: sizes.get(n.node_id, 0),
        )

    return members
