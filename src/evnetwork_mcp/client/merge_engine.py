"""Fragment merge: direct children + side-member pages -> one member list.

Three phases, run fresh on every call:

  A) Direct children. Each allowed leg's direct child is emitted at level 1.
     Children whose descendants are served as pages are not walked; legacy
     children are walked recursively.
  B) Side-member pages. Fragments of every collection serving an allowed
     leg are appended in page order, skipping ids already seen and
     fragments outside the depth bounds.
  C) Safety filter. The accumulated list is re-checked against the side
     filter and depth bounds. Fragments whose ``side`` tag disagrees with
     the leg that delivered them are dropped here.

Every id belongs to exactly one leg, decided from the whole snapshot
before any phase runs and regardless of the side filter (see
:func:`leg_owners`). An entry delivered under any other leg is rejected,
so ``both`` is always the disjoint union of ``left`` and ``right``.

The function is pure: same snapshot and query give the same list in the
same order. No state survives between calls.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Optional, Set, Tuple

from ..models import (
    SIDES,
    ChildSnapshot,
    Member,
    MemberFragment,
    Paged,
    RootSnapshot,
    Side,
    TreeQuery,
)
from .api_client_core import _ClientLogger
from .fallback_traversal import subtree_sizes, walk_structural
from .fragment_source import leg_collections
from .parent_resolver import build_parent_names, resolve_parent_name

logger = _ClientLogger("MERGE")


def _structural_descendants(node: ChildSnapshot, sizes: Dict[int, int]) -> int:
    """Reported counts first, then page totals, then the nested subtree size."""
    reported = node.reported_descendants
    if reported is not None:
        return reported
    paged_total = sum(
        coll.envelope.count
        for coll in (node.left_side_members, node.right_side_members)
        if isinstance(coll, Paged)
    )
    if paged_total:
        return paged_total
    return sizes.get(node.node_id, 0)


def leg_owners(snapshot: RootSnapshot) -> Dict[int, Side]:
    """Map every id in ``snapshot`` to the one leg allowed to emit it.

    Claims are taken in a fixed order, first claim wins:

    1. structural nodes under each leg's direct child (left, then right)
    2. tagged fragments, by their own ``side``
    3. untagged fragments, by the first leg whose collections carry them

    The root is never owned.
    """
    owners: Dict[int, Side] = {}

    def _claim(node: ChildSnapshot, leg: Side) -> None:
        owners.setdefault(node.node_id, leg)
        for _, child in node.children():
            _claim(child, leg)

    for leg in SIDES:
        child = snapshot.child(leg)
        if child is not None:
            _claim(child, leg)

    delivered = [(leg, f) for leg in SIDES for c in leg_collections(snapshot, leg) for f in c.fragments]
    for _, fragment in delivered:
        if fragment.side is not None:
            owners.setdefault(fragment.node_id, fragment.side)
    for leg, fragment in delivered:
        if fragment.side is None:
            owners.setdefault(fragment.node_id, leg)

    owners.pop(snapshot.node_id, None)
    return owners


def member_from_fragment(
    fragment: MemberFragment,
    leg: Side,
    names: Dict[int, str],
) -> Member:
    """Build a Member from a side-member fragment delivered under ``leg``."""
    return Member(
        id=fragment.node_id,
        display_name=fragment.user_name or "",
        user_id=fragment.user_id,
        joined_at=fragment.date_joined,
        # ``side`` is the root-relative leg, not the slot under the parent
        position=fragment.position,
        leg=fragment.side or leg,
        metric_value=fragment.total_earnings if fragment.total_earnings is not None else Decimal("0"),
        level=fragment.level,
        descendant_count=(fragment.left_count or 0) + (fragment.right_count or 0),
        is_active=fragment.is_active_buyer,
        parent_id=fragment.parent,
        parent_name=resolve_parent_name(fragment.parent, fragment.parent_name, names),
        referral_code=fragment.referral_code,
    )


def _safety_filter(
    entries: List[Tuple[Side, Member]],
    query: TreeQuery,
    owners: Dict[int, Side],
) -> List[Member]:
    allowed = set(query.legs)
    kept: List[Member] = []
    for delivered_leg, member in entries:
        owner = owners.get(member.id)
        if owner != delivered_leg:
            logger.warning(
                f"Dropping node {member.id}: belongs to the {owner} leg "
                f"but delivered under the {delivered_leg} leg"
            )
            continue
        if member.leg != delivered_leg:
            logger.warning(
                f"Dropping node {member.id}: tagged side={member.leg!r} "
                f"but delivered under the {delivered_leg} leg"
            )
            continue
        if member.leg not in allowed:
            logger.warning(f"Dropping node {member.id}: side {member.leg!r} outside filter {query.side!r}")
            continue
        if not query.depth_allows(member.level):
            logger.warning(
                f"Dropping node {member.id}: level {member.level} outside "
                f"[{query.min_depth}, {query.max_depth}]"
            )
            continue
        kept.append(member)
    return kept


def merge_members(
    snapshot: RootSnapshot,
    query: TreeQuery,
    parent_names: Optional[Dict[int, str]] = None,
) -> List[Member]:
    """Merge direct children and side-member pages into one filtered list.

    Args:
        snapshot: Normalized RootSnapshot (see ``fragment_source``)
        query: Side filter and depth bounds to apply
        parent_names: Optional prebuilt id -> name lookup; built from the
            snapshot when omitted

    Returns:
        Members in emission order: left leg structure, right leg structure,
        then left pages, then right pages. The root is never included.
    """
    names = parent_names if parent_names is not None else build_parent_names(snapshot)
    owners = leg_owners(snapshot)
    processed: Set[int] = {snapshot.node_id}
    entries: List[Tuple[Side, Member]] = []

    # Phase A: direct children (and legacy nested descendants)
    sizes = subtree_sizes(snapshot)
    for leg in query.legs:
        child = snapshot.child(leg)
        if child is None:
            continue
        emitted: List[Member] = []
        walk_structural(
            child, snapshot, 1, leg, query, processed, emitted,
            lambda n: _structural_descendants(n, sizes),
            stop_at_pages=True,
        )
        entries.extend((leg, m) for m in emitted)

    # Phase B: side-member pages
    for leg in query.legs:
        for coll in leg_collections(snapshot, leg):
            for fragment in coll.fragments:
                if not query.depth_allows(fragment.level):
                    continue
                if fragment.node_id in processed:
                    continue
                if owners.get(fragment.node_id) != leg:
                    logger.warning(
                        f"Skipping node {fragment.node_id} in the {leg} pages: "
                        f"it belongs to the {owners.get(fragment.node_id)} leg"
                    )
                    continue
                # A mis-tagged copy is left unrecorded so a correctly
                # tagged copy of the same node can still be taken.
                if fragment.side is None or fragment.side == leg:
                    processed.add(fragment.node_id)
                entries.append((leg, member_from_fragment(fragment, leg, names)))

    # Phase C: validation pass
    return _safety_filter(entries, query, owners)
