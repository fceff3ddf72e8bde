"""Input boundary: turn raw tree JSON into typed snapshots.

The API delivers one RootSnapshot per request:

    {
      "id": 1, "user_name": "...", ...,
      "left_child":  {... , "left_side_members":  PageEnvelope | [fragment, ...]},
      "right_child": {... , "right_side_members": PageEnvelope | [fragment, ...]}
    }

Older deployments send a fully nested tree instead (``left_child`` /
``right_child`` all the way down, or ``children: {left, right}``).

Everything shape-dependent is settled here, once:
- side collections become ``Paged`` or ``Unpaged``
- each child gets ``has_paginated_descendants``
- malformed fragments are dropped and logged, never raised
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from pydantic import ValidationError

from ..models import (
    SIDES,
    ChildSnapshot,
    MemberFragment,
    PageEnvelope,
    Paged,
    RootSnapshot,
    Side,
    SideCollection,
    Unpaged,
)
from .api_client_core import _ClientLogger

JsonDict = Dict[str, Any]

_ENVELOPE_KEYS = ("count", "page", "page_size", "total_pages", "next", "previous")


def _first(raw: JsonDict, *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def _as_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _as_side(value: Any) -> Optional[Side]:
    if isinstance(value, str) and value.strip().lower() in SIDES:
        return value.strip().lower()  # type: ignore[return-value]
    return None


class SnapshotParser:
    """Parses one RootSnapshot payload. Not reused across payloads."""

    def __init__(self, component: str = "FRAGMENTS") -> None:
        self.logger = _ClientLogger(component)
        self.skipped = 0

    # ---------------- fragments ----------------

    def parse_fragment(self, raw: Any) -> Optional[MemberFragment]:
        """Validate one side-member fragment; None (logged) when malformed."""
        if not isinstance(raw, dict):
            self.skipped += 1
            self.logger.warning(f"Skipping non-object fragment: {raw!r}")
            return None
        if raw.get("node_id") is None or raw.get("user_id") is None:
            self.skipped += 1
            self.logger.warning(
                f"Skipping fragment without node_id/user_id: "
                f"node_id={raw.get('node_id')!r} user_id={raw.get('user_id')!r}"
            )
            return None
        try:
            return MemberFragment.model_validate(raw)
        except ValidationError as e:
            self.skipped += 1
            self.logger.warning(
                f"Skipping malformed fragment node_id={raw.get('node_id')!r}: "
                f"{e.error_count()} validation error(s)"
            )
            return None

    def parse_side_collection(self, raw: Any, where: str) -> Optional[SideCollection]:
        """Resolve a side-member field into ``Paged`` / ``Unpaged`` (None when absent)."""
        if raw is None:
            return None

        if isinstance(raw, list):
            items = [f for f in (self.parse_fragment(r) for r in raw) if f is not None]
            return Unpaged(items=items)

        if isinstance(raw, dict) and isinstance(raw.get("results"), list):
            results = [f for f in (self.parse_fragment(r) for r in raw["results"]) if f is not None]
            meta = {k: raw[k] for k in _ENVELOPE_KEYS if raw.get(k) is not None}
            try:
                envelope = PageEnvelope.model_validate({**meta, "results": []})
            except ValidationError:
                self.logger.warning(f"Malformed page envelope metadata at {where}; using defaults")
                envelope = PageEnvelope()
            return Paged(envelope=envelope.model_copy(update={"results": results}))

        self.logger.warning(f"Ignoring unrecognised side-member shape at {where}: {type(raw).__name__}")
        return None

    # ---------------- structural nodes ----------------

    @staticmethod
    def _raw_child(raw: JsonDict, side: Side) -> Any:
        child = raw.get(f"{side}_child")
        if child is None:
            nested = raw.get("children")
            if isinstance(nested, dict):
                child = nested.get(side)
        return child

    def _node_fields(self, raw: JsonDict, node_id: int, position: Optional[Side]) -> JsonDict:
        return {
            "node_id": node_id,
            "user_id": _as_int(raw.get("user_id")),
            "name": str(_first(raw, "user_name", "name", "full_name", "username") or ""),
            "position": position or _as_side(raw.get("position")) or _as_side(raw.get("side")),
            "level": _as_int(raw.get("level")),
            "joined_at": _first(raw, "date_joined", "joined_at", "joinedAt"),
            "metric_value": _as_decimal(_first(raw, "total_earnings", "pv")),
            "left_count": _as_int(raw.get("left_count")),
            "right_count": _as_int(raw.get("right_count")),
            "is_active": bool(_first(raw, "is_active_buyer", "is_active", "isActive")),
            "referral_code": raw.get("referral_code"),
        }

    def parse_node(
        self,
        raw: Any,
        position: Optional[Side],
        where: str,
        leg_paged: bool = False,
    ) -> Optional[ChildSnapshot]:
        """Parse a structural child; nested children are parsed recursively.

        ``leg_paged`` marks that the enclosing root already serves this leg's
        descendants as pages.
        """
        if raw is None:
            return None
        if not isinstance(raw, dict):
            self.logger.warning(f"Ignoring non-object node at {where}")
            return None

        node_id = _as_int(_first(raw, "node_id", "id"))
        if node_id is None:
            self.skipped += 1
            self.logger.warning(f"Skipping node without integer id at {where}: {raw.get('id')!r}")
            return None

        left_members = self.parse_side_collection(raw.get("left_side_members"), f"{where}.left_side_members")
        right_members = self.parse_side_collection(raw.get("right_side_members"), f"{where}.right_side_members")
        has_pages = leg_paged or isinstance(left_members, Paged) or isinstance(right_members, Paged)

        left_child = self.parse_node(self._raw_child(raw, "left"), "left", f"{where}.left")
        right_child = self.parse_node(self._raw_child(raw, "right"), "right", f"{where}.right")

        return ChildSnapshot(
            **self._node_fields(raw, node_id, position),
            left_child=left_child,
            right_child=right_child,
            left_side_members=left_members,
            right_side_members=right_members,
            has_paginated_descendants=has_pages,
        )

    def parse_root(self, raw: Any) -> RootSnapshot:
        """Parse a full RootSnapshot payload. Raises ValueError when the root itself is unusable."""
        if not isinstance(raw, dict):
            raise ValueError("Tree snapshot must be a JSON object")

        node_id = _as_int(_first(raw, "node_id", "id"))
        if node_id is None:
            raise ValueError(f"Tree snapshot root has no integer id: {raw.get('id')!r}")

        root_members: dict[str, Optional[SideCollection]] = {}
        for side in SIDES:
            root_members[side] = self.parse_side_collection(
                raw.get(f"{side}_side_members"), f"root.{side}_side_members"
            )

        children: dict[str, Optional[ChildSnapshot]] = {}
        for side in SIDES:
            children[side] = self.parse_node(
                self._raw_child(raw, side),
                side,
                f"root.{side}",
                leg_paged=isinstance(root_members[side], Paged),
            )

        fields = self._node_fields(raw, node_id, None)
        fields["position"] = None
        fields["level"] = 0
        return RootSnapshot(
            **fields,
            left_child=children["left"],
            right_child=children["right"],
            left_side_members=root_members["left"],
            right_side_members=root_members["right"],
            has_paginated_descendants=any(isinstance(c, Paged) for c in root_members.values()),
            skipped_fragments=self.skipped,
        )


def parse_root_snapshot(raw: Any) -> RootSnapshot:
    """Normalize a RootSnapshot payload (see module docstring)."""
    return SnapshotParser().parse_root(raw)


def leg_collections(snapshot: RootSnapshot, leg: Side) -> list[SideCollection]:
    """Side-member collections serving ``leg``: the root's field, then the leg child's."""
    found: list[SideCollection] = []
    own = snapshot.side_members(leg)
    if own is not None:
        found.append(own)
    direct = snapshot.child(leg)
    if direct is not None:
        coll = direct.side_members(leg)
        if coll is not None:
            found.append(coll)
    return found
