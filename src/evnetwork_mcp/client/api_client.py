"""EV network API client - snapshot fetching and engine dispatch."""

from typing import Any

from ..models import MaterializedPage, NetworkError, RootSnapshot, Side, TreeQuery
from .api_client_core import NetworkClientCore, _ClientLogger
from .fallback_traversal import traverse_members
from .fragment_source import parse_root_snapshot
from .merge_engine import merge_members
from .parent_resolver import build_parent_names


def _envelope_summary(snapshot: RootSnapshot, leg: Side) -> dict[str, Any] | None:
    envelope = snapshot.envelope(leg)
    if envelope is None:
        return None
    return envelope.model_dump(exclude={"results"})


def materialize(snapshot: RootSnapshot, query: TreeQuery) -> MaterializedPage:
    """Run the right engine for ``snapshot``.

    Snapshots carrying any side-member collection go through the merge
    engine; fully nested legacy trees go through the fallback traversal.
    """
    if snapshot.has_side_member_fields:
        members = merge_members(snapshot, query, build_parent_names(snapshot))
        engine = "merge"
    else:
        members = traverse_members(snapshot, query)
        engine = "fallback"

    return MaterializedPage(
        query=query,
        members=members,
        engine=engine,
        left_envelope=_envelope_summary(snapshot, "left"),
        right_envelope=_envelope_summary(snapshot, "right"),
        skipped_fragments=snapshot.skipped_fragments,
    )


class NetworkClient(NetworkClientCore):
    """High-level client: fetch a RootSnapshot and materialize its members."""

    async def fetch_snapshot(self, query: TreeQuery, max_retries: int | None = None) -> RootSnapshot:
        """Fetch and normalize the snapshot for ``query``."""
        payload = await self.fetch_tree_payload(query, max_retries=max_retries)
        try:
            snapshot = parse_root_snapshot(payload)
        except ValueError as err:
            raise NetworkError(f"Malformed tree snapshot for root {query.root_id}: {err}") from err

        if snapshot.skipped_fragments:
            _ClientLogger().warning(
                f"Root {query.root_id}: skipped {snapshot.skipped_fragments} malformed fragment(s)"
            )
        return snapshot

    async def get_members(self, query: TreeQuery, max_retries: int | None = None) -> MaterializedPage:
        """Fetch one page and return the materialized member list."""
        snapshot = await self.fetch_snapshot(query, max_retries=max_retries)
        return materialize(snapshot, query)
