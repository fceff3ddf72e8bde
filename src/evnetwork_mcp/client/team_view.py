"""A paginated team view over one root: cursors, last good page, refresh."""

from __future__ import annotations

from typing import Any, Dict, Optional

from ..models import (
    AuthenticationError,
    EVNetworkError,
    MaterializedPage,
    NodeNotFoundError,
    PageFetchError,
    SideFilter,
)
from .api_client import NetworkClient, materialize
from .api_client_core import _ClientLogger
from .pagination import PaginationCoordinator

logger = _ClientLogger("TEAM_VIEW")


class TeamView:
    """Keeps the last successfully merged page visible while new pages load.

    Each refresh is tagged with a generation number. A fetch that completes
    after a newer refresh has started is discarded, so a slow response can
    never overwrite newer state. Materialization itself runs from scratch
    on every refresh.
    """

    def __init__(
        self,
        client: NetworkClient,
        root_id: int,
        pagination: Optional[PaginationCoordinator] = None,
    ) -> None:
        self.client = client
        self.root_id = root_id
        self.pagination = pagination or PaginationCoordinator()
        self.last_page: Optional[MaterializedPage] = None
        self.last_error: Optional[str] = None
        self._generation = 0

    @property
    def stale(self) -> bool:
        """True when the displayed page survived a failed refresh."""
        return self.last_page is not None and self.last_error is not None

    async def refresh(self, _allow_reclamp: bool = True) -> Optional[MaterializedPage]:
        """Fetch the current page and replace the displayed list.

        Raises:
            PageFetchError: the fetch failed; ``last_page`` is left untouched.
        """
        self._generation += 1
        generation = self._generation
        query = self.pagination.build_query(self.root_id)

        try:
            snapshot = await self.client.fetch_snapshot(query)
        except EVNetworkError as err:
            if generation != self._generation:
                logger.info(f"Ignoring failure of superseded fetch (page {query.page}): {err}")
                return self.last_page
            self.last_error = f"{type(err).__name__}: {err}"
            retryable = not isinstance(err, (AuthenticationError, NodeNotFoundError))
            logger.warning(
                f"Page fetch failed for root {self.root_id} page {query.page}; "
                f"keeping last good page. {self.last_error}"
            )
            raise PageFetchError(self.last_error, retryable=retryable) from err

        if generation != self._generation:
            logger.info(f"Discarding superseded fetch for root {self.root_id} page {query.page}")
            return self.last_page

        self.pagination.observe(snapshot)
        if _allow_reclamp and query.page != self._clamped_page():
            # The requested page turned out to be past the end
            return await self.refresh(_allow_reclamp=False)

        page = materialize(snapshot, query)
        self.last_page = page
        self.last_error = None
        return page

    def _clamped_page(self) -> int:
        self.pagination.clamp()
        return self.pagination.current_page

    async def next_page(self) -> Optional[MaterializedPage]:
        if self.pagination.next_page():
            return await self.refresh()
        return self.last_page

    async def previous_page(self) -> Optional[MaterializedPage]:
        if self.pagination.previous_page():
            return await self.refresh()
        return self.last_page

    async def set_side_filter(self, side_filter: SideFilter) -> Optional[MaterializedPage]:
        if self.pagination.set_side_filter(side_filter) or self.last_page is None:
            return await self.refresh()
        return self.last_page

    async def set_page_size(self, page_size: int) -> Optional[MaterializedPage]:
        if self.pagination.set_page_size(page_size) or self.last_page is None:
            return await self.refresh()
        return self.last_page

    async def set_depth_bounds(
        self, min_depth: Optional[int], max_depth: Optional[int]
    ) -> Optional[MaterializedPage]:
        if self.pagination.set_depth_bounds(min_depth, max_depth) or self.last_page is None:
            return await self.refresh()
        return self.last_page

    def status(self) -> Dict[str, Any]:
        return {
            "root_id": self.root_id,
            "pagination": self.pagination.status(),
            "has_page": self.last_page is not None,
            "member_count": len(self.last_page.members) if self.last_page else 0,
            "engine": self.last_page.engine if self.last_page else None,
            "stale": self.stale,
            "last_error": self.last_error,
        }
