"""EV network MCP server implementation using FastMCP."""

import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Literal

from fastmcp import FastMCP

from . import __version__
from .client import AdaptiveRateLimiter, NetworkClient, PaginationCoordinator, TeamView
from .config import ServerConfig, setup_logging
from .models import (
    AuthenticationError,
    EVNetworkError,
    MaterializedPage,
    NodeNotFoundError,
    PageFetchError,
    TreeQuery,
)

logger = logging.getLogger(__name__)

# Global client instance
_client: NetworkClient | None = None
_rate_limiter: AdaptiveRateLimiter | None = None
_config: ServerConfig | None = None

# One paginated view per root id
_views: dict[int, TeamView] = {}


def get_client() -> NetworkClient:
    """Get the global network client instance."""
    if _client is None:
        raise RuntimeError("Network client not initialized. Server not started properly.")
    return _client


def get_config() -> ServerConfig:
    if _config is None:
        raise RuntimeError("Server configuration not loaded. Server not started properly.")
    return _config


def _resolve_root(root_id: int | None) -> int:
    if root_id is not None:
        return root_id
    default = get_config().default_root_id
    if default is None:
        raise ValueError("root_id is required (EVNETWORK_DEFAULT_ROOT_ID is not set)")
    return default


def get_view(root_id: int | None = None) -> TeamView:
    """Return the team view for ``root_id``, creating it with configured defaults."""
    rid = _resolve_root(root_id)
    view = _views.get(rid)
    if view is None:
        config = get_config()
        view = TeamView(
            get_client(),
            rid,
            PaginationCoordinator(
                page_size=config.default_page_size,
                min_depth=config.default_min_depth,
                max_depth=config.default_max_depth,
            ),
        )
        _views[rid] = view
        logger.info(f"Created team view for root {rid}")
    return view


def _page_payload(page: MaterializedPage | None) -> dict[str, Any]:
    if page is None:
        return {"members": [], "engine": None}
    return {
        "engine": page.engine,
        "query": page.query.model_dump(),
        "members": [m.model_dump(mode="json") for m in page.members],
        "member_count": len(page.members),
        "left_pagination": page.left_envelope,
        "right_pagination": page.right_envelope,
        "skipped_fragments": page.skipped_fragments,
    }


def _view_payload(view: TeamView, page: MaterializedPage | None) -> dict[str, Any]:
    return {"success": True, **_page_payload(page), "view": view.status()}


ViewAction = Callable[[TeamView], Awaitable[MaterializedPage | None]]


async def _run_view_action(root_id: int | None, action: ViewAction) -> dict[str, Any]:
    """Run a view transition; on fetch failure return the last good page marked stale."""
    try:
        view = get_view(root_id)
    except ValueError as e:
        return {"success": False, "error": str(e)}

    try:
        page = await action(view)
    except PageFetchError as e:
        logger.warning(f"Team view {view.root_id}: {e}")
        return {
            "success": False,
            "error": str(e),
            "retryable": e.retryable,
            **_page_payload(view.last_page),
            "view": view.status(),
        }
    except ValueError as e:
        return {"success": False, "error": str(e), "view": view.status()}
    return _view_payload(view, page)


async def _fetch_members(
    root_id: int | None,
    side: str,
    page: int,
    page_size: int,
    min_depth: int | None,
    max_depth: int | None,
) -> dict[str, Any]:
    """One-shot fetch with the same failure shape as the view tools."""
    try:
        query = TreeQuery(
            root_id=_resolve_root(root_id),
            side=side,
            page=page,
            page_size=page_size,
            min_depth=min_depth,
            max_depth=max_depth,
        )
    except ValueError as e:
        return {"success": False, "error": str(e)}

    try:
        result = await get_client().get_members(query)
    except EVNetworkError as e:
        logger.warning(f"Member fetch for root {query.root_id} failed: {e}")
        return {
            "success": False,
            "error": f"{type(e).__name__}: {e}",
            "retryable": not isinstance(e, (AuthenticationError, NodeNotFoundError)),
        }
    return {"success": True, **_page_payload(result)}


@asynccontextmanager
async def lifespan(_app: FastMCP):  # type: ignore[no-untyped-def]
    """Manage server lifecycle."""
    global _client, _rate_limiter, _config

    logger.info("Starting EV network MCP server")

    _config = ServerConfig()  # type: ignore[call-arg]
    setup_logging(_config.log_level)
    api_config = _config.get_api_config()

    _rate_limiter = AdaptiveRateLimiter(
        initial_rate=10.0,
        min_rate=1.0,
        max_rate=100.0,
    )
    _client = NetworkClient(api_config, rate_limiter=_rate_limiter)
    logger.info(f"Network client initialized with base URL: {api_config.base_url}")

    yield

    logger.info("Shutting down EV network MCP server")
    _views.clear()
    if _client:
        await _client.close()
        _client = None
    _rate_limiter = None


mcp = FastMCP(
    "EV Network MCP Server",
    version=__version__,
    instructions=(
        "Browse a distributor's binary team network: paginated left/right legs, "
        "depth filters and merged member lists."
    ),
    lifespan=lifespan,
)


@mcp.tool(
    name="network_members",
    description="Fetch one page of a root's team network and return the merged member list.",
)
async def network_members(
    root_id: int | None = None,
    side: Literal["left", "right", "both"] = "both",
    page: int = 1,
    page_size: int = 20,
    min_depth: int | None = None,
    max_depth: int | None = None,
) -> dict:
    """One-shot materialization, independent of any team view.

    Args:
        root_id: Root node id (defaults to EVNETWORK_DEFAULT_ROOT_ID)
        side: Which leg(s) to include
        page: 1-based page of side members
        page_size: Side members per page (1-100)
        min_depth: Inclusive lower level bound (omit for none)
        max_depth: Inclusive upper level bound (omit for none)
    """
    return await _fetch_members(root_id, side, page, page_size, min_depth, max_depth)


@mcp.tool(name="network_view_refresh", description="Reload the current page of a team view.")
async def network_view_refresh(root_id: int | None = None) -> dict:
    return await _run_view_action(root_id, lambda view: view.refresh())


@mcp.tool(name="network_view_status", description="Show cursors, filters and freshness of a team view.")
async def network_view_status(root_id: int | None = None) -> dict:
    try:
        view = get_view(root_id)
    except ValueError as e:
        return {"success": False, "error": str(e)}
    return {"success": True, "view": view.status()}


@mcp.tool(
    name="network_view_set_side",
    description="Set a team view's side filter (left, right or both). Resets page cursors.",
)
async def network_view_set_side(
    side: Literal["left", "right", "both"],
    root_id: int | None = None,
) -> dict:
    return await _run_view_action(root_id, lambda view: view.set_side_filter(side))


@mcp.tool(
    name="network_view_set_page_size",
    description="Set a team view's page size (1-100). Resets page cursors.",
)
async def network_view_set_page_size(page_size: int, root_id: int | None = None) -> dict:
    return await _run_view_action(root_id, lambda view: view.set_page_size(page_size))


@mcp.tool(
    name="network_view_set_depth",
    description="Set a team view's inclusive depth bounds; omit a bound to leave it open.",
)
async def network_view_set_depth(
    min_depth: int | None = None,
    max_depth: int | None = None,
    root_id: int | None = None,
) -> dict:
    return await _run_view_action(root_id, lambda view: view.set_depth_bounds(min_depth, max_depth))


@mcp.tool(name="network_view_next_page", description="Advance a team view to its next page.")
async def network_view_next_page(root_id: int | None = None) -> dict:
    return await _run_view_action(root_id, lambda view: view.next_page())


@mcp.tool(name="network_view_previous_page", description="Move a team view back one page.")
async def network_view_previous_page(root_id: int | None = None) -> dict:
    return await _run_view_action(root_id, lambda view: view.previous_page())


def main() -> None:
    """Console entry point: run the server over stdio."""
    setup_logging()
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
