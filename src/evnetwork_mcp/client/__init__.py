"""EV network API client package."""

from .api_client import NetworkClient, materialize
from .api_client_core import NetworkClientCore, log_event
from .fallback_traversal import traverse_members
from .fragment_source import parse_root_snapshot
from .merge_engine import merge_members
from .pagination import PaginationCoordinator
from .parent_resolver import build_parent_names
from .rate_limiter import AdaptiveRateLimiter
from .team_view import TeamView

__all__ = [
    "AdaptiveRateLimiter",
    "NetworkClient",
    "NetworkClientCore",
    "PaginationCoordinator",
    "TeamView",
    "build_parent_names",
    "log_event",
    "materialize",
    "merge_members",
    "parse_root_snapshot",
    "traverse_members",
]
