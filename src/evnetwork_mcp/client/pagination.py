"""Page cursors, side filter and depth bounds for a team view."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..models import MAX_PAGE_SIZE, SIDES, PageEnvelope, RootSnapshot, Side, SideFilter, TreeQuery
from .api_client_core import _ClientLogger

logger = _ClientLogger("PAGINATION")


@dataclass(frozen=True)
class EnvelopeMeta:
    """What the last response said about one leg's pagination."""

    count: int
    page: int
    total_pages: int
    has_next: bool
    has_previous: bool

    @classmethod
    def from_envelope(cls, envelope: PageEnvelope) -> "EnvelopeMeta":
        return cls(
            count=envelope.count,
            page=envelope.page,
            total_pages=envelope.total_pages,
            has_next=envelope.next is not None,
            has_previous=envelope.previous is not None,
        )


def _validate_page_size(page_size: int) -> int:
    if not 1 <= page_size <= MAX_PAGE_SIZE:
        raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}, got {page_size}")
    return page_size


def _validate_bounds(min_depth: Optional[int], max_depth: Optional[int]) -> None:
    if min_depth is not None and min_depth < 0:
        raise ValueError(f"min_depth must be >= 0, got {min_depth}")
    if max_depth is not None and max_depth < 1:
        raise ValueError(f"max_depth must be >= 1, got {max_depth}")
    if min_depth is not None and max_depth is not None and min_depth > max_depth:
        raise ValueError(f"min_depth ({min_depth}) must not exceed max_depth ({max_depth})")


class PaginationCoordinator:
    """Per-side and combined page cursors.

    Changing the side filter, the page size or the depth bounds resets all
    three cursors to 1. Navigation is decided from the envelopes of the
    last observed snapshot.
    """

    def __init__(
        self,
        page_size: int = 20,
        min_depth: Optional[int] = 1,
        max_depth: Optional[int] = None,
        side_filter: SideFilter = "both",
    ) -> None:
        _validate_bounds(min_depth, max_depth)
        self.page_size = _validate_page_size(page_size)
        self.min_depth = min_depth
        self.max_depth = max_depth
        self.side_filter: SideFilter = side_filter
        self.left_page = 1
        self.right_page = 1
        self.both_page = 1
        self._meta: Dict[Side, Optional[EnvelopeMeta]] = {"left": None, "right": None}

    # ---------------- cursors ----------------

    @property
    def current_page(self) -> int:
        if self.side_filter == "left":
            return self.left_page
        if self.side_filter == "right":
            return self.right_page
        return self.both_page

    def _set_current(self, page: int) -> None:
        if self.side_filter == "left":
            self.left_page = page
        elif self.side_filter == "right":
            self.right_page = page
        else:
            self.both_page = page

    def reset(self) -> None:
        self.left_page = self.right_page = self.both_page = 1
        self._meta = {"left": None, "right": None}

    # ---------------- transitions ----------------

    def set_side_filter(self, side_filter: SideFilter) -> bool:
        """Switch the side filter; returns True when it changed (cursors reset)."""
        if side_filter not in ("left", "right", "both"):
            raise ValueError(f"side_filter must be left, right or both, got {side_filter!r}")
        if side_filter == self.side_filter:
            return False
        self.side_filter = side_filter
        self.reset()
        return True

    def set_page_size(self, page_size: int) -> bool:
        """Change the page size; returns True when it changed (cursors reset)."""
        _validate_page_size(page_size)
        if page_size == self.page_size:
            return False
        self.page_size = page_size
        self.reset()
        return True

    def set_depth_bounds(self, min_depth: Optional[int], max_depth: Optional[int]) -> bool:
        """Change the depth bounds; returns True when they changed (cursors reset)."""
        _validate_bounds(min_depth, max_depth)
        if (min_depth, max_depth) == (self.min_depth, self.max_depth):
            return False
        self.min_depth = min_depth
        self.max_depth = max_depth
        self.reset()
        return True

    def observe(self, snapshot: RootSnapshot) -> None:
        """Record per-leg envelope metadata from the latest response."""
        for leg in SIDES:
            envelope = snapshot.envelope(leg)
            self._meta[leg] = EnvelopeMeta.from_envelope(envelope) if envelope is not None else None

    # ---------------- navigation ----------------

    def _active_meta(self) -> list[EnvelopeMeta]:
        legs = SIDES if self.side_filter == "both" else (self.side_filter,)
        return [m for m in (self._meta[leg] for leg in legs) if m is not None]

    @property
    def total_pages(self) -> Optional[int]:
        """Page count for the active filter; ``both`` uses the larger side. None until observed."""
        metas = self._active_meta()
        if not metas:
            return None
        return max(m.total_pages for m in metas)

    def can_next(self) -> bool:
        metas = self._active_meta()
        total = self.total_pages
        if not metas or total is None or self.current_page >= total:
            return False
        return any(m.has_next for m in metas)

    def can_previous(self) -> bool:
        if self.current_page <= 1:
            return False
        metas = self._active_meta()
        if not metas:
            return True
        return any(m.has_previous for m in metas)

    def next_page(self) -> bool:
        if not self.can_next():
            return False
        self._set_current(self.current_page + 1)
        return True

    def previous_page(self) -> bool:
        if not self.can_previous():
            return False
        self._set_current(self.current_page - 1)
        return True

    def go_to_page(self, page: int) -> int:
        """Jump to ``page``, clamped into the known range. Returns the page set."""
        self._set_current(max(1, page))
        self.clamp()
        return self.current_page

    def clamp(self) -> None:
        """Pull the active cursor back inside ``[1, total_pages]`` when it overshoots."""
        total = self.total_pages
        if total is None:
            return
        last = max(1, total)
        if self.current_page > last:
            logger.info(f"Clamping {self.side_filter} page {self.current_page} to last page {last}")
            self._set_current(last)

    def build_query(self, root_id: int) -> TreeQuery:
        """Immutable query for the next fetch; never asks for an out-of-range page."""
        self.clamp()
        return TreeQuery(
            root_id=root_id,
            side=self.side_filter,
            page=self.current_page,
            page_size=self.page_size,
            min_depth=self.min_depth,
            max_depth=self.max_depth,
        )

    def status(self) -> Dict[str, Any]:
        return {
            "side_filter": self.side_filter,
            "page_size": self.page_size,
            "min_depth": self.min_depth,
            "max_depth": self.max_depth,
            "left_page": self.left_page,
            "right_page": self.right_page,
            "both_page": self.both_page,
            "current_page": self.current_page,
            "total_pages": self.total_pages,
            "can_next": self.can_next(),
            "can_previous": self.can_previous(),
        }
