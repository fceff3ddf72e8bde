"""Data models for the EV network API: configuration, errors, tree fragments and members."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    field_validator,
    model_validator,
)

Side = Literal["left", "right"]
SideFilter = Literal["left", "right", "both"]

SIDES: tuple[Side, Side] = ("left", "right")

MAX_PAGE_SIZE = 100


# ============================== ERRORS ==============================


class EVNetworkError(Exception):
    """Base class for all client errors."""


class AuthenticationError(EVNetworkError):
    """Raised on 401 responses."""


class NodeNotFoundError(EVNetworkError):
    """Raised when the requested root node does not exist (404)."""

    def __init__(self, node_id: str, message: str = "Node not found") -> None:
        self.node_id = node_id
        super().__init__(f"{message}: {node_id}")


class RateLimitError(EVNetworkError):
    """Raised on 429 responses. ``retry_after`` comes from the Retry-After header."""

    def __init__(self, retry_after: int | None = None) -> None:
        self.retry_after = retry_after
        msg = "Rate limit exceeded"
        if retry_after:
            msg += f" (retry after {retry_after}s)"
        super().__init__(msg)


class NetworkError(EVNetworkError):
    """Server errors, unexpected 4xx responses and undecodable bodies."""


class TimeoutError(EVNetworkError):  # noqa: A001
    """Raised when an operation keeps timing out after all retries."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Operation timed out: {operation}")


class PageFetchError(EVNetworkError):
    """A page fetch failed; the caller may retry. The last good result is kept."""

    def __init__(self, message: str, retryable: bool = True) -> None:
        self.retryable = retryable
        super().__init__(message)


# ============================== CONFIG ==============================


class APIConfiguration(BaseModel):
    """Connection settings handed to the HTTP client."""

    api_key: SecretStr
    base_url: str = "https://api.zujaelectricals.com/api"
    timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=5, ge=1)
    request_delay: float = Field(default=0.25, ge=0)

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


# ============================== QUERY ==============================


class TreeQuery(BaseModel):
    """Immutable request for one materialization: root, side filter, page and depth bounds."""

    model_config = ConfigDict(frozen=True)

    root_id: int
    side: SideFilter = "both"
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=MAX_PAGE_SIZE)
    min_depth: int | None = Field(default=None, ge=0)
    max_depth: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _check_bounds(self) -> "TreeQuery":
        if (
            self.min_depth is not None
            and self.max_depth is not None
            and self.min_depth > self.max_depth
        ):
            raise ValueError(
                f"min_depth ({self.min_depth}) must not exceed max_depth ({self.max_depth})"
            )
        return self

    @property
    def legs(self) -> tuple[Side, ...]:
        """Root legs included by the side filter, always left before right."""
        if self.side == "both":
            return SIDES
        return (self.side,)

    def depth_allows(self, level: int) -> bool:
        """Inclusive depth check; an unset bound does not constrain."""
        if self.min_depth is not None and level < self.min_depth:
            return False
        if self.max_depth is not None and level > self.max_depth:
            return False
        return True

    def to_params(self) -> dict[str, Any]:
        """Query-string parameters. Unset depth bounds are omitted, never sent as null."""
        params: dict[str, Any] = {
            "side": self.side,
            "page": self.page,
            "page_size": self.page_size,
        }
        if self.min_depth is not None:
            params["min_depth"] = self.min_depth
        if self.max_depth is not None:
            params["max_depth"] = self.max_depth
        return params


# ============================== FRAGMENTS ==============================


class MemberFragment(BaseModel):
    """One side-member entry as delivered by the API, before merging."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    node_id: int
    user_id: int
    level: int = 0
    parent: int | None = Field(default=None, validation_alias=AliasChoices("parent", "parent_id"))
    parent_name: str | None = None
    side: Side | None = None
    position: Side | None = None
    user_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("user_name", "name", "full_name", "username"),
    )
    total_earnings: Decimal | None = None
    left_count: int | None = None
    right_count: int | None = None
    is_active_buyer: bool = Field(
        default=False, validation_alias=AliasChoices("is_active_buyer", "is_active")
    )
    referral_code: str | None = None
    date_joined: str | None = Field(
        default=None, validation_alias=AliasChoices("date_joined", "joined_at")
    )

    @field_validator("side", "position", mode="before")
    @classmethod
    def _normalize_side(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower() or None
        return v

    @field_validator("level", mode="before")
    @classmethod
    def _null_level(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator("is_active_buyer", mode="before")
    @classmethod
    def _null_active(cls, v: Any) -> Any:
        return False if v is None else v


class PageEnvelope(BaseModel):
    """Pagination wrapper around one page of side-member fragments."""

    count: int = 0
    page: int = 1
    page_size: int = 0
    total_pages: int = 0
    next: str | None = None
    previous: str | None = None
    results: list[MemberFragment] = Field(default_factory=list)


@dataclass(frozen=True)
class Paged:
    """Side collection served as a PageEnvelope."""

    envelope: PageEnvelope

    @property
    def fragments(self) -> list[MemberFragment]:
        return self.envelope.results


@dataclass(frozen=True)
class Unpaged:
    """Legacy side collection served as a plain list."""

    items: list[MemberFragment]

    @property
    def fragments(self) -> list[MemberFragment]:
        return self.items


SideCollection = Union[Paged, Unpaged]


# ============================== SNAPSHOTS ==============================


@dataclass(frozen=True)
class ChildSnapshot:
    """A structural node: the root, a direct child, or a nested legacy child."""

    node_id: int
    user_id: int | None = None
    name: str = ""
    position: Side | None = None
    level: int | None = None
    joined_at: str | None = None
    metric_value: Decimal | None = None
    left_count: int | None = None
    right_count: int | None = None
    is_active: bool = False
    referral_code: str | None = None
    left_child: "ChildSnapshot | None" = None
    right_child: "ChildSnapshot | None" = None
    left_side_members: SideCollection | None = None
    right_side_members: SideCollection | None = None
    # Decided once at the input boundary: descendants are served as pages,
    # so nested children must not be walked.
    has_paginated_descendants: bool = False

    def child(self, side: Side) -> "ChildSnapshot | None":
        return self.left_child if side == "left" else self.right_child

    def side_members(self, side: Side) -> SideCollection | None:
        return self.left_side_members if side == "left" else self.right_side_members

    def children(self) -> list[tuple[Side, "ChildSnapshot"]]:
        """Present children in left-then-right order."""
        out: list[tuple[Side, ChildSnapshot]] = []
        for side in SIDES:
            node = self.child(side)
            if node is not None:
                out.append((side, node))
        return out

    @property
    def reported_descendants(self) -> int | None:
        """``left_count + right_count`` when the API reported either, else None."""
        if self.left_count is None and self.right_count is None:
            return None
        return (self.left_count or 0) + (self.right_count or 0)


@dataclass(frozen=True)
class RootSnapshot(ChildSnapshot):
    """The queried root with up to two direct children."""

    skipped_fragments: int = field(default=0, compare=False)

    @property
    def has_side_member_fields(self) -> bool:
        """True when any node in the snapshot carries a side-member collection."""

        def _walk(node: ChildSnapshot | None) -> bool:
            if node is None:
                return False
            if node.left_side_members is not None or node.right_side_members is not None:
                return True
            return _walk(node.left_child) or _walk(node.right_child)

        return _walk(self)

    def envelope(self, leg: Side) -> PageEnvelope | None:
        """The PageEnvelope serving ``leg``, looked up on the root then on the leg's child."""
        candidates = [self.side_members(leg)]
        direct = self.child(leg)
        if direct is not None:
            candidates.append(direct.side_members(leg))
        for coll in candidates:
            if isinstance(coll, Paged):
                return coll.envelope
        return None


# ============================== OUTPUT ==============================


class Member(BaseModel):
    """One row of materialized output."""

    model_config = ConfigDict(frozen=True)

    id: int
    display_name: str = ""
    user_id: int | None = None
    joined_at: str | None = None
    position: Side | None = None
    leg: Side
    metric_value: Decimal = Decimal("0")
    level: int
    descendant_count: int = 0
    is_active: bool = False
    parent_id: int | None = None
    parent_name: str = ""
    referral_code: str | None = None


class MaterializedPage(BaseModel):
    """Members plus the pagination state they were produced under."""

    query: TreeQuery
    members: list[Member] = Field(default_factory=list)
    engine: Literal["merge", "fallback"] = "merge"
    left_envelope: dict[str, Any] | None = None
    right_envelope: dict[str, Any] | None = None
    skipped_fragments: int = 0
