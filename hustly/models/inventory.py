"""Inventory request/response models: filter set, stats, and structured fetch results."""

import json
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from hustly.models.listing import Listing
from hustly.utils.config import InventoryConfig

ALL = "all"


class InventoryFilters(BaseModel):
    """Filter set for one inventory query (tenant is implicit)."""
    model_config = ConfigDict(frozen=True)

    search_term: Optional[str] = Field(None, description="Case-insensitive substring match on title")
    status_filter: str = Field(default=ALL, description="Exact status or 'all'")
    category_filter: str = Field(default=ALL, description="Exact category or 'all'")
    limit: int = Field(default=InventoryConfig.DEFAULT_LIMIT, description="Requested result limit")

    def normalized_search(self) -> Optional[str]:
        term = (self.search_term or "").strip()
        return term or None

    def effective_limit(self) -> int:
        """Limit clamped to the hard ceiling; non-positive falls back to the default."""
        limit = self.limit if self.limit > 0 else InventoryConfig.DEFAULT_LIMIT
        return min(limit, InventoryConfig.MAX_QUERY_LIMIT)

    def fingerprint(self) -> str:
        """Deterministic cache key for this filter set."""
        search = self.normalized_search()
        payload = {
            "search": search.casefold() if search else None,
            "status": (self.status_filter or ALL).strip().lower(),
            "category": (self.category_filter or ALL).strip(),
            "limit": self.effective_limit(),
        }
        return json.dumps(payload, sort_keys=True)


class InventoryStats(BaseModel):
    """Rollups over the currently displayed listings."""
    model_config = ConfigDict(populate_by_name=True)

    total_items: int = Field(default=0, alias="totalItems")
    total_value: float = Field(default=0, alias="totalValue")
    active_items: int = Field(default=0, alias="activeItems")
    draft_items: int = Field(default=0, alias="draftItems")


class FetchErrorKind(str, Enum):
    """Failure classes the degradation controller branches on."""
    AUTHENTICATION = "authentication"
    TIMEOUT = "timeout"
    BACKEND = "backend"
    ABORTED = "aborted"


class FetchResult(BaseModel):
    """Outcome of one query: ok with data, or a classified failure."""
    ok: bool
    data: list[Listing] = Field(default_factory=list)
    kind: Optional[FetchErrorKind] = None
    message: Optional[str] = None

    @classmethod
    def success(cls, data: list[Listing]) -> "FetchResult":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, kind: FetchErrorKind, message: str) -> "FetchResult":
        return cls(ok=False, kind=kind, message=message)


class Notice(BaseModel):
    """Dismissible user-facing banner."""
    severity: str = Field(..., description="info, warning or error")
    title: str
    message: str
    retryable: bool = False
