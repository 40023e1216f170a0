"""Value objects describing a normalized search.

A ``SearchSpec`` is what the query composer produces from loosely typed
request parameters and what the repository turns into SQL. All of these are
immutable (frozen=True).
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


SortField = Literal["relevance", "rating", "date"]
SortOrder = Literal["asc", "desc"]

# Keys the repository knows how to order by.
SortColumn = Literal["score", "metadata.rating", "indexedAt"]


class SearchFilters(BaseModel):
    """Exact-match (and any-of membership) predicates applied to a search.

    ``None`` or an empty tuple means the filter is absent and is omitted from
    the query, never widened to a wildcard. Inactive records are excluded
    unconditionally by the repository, so there is no ``is_active`` field.
    """

    model_config = ConfigDict(frozen=True)

    business_id: str | None = None
    franchise_id: str | None = None
    content_type: str | None = None
    tags: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()
    rating: int | None = None
    sentiment: str | None = None
    language: str | None = None

    def to_echo(self) -> dict[str, Any]:
        """Return the applied filters keyed by their request names."""
        echo: dict[str, Any] = {}
        if self.business_id is not None:
            echo["businessId"] = self.business_id
        if self.franchise_id is not None:
            echo["franchiseId"] = self.franchise_id
        if self.content_type is not None:
            echo["contentType"] = self.content_type
        if self.tags:
            echo["tags"] = list(self.tags)
        if self.categories:
            echo["categories"] = list(self.categories)
        if self.rating is not None:
            echo["rating"] = self.rating
        if self.sentiment is not None:
            echo["sentiment"] = self.sentiment
        if self.language is not None:
            echo["language"] = self.language
        return echo


class SortKey(BaseModel):
    """One ordering term; a SearchSpec carries them in priority order."""

    model_config = ConfigDict(frozen=True)

    column: SortColumn
    descending: bool = True


class SortSelection(BaseModel):
    """The sort strategy as requested, after defaulting and fallback."""

    model_config = ConfigDict(frozen=True)

    field: SortField
    order: SortOrder = "desc"


class SearchSpec(BaseModel):
    """Normalized search: text predicate, filters, ordering and page window."""

    model_config = ConfigDict(frozen=True)

    query: str | None = None
    match_expression: str | None = None
    filters: SearchFilters = Field(default_factory=SearchFilters)
    sort: SortSelection = Field(default_factory=lambda: SortSelection(field="date"))
    sort_keys: tuple[SortKey, ...] = (SortKey(column="indexedAt"),)
    limit: int = Field(default=50, ge=1)
    offset: int = Field(default=0, ge=0)

    @property
    def is_text_search(self) -> bool:
        return self.match_expression is not None

    def filters_echo(self) -> dict[str, Any]:
        """Filters plus the page window, as echoed back to callers."""
        return {**self.filters.to_echo(), "limit": self.limit, "offset": self.offset}
