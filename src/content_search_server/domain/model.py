"""Domain model - the content record entity and its read projections.

Following Cosmic Python principles:
- Domain model has NO dependencies on infrastructure
- Entities have identity (``ContentRecord.id``) and can change over time
- Validation happens at construction with Pydantic

JSON names are camelCase (``businessId``); Python attributes are snake_case.
"""

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Self, get_args
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel


ContentType = Literal[
    "submission",
    "form",
    "staff",
    "franchise",
    "business",
    "discount",
    "notification",
    "report",
]
CONTENT_TYPES: tuple[str, ...] = get_args(ContentType)

Sentiment = Literal["positive", "negative", "neutral"]
SENTIMENTS: tuple[str, ...] = get_args(Sentiment)

Identifier = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=64)]
Label = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)]

# Keys callers may never overwrite through an update payload.
_PROTECTED_KEYS = frozenset({"id", "createdAt", "indexedAt", "updatedAt"})


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ContentMetadata(CamelModel):
    """Descriptive metadata attached to a content record."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    rating: int | None = Field(default=None, ge=1, le=5)
    sentiment: Sentiment | None = None
    language: str = Field(default="en", max_length=10)
    source: str | None = Field(default=None, max_length=50)
    author: str | None = Field(default=None, max_length=100)
    custom: dict[str, Any] | None = None


class ContentPayload(CamelModel):
    """Caller-supplied fields of a content record.

    Unknown keys are dropped; everything else is validated.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    business_id: Identifier
    franchise_id: Identifier | None = None
    content_type: ContentType
    content_id: Identifier
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1, max_length=5000)
    tags: list[Label] = Field(default_factory=list)
    categories: list[Label] = Field(default_factory=list)
    metadata: ContentMetadata = Field(default_factory=ContentMetadata)
    searchable_fields: dict[str, str] = Field(default_factory=dict)
    is_active: bool = True


class ContentRecord(ContentPayload):
    """Aggregate root for one indexed unit of searchable content.

    Owned by exactly one tenant (``business_id``). ``indexed_at`` moves
    forward on every write so the recency listing reflects the latest
    indexing activity.
    """

    id: str
    indexed_at: datetime
    created_at: datetime
    updated_at: datetime

    @classmethod
    def create(cls, payload: ContentPayload, *, now: datetime | None = None) -> Self:
        """Build a new record with a fresh identity and timestamps."""
        stamp = now or utc_now()
        return cls(
            **payload.model_dump(),
            id=uuid4().hex,
            indexed_at=stamp,
            created_at=stamp,
            updated_at=stamp,
        )

    def mark_indexed(self, now: datetime | None = None) -> None:
        """Refresh the indexing timestamps."""
        stamp = now or utc_now()
        self.indexed_at = stamp
        self.updated_at = stamp

    def add_tag(self, tag: str, *, now: datetime | None = None) -> bool:
        """Append ``tag`` unless already present. Returns True when it was added."""
        tag = tag.strip()
        if tag in self.tags:
            return False
        self.tags = [*self.tags, tag]
        self.mark_indexed(now)
        return True

    def remove_tag(self, tag: str, *, now: datetime | None = None) -> bool:
        """Drop every occurrence of ``tag``. Returns True when something was removed."""
        tag = tag.strip()
        remaining = [existing for existing in self.tags if existing != tag]
        if len(remaining) == len(self.tags):
            return False
        self.tags = remaining
        self.mark_indexed(now)
        return True

    def apply_update(self, changes: Mapping[str, Any], *, now: datetime | None = None) -> "ContentRecord":
        """Return a re-validated copy with top-level ``changes`` applied.

        A supplied ``metadata`` object replaces the old one as a whole.
        Identity and timestamp keys in ``changes`` are ignored.
        """
        current = self.model_dump(by_alias=True)
        aliases = {name: info.alias or name for name, info in type(self).model_fields.items()}
        for key, value in changes.items():
            alias = aliases.get(key, key)
            if alias in _PROTECTED_KEYS:
                continue
            current[alias] = value
        stamp = now or utc_now()
        current["indexedAt"] = stamp
        current["updatedAt"] = stamp
        return ContentRecord.model_validate(current)

    def to_document(self) -> dict[str, Any]:
        """Serialize to the JSON shape returned by the API."""
        return self.model_dump(mode="json", by_alias=True)


class ContentReference(CamelModel):
    """Projection of the source record a content record points at."""

    id: str
    name: str | None = None
    description: str | None = None


class FranchiseReference(CamelModel):
    """Projection of the owning franchise."""

    id: str
    name: str | None = None


class ContentHit(ContentRecord):
    """A content record as returned by searches and listings.

    The two reference fields are replaced by their projections, and free-text
    searches carry the relevance ``score`` (higher is better).
    """

    content_id: ContentReference  # type: ignore[assignment]
    franchise_id: FranchiseReference | None = None  # type: ignore[assignment]
    score: float | None = None

    def to_document(self) -> dict[str, Any]:
        exclude = {"score"} if self.score is None else None
        return self.model_dump(mode="json", by_alias=True, exclude=exclude)


class TagCount(CamelModel):
    """Occurrences of one tag across a tenant's active records."""

    tag: str
    count: int


class ContentTypeStats(CamelModel):
    """Per content type summary for a tenant."""

    content_type: str
    count: int
    avg_rating: float | None = None
    sentiment_breakdown: list[str] = Field(default_factory=list)


class Suggestion(CamelModel):
    """Lightweight projection used for type-ahead suggestions."""

    id: str
    title: str
    tags: list[str] = Field(default_factory=list)
    content_type: str
