"""Tenant-scoped aggregations and listings.

Every helper requires ``businessId`` and only considers active records.
"""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any

from content_search_server.adapters.content_repository import AbstractContentRepository
from content_search_server.errors import ValidationError
from content_search_server.service_layer.query_composer import QueryComposer, optional_str, parse_int


logger = logging.getLogger(__name__)

POPULAR_TAGS_LIMIT = 20
RECENT_LIMIT = 20
HIGH_RATED_LIMIT = 20
HIGH_RATED_MIN_RATING = 4
SUGGESTIONS_LIMIT = 10
SUGGESTION_MIN_CHARS = 2


def _business_id(params: Mapping[str, Any]) -> str:
    business_id = optional_str(params.get("businessId"), name="businessId")
    if business_id is None:
        raise ValidationError("BusinessId is required")
    return business_id


class AnalyticsService:
    """Popular tags, statistics, recency and rating listings, suggestions."""

    def __init__(self, repository: AbstractContentRepository, composer: QueryComposer | None = None) -> None:
        self.repository = repository
        self.composer = composer or QueryComposer()

    async def popular_tags(self, params: Mapping[str, Any]) -> dict[str, Any]:
        business_id = _business_id(params)
        limit = self.composer.parse_limit(params.get("limit"), default=POPULAR_TAGS_LIMIT)
        tags = await self.repository.popular_tags(business_id, limit)
        return {"success": True, "data": [tag.model_dump() for tag in tags], "count": len(tags)}

    async def content_stats(self, params: Mapping[str, Any]) -> dict[str, Any]:
        """Per content type counts with the average rating rounded to 2 places."""
        business_id = _business_id(params)
        stats = await self.repository.content_stats(business_id)
        data = []
        for entry in stats:
            if entry.avg_rating is not None:
                entry = entry.model_copy(update={"avg_rating": round(entry.avg_rating, 2)})
            data.append(entry.model_dump(by_alias=True))
        return {"success": True, "data": data}

    async def recent(self, params: Mapping[str, Any]) -> dict[str, Any]:
        business_id = _business_id(params)
        limit = self.composer.parse_limit(params.get("limit"), default=RECENT_LIMIT)
        hits = await self.repository.recent(business_id, limit)
        return {"success": True, "data": [hit.to_document() for hit in hits], "count": len(hits)}

    async def high_rated(self, params: Mapping[str, Any]) -> dict[str, Any]:
        business_id = _business_id(params)
        min_rating = parse_int(
            params.get("minRating"),
            name="minRating",
            default=HIGH_RATED_MIN_RATING,
            minimum=1,
            maximum=5,
        )
        limit = self.composer.parse_limit(params.get("limit"), default=HIGH_RATED_LIMIT)
        hits = await self.repository.by_rating(business_id, min_rating, limit)
        return {"success": True, "data": [hit.to_document() for hit in hits], "count": len(hits)}

    async def suggestions(self, params: Mapping[str, Any]) -> dict[str, Any]:
        """Type-ahead suggestions; fewer than two characters yields nothing."""
        needle = optional_str(params.get("q"), name="q")
        if needle is None or len(needle) < SUGGESTION_MIN_CHARS:
            return {"success": True, "data": [], "count": 0}
        business_id = _business_id(params)
        limit = self.composer.parse_limit(params.get("limit"), default=SUGGESTIONS_LIMIT)
        suggestions = await self.repository.suggestions(business_id, needle, limit)
        logger.debug("Suggestions for %r matched %d records", needle, len(suggestions))
        return {
            "success": True,
            "data": [suggestion.model_dump(by_alias=True) for suggestion in suggestions],
            "count": len(suggestions),
        }
