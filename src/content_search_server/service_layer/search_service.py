"""Search service orchestration layer.

``SearchGateway`` executes composed searches against the repository and
shapes the response envelopes; it also owns every write use case (index,
update, delete, bulk index, tag changes and re-indexing).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from content_search_server.adapters.content_repository import AbstractContentRepository
from content_search_server.domain.model import ContentHit, ContentPayload, ContentRecord, utc_now
from content_search_server.domain.search import SearchSpec
from content_search_server.errors import NotFoundError, ValidationError
from content_search_server.observability.metrics import RECORDS_WRITTEN
from content_search_server.service_layer.query_composer import QueryComposer, optional_str


logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Search index not found"
MAX_TAG_LENGTH = 50


def describe_validation_error(exc: PydanticValidationError, *, prefix: str = "") -> str:
    """Render pydantic errors as ``field: message`` pairs on one line."""
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return prefix + "; ".join(parts)


def _require_mapping(value: Any, *, what: str = "Request body") -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValidationError(f"{what} must be a JSON object")
    return value


def _documents(hits: Sequence[ContentHit]) -> list[dict[str, Any]]:
    return [hit.to_document() for hit in hits]


class SearchGateway:
    """High-level search and indexing orchestration.

    Stateless between calls: every request is one or more repository
    round-trips and nothing is cached.
    """

    def __init__(self, repository: AbstractContentRepository, composer: QueryComposer | None = None) -> None:
        """Initialize the gateway.

        Args:
            repository: Storage collaborator (required)
            composer: Parameter parser; a default-configured one when omitted
        """
        self.repository = repository
        self.composer = composer or QueryComposer()

    # Searches

    async def search(self, spec: SearchSpec) -> dict[str, Any]:
        """Execute a composed search and wrap the hits in the standard envelope."""
        hits = await self.repository.search(spec)
        logger.debug("Search matched %d records (limit=%d offset=%d)", len(hits), spec.limit, spec.offset)
        return {
            "success": True,
            "data": _documents(hits),
            "count": len(hits),
            "query": spec.query,
            "filters": spec.filters_echo(),
        }

    async def search_params(self, params: Mapping[str, Any]) -> dict[str, Any]:
        """Compose flat request parameters and search."""
        return await self.search(self.composer.compose(params))

    async def search_by_content_type(self, content_type: str, params: Mapping[str, Any]) -> dict[str, Any]:
        """Search scoped to one content type taken from the path."""
        spec = self.composer.compose(params, content_type=content_type)
        envelope = await self.search(spec)
        envelope["contentType"] = spec.filters.content_type
        return envelope

    async def advanced_search(self, body: Any) -> dict[str, Any]:
        """Search from the structured body ``{query, filters, pagination, sort}``."""
        spec = self.composer.compose_advanced(body)
        hits = await self.repository.search(spec)
        return {
            "success": True,
            "data": _documents(hits),
            "count": len(hits),
            "query": spec.query,
            "pagination": {"limit": spec.limit, "offset": spec.offset, "total": len(hits)},
            "sort": {"field": spec.sort.field, "order": spec.sort.order},
            "filters": spec.filters.to_echo(),
        }

    # Single record use cases

    async def get(self, record_id: str) -> ContentRecord:
        record = await self.repository.get(record_id)
        if record is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        return record

    async def index(self, payload: Any) -> ContentRecord:
        """Validate and store one record, stamping all three timestamps."""
        data = _require_mapping(payload)
        try:
            record = ContentRecord.create(ContentPayload.model_validate(data))
        except PydanticValidationError as exc:
            raise ValidationError(describe_validation_error(exc)) from exc
        await self.repository.add(record)
        RECORDS_WRITTEN.labels(operation="index").inc()
        logger.info(
            "Indexed content record %s",
            record.id,
            extra={"business_id": record.business_id, "content_type": record.content_type},
        )
        return record

    async def update(self, record_id: str, changes: Any) -> ContentRecord:
        """Apply a partial top-level update and refresh ``indexedAt``."""
        data = _require_mapping(changes)
        record = await self.get(record_id)
        try:
            updated = record.apply_update(data)
        except PydanticValidationError as exc:
            raise ValidationError(describe_validation_error(exc)) from exc
        await self._save(updated, operation="update")
        return updated

    async def delete(self, record_id: str) -> None:
        if not await self.repository.delete(record_id):
            raise NotFoundError(NOT_FOUND_MESSAGE)
        logger.info("Deleted content record %s", record_id)

    async def bulk_index(self, items: Any) -> list[ContentRecord]:
        """Validate every item, then insert them all in one transaction.

        Nothing is written unless every item is valid. All records share one
        ``indexedAt`` stamp.
        """
        if not isinstance(items, list) or not items:
            raise ValidationError("Items array is required")

        stamp = utc_now()
        records: list[ContentRecord] = []
        for position, item in enumerate(items):
            if not isinstance(item, Mapping):
                raise ValidationError(f"Item {position}: must be a JSON object")
            try:
                payload = ContentPayload.model_validate(item)
            except PydanticValidationError as exc:
                raise ValidationError(describe_validation_error(exc, prefix=f"Item {position}: ")) from exc
            records.append(ContentRecord.create(payload, now=stamp))

        await self.repository.add_many(records)
        RECORDS_WRITTEN.labels(operation="bulk_index").inc(len(records))
        logger.info("Bulk indexed %d content records", len(records))
        return records

    # Tags and re-indexing

    async def add_tag(self, record_id: str, tag: Any) -> ContentRecord:
        """Add ``tag`` unless the record already carries it."""
        label = self._parse_tag(tag)
        record = await self.get(record_id)
        if record.add_tag(label):
            await self._save(record, operation="add_tag")
        return record

    async def remove_tag(self, record_id: str, tag: Any) -> ContentRecord:
        label = self._parse_tag(tag)
        record = await self.get(record_id)
        if record.remove_tag(label):
            await self._save(record, operation="remove_tag")
        return record

    async def reindex(self, record_id: str) -> ContentRecord:
        """Refresh ``indexedAt`` so the record resurfaces in recency listings."""
        record = await self.get(record_id)
        record.mark_indexed()
        await self._save(record, operation="reindex")
        return record

    async def _save(self, record: ContentRecord, *, operation: str) -> None:
        if not await self.repository.update(record):
            raise NotFoundError(NOT_FOUND_MESSAGE)
        RECORDS_WRITTEN.labels(operation=operation).inc()

    @staticmethod
    def _parse_tag(tag: Any) -> str:
        label = optional_str(tag, name="tag")
        if label is None:
            raise ValidationError("tag is required")
        if len(label) > MAX_TAG_LENGTH:
            raise ValidationError(f"tag must be at most {MAX_TAG_LENGTH} characters")
        return label
