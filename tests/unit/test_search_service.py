"""Tests for the search gateway use cases."""

from unittest.mock import AsyncMock

import pytest

from content_search_server.errors import NotFoundError, StorageError, ValidationError
from content_search_server.service_layer.search_service import SearchGateway


pytestmark = pytest.mark.unit


class TestSearch:
    @pytest.mark.asyncio
    async def test_envelope(self, gateway, payload_factory):
        await gateway.index(payload_factory(title="Pizza night"))
        envelope = await gateway.search_params({"q": "pizza", "businessId": "biz-1", "limit": "5"})
        assert envelope["success"] is True
        assert envelope["count"] == len(envelope["data"]) == 1
        assert envelope["query"] == "pizza"
        assert envelope["filters"] == {"businessId": "biz-1", "limit": 5, "offset": 0}
        assert "score" in envelope["data"][0]

    @pytest.mark.asyncio
    async def test_requires_query_or_business_id(self, gateway):
        with pytest.raises(ValidationError):
            await gateway.search_params({})

    @pytest.mark.asyncio
    async def test_by_content_type(self, gateway, payload_factory):
        await gateway.index(payload_factory())
        await gateway.index(payload_factory(contentType="form"))
        envelope = await gateway.search_by_content_type("form", {"businessId": "biz-1"})
        assert envelope["contentType"] == "form"
        assert [item["contentType"] for item in envelope["data"]] == ["form"]

    @pytest.mark.asyncio
    async def test_advanced(self, gateway, payload_factory):
        await gateway.index(payload_factory(metadata={"rating": 5}))
        await gateway.index(payload_factory(metadata={"rating": 2}))
        envelope = await gateway.advanced_search(
            {
                "filters": {"businessId": "biz-1"},
                "pagination": {"limit": 10, "offset": 0},
                "sort": {"field": "rating", "order": "desc"},
            }
        )
        assert envelope["pagination"] == {"limit": 10, "offset": 0, "total": 2}
        assert envelope["sort"] == {"field": "rating", "order": "desc"}
        assert envelope["filters"] == {"businessId": "biz-1"}
        assert [item["metadata"]["rating"] for item in envelope["data"]] == [5, 2]


class TestWrites:
    @pytest.mark.asyncio
    async def test_index_returns_stored_record(self, gateway, payload_factory):
        record = await gateway.index(payload_factory())
        assert record.indexed_at == record.created_at == record.updated_at
        assert (await gateway.get(record.id)).title == record.title

    @pytest.mark.asyncio
    async def test_index_reports_readable_errors(self, gateway, payload_factory):
        with pytest.raises(ValidationError, match="title"):
            await gateway.index(payload_factory(title=""))

    @pytest.mark.asyncio
    async def test_index_requires_object(self, gateway):
        with pytest.raises(ValidationError, match="JSON object"):
            await gateway.index(["not", "an", "object"])

    @pytest.mark.asyncio
    async def test_update_refreshes_indexed_at(self, gateway, payload_factory):
        record = await gateway.index(payload_factory())
        updated = await gateway.update(record.id, {"title": "Changed"})
        assert updated.title == "Changed"
        assert updated.indexed_at >= record.indexed_at
        assert updated.created_at == record.created_at

    @pytest.mark.asyncio
    async def test_update_unknown_id(self, gateway):
        with pytest.raises(NotFoundError, match="Search index not found"):
            await gateway.update("missing", {"title": "x"})

    @pytest.mark.asyncio
    async def test_delete_unknown_id(self, gateway):
        with pytest.raises(NotFoundError):
            await gateway.delete("missing")

    @pytest.mark.asyncio
    async def test_delete(self, gateway, payload_factory):
        record = await gateway.index(payload_factory())
        await gateway.delete(record.id)
        with pytest.raises(NotFoundError):
            await gateway.get(record.id)


class TestBulkIndex:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("items", [None, [], "items", {"a": 1}])
    async def test_requires_non_empty_list_and_leaves_storage_untouched(self, items):
        repository = AsyncMock()
        gateway = SearchGateway(repository)
        with pytest.raises(ValidationError, match="Items array is required"):
            await gateway.bulk_index(items)
        repository.add_many.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_item_names_its_position(self, gateway, payload_factory):
        with pytest.raises(ValidationError, match="Item 1"):
            await gateway.bulk_index([payload_factory(), payload_factory(contentType="memo")])
        assert (await gateway.search_params({"businessId": "biz-1"}))["count"] == 0

    @pytest.mark.asyncio
    async def test_items_share_indexed_at(self, gateway, payload_factory):
        records = await gateway.bulk_index([payload_factory(), payload_factory(title="Second")])
        assert len(records) == 2
        assert records[0].indexed_at == records[1].indexed_at
        assert records[0].id != records[1].id


class TestTags:
    @pytest.mark.asyncio
    async def test_adding_existing_tag_does_not_duplicate(self, gateway, payload_factory):
        record = await gateway.index(payload_factory(tags=["fast"]))
        await gateway.add_tag(record.id, "fast")
        stored = await gateway.add_tag(record.id, "fast")
        assert stored.tags == ["fast"]
        assert (await gateway.get(record.id)).tags == ["fast"]

    @pytest.mark.asyncio
    async def test_add_and_remove_tag(self, gateway, payload_factory):
        record = await gateway.index(payload_factory(tags=[]))
        await gateway.add_tag(record.id, "fresh")
        assert (await gateway.get(record.id)).tags == ["fresh"]
        await gateway.remove_tag(record.id, "fresh")
        assert (await gateway.get(record.id)).tags == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tag", [None, "  ", "x" * 51, 7.5])
    async def test_invalid_tag(self, gateway, payload_factory, tag):
        record = await gateway.index(payload_factory())
        with pytest.raises(ValidationError):
            await gateway.add_tag(record.id, tag)

    @pytest.mark.asyncio
    async def test_reindex_moves_record_to_front(self, gateway, analytics, payload_factory):
        first = await gateway.index(payload_factory(title="First"))
        await gateway.index(payload_factory(title="Second"))
        await gateway.reindex(first.id)
        recent = await analytics.recent({"businessId": "biz-1"})
        assert recent["data"][0]["id"] == first.id

    @pytest.mark.asyncio
    async def test_reindex_unknown_id(self, gateway):
        with pytest.raises(NotFoundError):
            await gateway.reindex("missing")


@pytest.mark.asyncio
async def test_storage_errors_propagate():
    repository = AsyncMock()
    repository.search.side_effect = StorageError("search failed: disk I/O error")
    gateway = SearchGateway(repository)
    with pytest.raises(StorageError):
        await gateway.search_params({"businessId": "biz-1"})
