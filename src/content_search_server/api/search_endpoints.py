"""HTTP routes for search, indexing and analytics.

Each endpoint is a closure over the services it needs. Service errors map
to status codes here and nowhere else: ``ValidationError`` is 400,
``NotFoundError`` is 404 and ``StorageError`` is 500 with a per-route
message (the detail goes to the log only).
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
import json
import logging
from typing import TYPE_CHECKING, Any

from starlette.responses import JSONResponse
from starlette.routing import Route

from content_search_server.errors import NotFoundError, StorageError, ValidationError


if TYPE_CHECKING:
    from starlette.requests import Request

    from content_search_server.service_layer.analytics_service import AnalyticsService
    from content_search_server.service_layer.search_service import SearchGateway


logger = logging.getLogger(__name__)

Handler = Callable[["Request"], Awaitable[JSONResponse]]


def error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def query_params(request: Request) -> dict[str, Any]:
    """Flatten the query string; repeated keys become lists."""
    params: dict[str, Any] = {}
    for key in request.query_params:
        values = request.query_params.getlist(key)
        params[key] = values if len(values) > 1 else values[0]
    return params


async def read_json(request: Request) -> Any:
    body = await request.body()
    if not body:
        return {}
    try:
        return json.loads(body)
    except ValueError as exc:
        raise ValidationError("Request body must be valid JSON") from exc


def guarded(failure_message: str, *, status_code: int = 200):
    """Wrap an endpoint body that returns a payload dict into a JSON endpoint."""

    def decorator(func: Callable[[Request], Awaitable[dict[str, Any]]]) -> Handler:
        async def endpoint(request: Request) -> JSONResponse:
            try:
                payload = await func(request)
            except ValidationError as exc:
                return error_response(str(exc), 400)
            except NotFoundError as exc:
                return error_response(str(exc), 404)
            except StorageError:
                logger.exception(failure_message)
                return error_response(failure_message, 500)
            return JSONResponse(payload, status_code=status_code)

        endpoint.__name__ = func.__name__
        endpoint.__doc__ = func.__doc__
        return endpoint

    return decorator


def build_search_routes(gateway: SearchGateway, analytics: AnalyticsService) -> list[Route]:
    """Return the ``/api/search`` routes, fixed paths before ``{contentType}``."""

    @guarded("Failed to perform search")
    async def search(request: Request) -> dict[str, Any]:
        return await gateway.search_params(query_params(request))

    @guarded("Failed to perform advanced search")
    async def advanced_search(request: Request) -> dict[str, Any]:
        return await gateway.advanced_search(await read_json(request))

    @guarded("Failed to index content", status_code=201)
    async def index_content(request: Request) -> dict[str, Any]:
        record = await gateway.index(await read_json(request))
        return {"success": True, "data": record.to_document()}

    @guarded("Failed to bulk index content", status_code=201)
    async def bulk_index(request: Request) -> dict[str, Any]:
        body = await read_json(request)
        items = body.get("items") if isinstance(body, dict) else None
        records = await gateway.bulk_index(items)
        return {"success": True, "data": [record.to_document() for record in records], "count": len(records)}

    @guarded("Failed to fetch search index")
    async def get_content(request: Request) -> dict[str, Any]:
        record = await gateway.get(request.path_params["record_id"])
        return {"success": True, "data": record.to_document()}

    @guarded("Failed to update search index")
    async def update_content(request: Request) -> dict[str, Any]:
        record = await gateway.update(request.path_params["record_id"], await read_json(request))
        return {"success": True, "data": record.to_document()}

    @guarded("Failed to delete search index")
    async def delete_content(request: Request) -> dict[str, Any]:
        await gateway.delete(request.path_params["record_id"])
        return {"success": True, "message": "Search index deleted successfully"}

    @guarded("Failed to add tag")
    async def add_tag(request: Request) -> dict[str, Any]:
        body = await read_json(request)
        tag = body.get("tag") if isinstance(body, dict) else None
        record = await gateway.add_tag(request.path_params["record_id"], tag)
        return {"success": True, "data": record.to_document()}

    @guarded("Failed to remove tag")
    async def remove_tag(request: Request) -> dict[str, Any]:
        record = await gateway.remove_tag(request.path_params["record_id"], request.path_params["tag"])
        return {"success": True, "data": record.to_document()}

    @guarded("Failed to reindex content")
    async def reindex_content(request: Request) -> dict[str, Any]:
        record = await gateway.reindex(request.path_params["record_id"])
        return {"success": True, "data": record.to_document()}

    @guarded("Failed to fetch popular tags")
    async def popular_tags(request: Request) -> dict[str, Any]:
        return await analytics.popular_tags(query_params(request))

    @guarded("Failed to fetch content statistics")
    async def content_stats(request: Request) -> dict[str, Any]:
        return await analytics.content_stats(query_params(request))

    @guarded("Failed to fetch recent content")
    async def recent_content(request: Request) -> dict[str, Any]:
        return await analytics.recent(query_params(request))

    @guarded("Failed to fetch high-rated content")
    async def high_rated_content(request: Request) -> dict[str, Any]:
        return await analytics.high_rated(query_params(request))

    @guarded("Failed to fetch search suggestions")
    async def suggestions(request: Request) -> dict[str, Any]:
        return await analytics.suggestions(query_params(request))

    @guarded("Failed to search by content type")
    async def search_by_content_type(request: Request) -> dict[str, Any]:
        return await gateway.search_by_content_type(request.path_params["content_type"], query_params(request))

    return [
        Route("/api/search", endpoint=search, methods=["GET"]),
        Route("/api/search/advanced", endpoint=advanced_search, methods=["POST"]),
        Route("/api/search/index", endpoint=index_content, methods=["POST"]),
        Route("/api/search/index/bulk", endpoint=bulk_index, methods=["POST"]),
        Route("/api/search/index/{record_id}", endpoint=get_content, methods=["GET"]),
        Route("/api/search/index/{record_id}", endpoint=update_content, methods=["PUT"]),
        Route("/api/search/index/{record_id}", endpoint=delete_content, methods=["DELETE"]),
        Route("/api/search/index/{record_id}/tags", endpoint=add_tag, methods=["POST"]),
        Route("/api/search/index/{record_id}/tags/{tag}", endpoint=remove_tag, methods=["DELETE"]),
        Route("/api/search/index/{record_id}/reindex", endpoint=reindex_content, methods=["POST"]),
        Route("/api/search/tags/popular", endpoint=popular_tags, methods=["GET"]),
        Route("/api/search/stats", endpoint=content_stats, methods=["GET"]),
        Route("/api/search/recent", endpoint=recent_content, methods=["GET"]),
        Route("/api/search/high-rated", endpoint=high_rated_content, methods=["GET"]),
        Route("/api/search/suggestions", endpoint=suggestions, methods=["GET"]),
        Route("/api/search/{content_type}", endpoint=search_by_content_type, methods=["GET"]),
    ]
