"""Composable builder for the content search server."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
import logging
from typing import TYPE_CHECKING

from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from content_search_server import __version__
from content_search_server.adapters.content_repository import AbstractContentRepository, SqliteContentRepository
from content_search_server.api.search_endpoints import build_search_routes, error_response
from content_search_server.config import Settings
from content_search_server.observability import (
    configure_log_exporter,
    configure_logging,
    configure_trace_exporter,
    get_metrics,
    get_metrics_content_type,
    init_log_exporter,
    init_metrics,
    init_tracing,
)
from content_search_server.observability.metrics import ERROR_COUNT
from content_search_server.observability.tracing import TraceContextMiddleware, trace_request
from content_search_server.runtime.health import build_health_endpoint, build_ready_endpoint
from content_search_server.runtime.signals import install_shutdown_signals
from content_search_server.search.sqlite_storage import SqliteDatabase
from content_search_server.service_layer.analytics_service import AnalyticsService
from content_search_server.service_layer.query_composer import QueryComposer
from content_search_server.service_layer.search_service import SearchGateway


if TYPE_CHECKING:
    from starlette.requests import Request


logger = logging.getLogger(__name__)
_SHUTDOWN_CLOSE_TIMEOUT_S = 10.0


class AppBuilder:
    """Builds the ASGI app from ``Settings``.

    The storage handle is created here and handed to the repository
    explicitly; the lifespan closes it.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        repository: AbstractContentRepository | None = None,
        install_signals: bool = True,
        configure_observability: bool = True,
    ) -> None:
        self.settings = settings or Settings()
        self.repository = repository
        self.install_signals = install_signals
        self.configure_observability = configure_observability

    def build(self) -> Starlette:
        """Build and return the Starlette application."""
        settings = self.settings
        if self.configure_observability:
            self._init_observability()

        repository = self.repository or self._create_repository()
        self.repository = repository
        composer = QueryComposer(
            default_page_size=settings.default_page_size,
            max_page_size=settings.max_page_size,
        )
        gateway = SearchGateway(repository, composer)
        analytics = AnalyticsService(repository, composer)

        routes: list[Route] = [
            Route("/health", endpoint=build_health_endpoint(settings.service_name), methods=["GET"]),
            Route("/ready", endpoint=build_ready_endpoint(settings.service_name, repository), methods=["GET"]),
            Route("/metrics", endpoint=self._build_metrics_endpoint(), methods=["GET"]),
            *build_search_routes(gateway, analytics),
        ]

        app = Starlette(
            debug=settings.is_debug(),
            routes=routes,
            lifespan=self._build_lifespan_manager(repository),
            exception_handlers={
                HTTPException: _http_exception_handler,
                Exception: _unhandled_exception_handler,
            },
        )
        app.state.settings = settings
        app.state.repository = repository
        app.state.search_gateway = gateway
        app.state.analytics = analytics

        app.add_middleware(BaseHTTPMiddleware, dispatch=trace_request)
        app.add_middleware(TraceContextMiddleware)

        if self.install_signals:
            install_shutdown_signals(app)
        logger.info("Content search server initialized (database=%s)", settings.database_path)
        return app

    def _init_observability(self) -> None:
        settings = self.settings
        configure_logging(
            level=settings.log_level,
            json_output=settings.log_json,
            access_log=settings.access_log,
        )
        otlp = settings.otlp_config()
        resource_attributes = {"service.version": __version__}
        init_metrics(service_name=settings.service_name, resource_attributes=resource_attributes, config=otlp)
        tracer_provider = init_tracing(service_name=settings.service_name, resource_attributes=resource_attributes)
        configure_trace_exporter(otlp, tracer_provider)
        if otlp.enabled:
            log_provider = init_log_exporter(
                service_name=settings.service_name,
                resource_attributes=resource_attributes,
            )
            configure_log_exporter(otlp, log_provider)

    def _create_repository(self) -> SqliteContentRepository:
        database = SqliteDatabase(
            self.settings.database_path,
            busy_timeout_ms=self.settings.sqlite_busy_timeout_ms,
        )
        database.initialize()
        return SqliteContentRepository(database)

    def _build_metrics_endpoint(self):
        async def metrics_endpoint(_: Request) -> Response:
            return Response(content=get_metrics(), media_type=get_metrics_content_type())

        return metrics_endpoint

    def _build_lifespan_manager(self, repository: AbstractContentRepository):
        @asynccontextmanager
        async def lifespan(app: Starlette):
            closed = False

            async def close(reason: str) -> None:
                nonlocal closed
                if closed:
                    return
                closed = True
                logger.info("Closing content repository (%s)", reason)
                await repository.close()

            shutdown_monitor: asyncio.Task | None = None
            shutdown_event = getattr(app.state, "shutdown_event", None)
            if isinstance(shutdown_event, asyncio.Event):

                async def watch_shutdown() -> None:
                    await shutdown_event.wait()
                    try:
                        await asyncio.wait_for(asyncio.shield(close("signal")), timeout=_SHUTDOWN_CLOSE_TIMEOUT_S)
                    except asyncio.TimeoutError:
                        logger.warning("Repository close timed out after %ss (signal)", _SHUTDOWN_CLOSE_TIMEOUT_S)

                shutdown_monitor = asyncio.create_task(watch_shutdown())

            try:
                yield
            finally:
                if shutdown_monitor is not None:
                    shutdown_monitor.cancel()
                    with suppress(asyncio.CancelledError):
                        await shutdown_monitor
                await close("lifespan-exit")

        return lifespan


async def _http_exception_handler(request: Request, exc: Exception) -> Response:
    if not isinstance(exc, HTTPException):
        return await _unhandled_exception_handler(request, exc)
    if exc.status_code == 404:
        return error_response("Route not found", 404)
    return JSONResponse({"success": False, "error": exc.detail}, status_code=exc.status_code, headers=exc.headers)


async def _unhandled_exception_handler(request: Request, exc: Exception) -> Response:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    ERROR_COUNT.labels(error_type=type(exc).__name__, component="http").inc()
    return error_response("Internal server error", 500)
