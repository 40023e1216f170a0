"""Health and readiness endpoint factories."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import time
from typing import TYPE_CHECKING

from starlette.responses import JSONResponse

from content_search_server.errors import StorageError


if TYPE_CHECKING:
    from starlette.requests import Request

    from content_search_server.adapters.content_repository import AbstractContentRepository


logger = logging.getLogger(__name__)


def build_health_endpoint(service_name: str, *, started_at: float | None = None):
    """Return a liveness endpoint; it never touches storage."""
    start = started_at if started_at is not None else time.monotonic()

    async def health_check(_: Request) -> JSONResponse:
        return JSONResponse(
            {
                "status": "healthy",
                "service": service_name,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "uptime": round(time.monotonic() - start, 3),
            }
        )

    return health_check


def build_ready_endpoint(service_name: str, repository: AbstractContentRepository):
    """Return a readiness endpoint that pings storage (503 when it does not answer)."""

    async def ready_check(_: Request) -> JSONResponse:
        try:
            ready = await repository.ping()
        except StorageError as exc:
            logger.warning("Readiness check failed: %s", exc)
            return JSONResponse({"status": "not ready", "service": service_name, "error": str(exc)}, status_code=503)
        if not ready:
            return JSONResponse({"status": "not ready", "service": service_name}, status_code=503)
        return JSONResponse({"status": "ready", "service": service_name})

    return ready_check
