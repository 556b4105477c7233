"""Health endpoint factory."""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.responses import JSONResponse

from diagram_store.domain.errors import StoreConnectionError


if TYPE_CHECKING:
    from starlette.requests import Request


def build_health_endpoint(ping_timeout: float = 2.0):
    """Return a coroutine function reporting whether the store answers a ping.

    Repositories without a ``ping`` (the in-memory one) are always healthy.
    """

    async def health_check(request: Request) -> JSONResponse:
        repository = request.app.state.repository
        payload = {
            "status": "healthy",
            "repository": type(repository).__name__,
            "collection": getattr(repository, "collection_name", None),
        }

        ping = getattr(repository, "ping", None)
        if ping is not None:
            try:
                await ping(timeout=ping_timeout)
            except StoreConnectionError as exc:
                payload["status"] = "degraded"
                payload["error"] = str(exc)
                return JSONResponse(payload, status_code=503)

        return JSONResponse(payload)

    return health_check
