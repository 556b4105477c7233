"""Main ASGI application entry point.

Routes:
    /workflow  GET list, POST create, PUT update, DELETE delete canvas components
    /health    store reachability
    /metrics   Prometheus exposition

Usage:
    python -m diagram_store.app
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import asynccontextmanager
import logging
import sys
from typing import Any

from bson import ObjectId
from opentelemetry.trace import SpanKind
import orjson
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Match, Route

from diagram_store.adapters.mongo_repository import MongoRepository
from diagram_store.adapters.repository import AbstractRepository
from diagram_store.config import Settings, load_mongo_settings
from diagram_store.domain.components import canvas_components_adapter, component_ids_adapter
from diagram_store.domain.errors import (
    ConfigurationError,
    InvalidKeyError,
    OperationNotSupportedError,
    RecordNotFoundError,
    RepositoryError,
    StoreConnectionError,
    WriteFailedError,
)
from diagram_store.observability import (
    HTTP_REQUESTS,
    TraceContextMiddleware,
    configure_logging,
    configure_trace_exporter,
    create_span,
    get_metrics,
    get_metrics_content_type,
    init_tracing,
)
from diagram_store.runtime.health import build_health_endpoint
from diagram_store.service_layer.workflow_service import WorkflowService


logger = logging.getLogger(__name__)

# Translated repository errors -> HTTP status, most specific first
ERROR_STATUS: tuple[tuple[type[RepositoryError], int], ...] = (
    (InvalidKeyError, 400),
    (RecordNotFoundError, 404),
    (WriteFailedError, 409),
    (OperationNotSupportedError, 501),
    (StoreConnectionError, 503),
)


def _json_default(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    raise TypeError(f"Type is not JSON serializable: {type(value).__name__}")


class OrjsonResponse(JSONResponse):
    """JSON response rendered with orjson; ObjectIds become hex strings."""

    def render(self, content: Any) -> bytes:
        return orjson.dumps(content, default=_json_default)


async def _read_json(request: Request) -> Any:
    body = await request.body()
    try:
        return orjson.loads(body)
    except orjson.JSONDecodeError as exc:
        raise ValueError(f"Request body is not valid JSON: {exc}") from exc


def build_workflow_endpoint() -> Callable:
    """Return the ``/workflow`` endpoint dispatching on HTTP method."""

    async def list_components(service: WorkflowService, _: Request) -> Response:
        return OrjsonResponse(await service.list())

    async def create_components(service: WorkflowService, request: Request) -> Response:
        components = canvas_components_adapter.validate_python(await _read_json(request))
        created = await service.create(components)
        return OrjsonResponse({"created": [entry.value["_id"] for entry in created]}, status_code=201)

    async def update_components(service: WorkflowService, request: Request) -> Response:
        components = canvas_components_adapter.validate_python(await _read_json(request))
        updated = await service.update(components)
        return OrjsonResponse({"updated": len(updated)})

    async def delete_components(service: WorkflowService, request: Request) -> Response:
        ids = [entry.document_id for entry in component_ids_adapter.validate_python(await _read_json(request))]
        deleted = await service.delete(ids)
        missing = [document_id for document_id, removed in zip(ids, deleted) if not removed]
        return OrjsonResponse({"deleted": sum(deleted), "missing": missing})

    handlers = {
        "GET": list_components,
        "HEAD": list_components,
        "POST": create_components,
        "PUT": update_components,
        "DELETE": delete_components,
    }

    async def workflow_endpoint(request: Request) -> Response:
        service: WorkflowService = request.app.state.workflow_service
        return await handlers[request.method](service, request)

    return workflow_endpoint


async def metrics_endpoint(_: Request) -> Response:
    return Response(get_metrics(), media_type=get_metrics_content_type())


async def repository_error_handler(request: Request, exc: Exception) -> Response:
    status_code = next((status for kind, status in ERROR_STATUS if isinstance(exc, kind)), 500)
    logger.warning("%s %s failed with %s: %s", request.method, request.url.path, type(exc).__name__, exc)
    return OrjsonResponse({"error": str(exc), "type": type(exc).__name__}, status_code=status_code)


async def bad_request_handler(request: Request, exc: Exception) -> Response:
    if isinstance(exc, ValidationError):
        detail: Any = exc.errors(include_url=False, include_context=False, include_input=False)
    else:
        detail = str(exc)
    logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
    return OrjsonResponse({"error": detail}, status_code=400)


def _route_label(request: Request) -> str:
    """Path template of the route serving ``request``; unknown paths share one label."""
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match != Match.NONE:
            return route.path
    return "unmatched"


async def observe_request(request: Request, call_next: Callable) -> Response:
    """Wrap each request in a server span and count it by route and status."""
    route = _route_label(request)
    attributes = {"http.method": request.method, "http.route": route, "http.target": request.url.path}
    with create_span("http.request", kind=SpanKind.SERVER, attributes=attributes) as span:
        response: Response = await call_next(request)
        span.set_attribute("http.status_code", response.status_code)
    HTTP_REQUESTS.labels(route=route, method=request.method, status=str(response.status_code)).inc()
    return response


def _build_lifespan(settings: Settings, repository: AbstractRepository | None):
    @asynccontextmanager
    async def lifespan(app: Starlette):
        repo = repository or MongoRepository(
            settings.db_name,
            settings.workflow_collection,
            "_id",
            upsert=settings.workflow_upsert,
        )
        app.state.repository = repo
        app.state.workflow_service = WorkflowService(repo)
        logger.info("Serving workflow collection %s.%s", settings.db_name, settings.workflow_collection)
        try:
            yield
        finally:
            await repo.close()

    return lifespan


def create_app(settings: Settings | None = None, repository: AbstractRepository | None = None) -> Starlette:
    """Create the ASGI application.

    Args:
        settings: Server settings (loaded from the environment when omitted)
        repository: Repository to serve; a MongoRepository is opened at startup when omitted

    Returns:
        Starlette application; the repository is closed on shutdown
    """
    settings = settings or Settings()
    routes = [
        Route("/workflow", endpoint=build_workflow_endpoint(), methods=["GET", "POST", "PUT", "DELETE"]),
        Route("/health", endpoint=build_health_endpoint(), methods=["GET"]),
        Route("/metrics", endpoint=metrics_endpoint, methods=["GET"]),
    ]
    return Starlette(
        routes=routes,
        middleware=[
            Middleware(TraceContextMiddleware),
            Middleware(BaseHTTPMiddleware, dispatch=observe_request),
        ],
        exception_handlers={
            RepositoryError: repository_error_handler,
            ValidationError: bad_request_handler,
            ValueError: bad_request_handler,
        },
        lifespan=_build_lifespan(settings, repository),
    )


def main() -> None:
    """Main entry point for the HTTP server."""
    import uvicorn

    settings = Settings()
    configure_logging(settings.log_level, settings.log_json)

    try:
        load_mongo_settings()
    except ConfigurationError as exc:
        logger.error("Refusing to start: %s", exc)
        sys.exit(1)

    provider = init_tracing()
    configure_trace_exporter(settings, provider)

    logger.info("Starting diagram-store on %s:%d", settings.http_host, settings.http_port)
    uvicorn.run(
        create_app(settings),
        host=settings.http_host,
        port=settings.http_port,
        log_level=settings.log_level.lower(),
        log_config=None,  # Don't let uvicorn override our logging config
    )


if __name__ == "__main__":
    main()
