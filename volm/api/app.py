"""FastAPI application factory for volm.

Usage::

    from volm.api.app import create_app

    app = create_app(service=service, config=config)

The factory is used by both the production bootstrap (``volm.app``) and
unit tests.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from volm.api.routes import router
from volm.api.schemas import ErrorResponse
from volm.errors import NotFoundError, SelectorMismatchError, UpstreamError
from volm.observability.metrics import http_requests_total

_log = structlog.get_logger(component="api.app")


def _error(status_code: int, error: str, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, detail=detail).model_dump(),
    )


def create_app(service: Any, config: Any = None) -> FastAPI:
    """Create and configure the volm FastAPI application.

    Args:
        service: VolumeService instance.
        config:  VolmConfig.  Only ``api.mode`` is read, for the info route.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from volm import __version__

    mode = "release"
    if config is not None and hasattr(config, "api"):
        mode = config.api.mode

    app = FastAPI(
        title="volm",
        summary="Kubernetes PersistentVolumeClaim usage API",
        version=__version__,
        debug=mode == "debug",
    )

    app.state.service = service
    app.state.config = config
    app.state.mode = mode

    app.include_router(router)

    # -----------------------------------------------------------------------
    # Request logging and metrics
    # -----------------------------------------------------------------------

    @app.middleware("http")
    async def observe_requests(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        start = time.monotonic()
        response = await call_next(request)
        latency_ms = round((time.monotonic() - start) * 1000.0, 2)

        # Label by route template so /vol/{name} does not explode cardinality.
        route = request.scope.get("route")
        route_path = getattr(route, "path", "unmatched")
        http_requests_total.labels(
            method=request.method,
            route=route_path,
            status=str(response.status_code),
        ).inc()
        _log.info(
            "http_request",
            method=request.method,
            path=str(request.url.path),
            status=response.status_code,
            latency_ms=latency_ms,
        )
        return response

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------

    @app.exception_handler(NotFoundError)
    async def not_found_handler(_request: Request, exc: NotFoundError) -> JSONResponse:
        return _error(404, "NOT_FOUND", str(exc))

    @app.exception_handler(SelectorMismatchError)
    async def selector_mismatch_handler(_request: Request, exc: SelectorMismatchError) -> JSONResponse:
        return _error(403, "SELECTOR_MISMATCH", str(exc))

    @app.exception_handler(UpstreamError)
    async def upstream_handler(_request: Request, exc: UpstreamError) -> JSONResponse:
        return _error(502, "UPSTREAM_ERROR", str(exc))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions -- never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return _error(500, "INTERNAL_ERROR", "An unexpected error occurred.")

    return app
