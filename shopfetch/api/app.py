"""FastAPI application factory."""

import uuid
from collections.abc import Awaitable, Callable

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from shopfetch import __version__
from shopfetch.aggregator import ListingAggregator
from shopfetch.aggregator.factory import build_aggregator
from shopfetch.api.routes import router
from shopfetch.errors import ShopFetchError
from shopfetch.observability import bind_request_context, clear_request_context
from shopfetch.settings import AppSettings, get_settings


logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"


def create_app(
    settings: AppSettings | None = None,
    aggregator: ListingAggregator | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings (loaded from the environment if omitted).
        aggregator: Pre-built aggregator (built from settings if omitted).

    Returns:
        The configured application.
    """
    settings = settings or get_settings()

    application = FastAPI(title="Shopfetch API", version=__version__)
    application.state.aggregator = aggregator or build_aggregator(settings)
    application.add_middleware(GZipMiddleware, minimum_size=1000)
    application.include_router(router)

    @application.middleware("http")
    async def request_context(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        bind_request_context(request_id)
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    @application.exception_handler(ShopFetchError)
    async def shopfetch_error_handler(
        request: Request, exc: ShopFetchError
    ) -> JSONResponse:
        logger.warning(
            "request_error",
            component="api",
            path=request.url.path,
            error_kind=exc.kind.value,
            status_code=exc.http_status,
        )
        return JSONResponse(
            status_code=exc.http_status,
            content={"error": exc.message, "kind": exc.kind.value},
        )

    return application
