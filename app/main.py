"""Application entrypoint for the Google OAuth broker."""

import logging
from collections.abc import Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from app.api import router as api_router
from app.core.config import Settings, get_settings
from app.core.db import create_tables
from app.core.errors import BrokerError, DownstreamError
from app.core.logging import configure_logging

logger = logging.getLogger(__name__)

CORS_ALLOW_METHODS = "GET,POST,OPTIONS"
CORS_ALLOW_HEADERS = "Authorization,Content-Type"


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""
    settings = get_settings()
    configure_logging(settings)

    missing = settings.missing_oauth_settings()
    if missing:
        logger.error("OAuth broker is missing configuration", extra={"missing": missing})

    application = FastAPI(title="Google OAuth Broker", version=settings.version)

    _configure_cors(application)
    _configure_exception_handlers(application)

    application.include_router(api_router)

    @application.on_event("startup")
    async def _on_startup() -> None:  # pragma: no cover - exercised via tests
        await create_tables()

    return application


def cors_headers(settings: Settings) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": settings.cors_origin,
        "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
        "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
    }


def _configure_cors(application: FastAPI) -> None:
    @application.middleware("http")
    async def _cors(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        headers = cors_headers(get_settings())
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=headers)
        response = await call_next(request)
        response.headers.update(headers)
        return response


def _configure_exception_handlers(application: FastAPI) -> None:
    application.add_exception_handler(BrokerError, _broker_exception_handler)
    application.add_exception_handler(HTTPException, _http_exception_handler)
    application.add_exception_handler(RequestValidationError, _validation_exception_handler)
    application.add_exception_handler(Exception, _unhandled_exception_handler)


async def _broker_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, BrokerError)
    log = logger.warning if exc.status_code < 500 or isinstance(exc, DownstreamError) else logger.error
    log(
        exc.message,
        extra={"path": request.url.path, "status_code": exc.status_code, "error_type": type(exc).__name__},
    )
    return _error_response(exc.to_payload(), exc.status_code)


async def _http_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, HTTPException)
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _error_response({"error": message}, exc.status_code)


async def _validation_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, RequestValidationError)
    logger.info("Validation error", extra={"errors": exc.errors()})
    return _error_response({"error": "Validation error", "detail": jsonable_encoder(exc.errors())}, status_code=400)


async def _unhandled_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled application error")
    return _error_response({"error": "internal_error", "detail": str(exc)}, status_code=500)


def _error_response(content: dict, status_code: int) -> JSONResponse:
    # Exception handlers run outside the CORS middleware for unhandled errors.
    return JSONResponse(status_code=status_code, content=content, headers=cors_headers(get_settings()))


app = create_app()
