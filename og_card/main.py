"""FastAPI application for OG card rendering."""

import logging
import uuid
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, Response

from og_card import __version__
from og_card.config import settings
from og_card.errors import OgCardError
from og_card.logging_config import request_id_var, setup_dev_logging, setup_production_logging
from og_card.routes import create_api_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):  # type: ignore[no-untyped-def]
    """Application lifespan handler."""
    logger.info(
        "=== OG card server starting ===",
        extra={"composer": settings.composer_strategy, "background": settings.background},
    )
    yield
    logger.info("=== OG card server stopped ===")


async def handle_card_error(request: Request, exc: Exception) -> Response:
    """Plain-text error; 400 for missing input, 500 for everything else."""
    status_code = exc.status_code if isinstance(exc, OgCardError) else 500
    message = str(exc) or "Unknown error"
    if not isinstance(exc, OgCardError):
        logger.exception(f"Unhandled OG image error: {message}", extra={"path": request.url.path})
    elif status_code >= 500:
        logger.error(f"OG image error: {message}", extra={"path": request.url.path})
    else:
        logger.info(f"OG image rejected: {message}", extra={"path": request.url.path})
    return PlainTextResponse(f"Error: {message}", status_code=status_code)


def create_app() -> FastAPI:
    """Build the application with routes, middleware and error handlers."""
    application = FastAPI(
        title="OG Card",
        description="Open Graph card rendering",
        version=__version__,
        lifespan=lifespan,
    )

    @application.middleware("http")
    async def request_context(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        except Exception as exc:
            # Unexpected errors are answered here so the reply still passes
            # back out through CORSMiddleware
            response = await handle_card_error(request, exc)
        finally:
            request_id_var.reset(token)
        response.headers["X-Request-ID"] = request_id
        return response

    # Images are embedded cross-origin by social crawlers and web apps
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    application.add_exception_handler(OgCardError, handle_card_error)
    application.include_router(create_api_router())
    return application


app = create_app()


def run() -> None:
    """Run the server with uvicorn."""
    if settings.dev_mode:
        setup_dev_logging(json_format=settings.log_json)
    else:
        setup_production_logging()
    uvicorn.run(
        "og_card.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.dev_mode,
        log_config=None,
    )


if __name__ == "__main__":
    run()
