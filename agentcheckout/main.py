"""Agent Checkout HTTP application.

This module builds the FastAPI application and configures core
middleware, routers, exception handlers and startup/shutdown events.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agentcheckout.api.dependencies import status_for_kind
from agentcheckout.api.health import router as health_router
from agentcheckout.api.middleware import setup_middleware
from agentcheckout.api.orders import router as orders_router
from agentcheckout.api.sessions import router as sessions_router
from agentcheckout.api.webhooks import router as webhooks_router
from agentcheckout.container import Container, build_container
from agentcheckout.domain.exceptions import DomainError
from agentcheckout.infrastructure.config import get_settings
from agentcheckout.infrastructure.logging import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup and shutdown events.

    Args:
        app: The FastAPI application instance.

    Yields:
        None after startup, cleanup happens after yield.
    """
    container: Container = app.state.container

    # Startup
    logger.info(
        "Starting Agent Checkout API",
        version=container.settings.api_version,
        gateway=container.gateway.name,
        debug=container.settings.debug,
    )
    await container.store.start()

    yield

    # Shutdown
    await container.store.stop()
    logger.info("Shutting down Agent Checkout API")


def create_app(container: Container | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        container: Service container; built from settings when None.

    Returns:
        Configured application.
    """
    container = container or build_container()
    settings = container.settings

    app = FastAPI(
        title="Agent Checkout API",
        description="Checkout sessions and payments for autonomous agents",
        version=settings.api_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.container = container

    # CORS middleware (must be added before custom middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Setup custom middleware (request ID, API key auth)
    setup_middleware(app, api_key=settings.api_key)

    # Include routers
    app.include_router(health_router, tags=["Health"])
    app.include_router(sessions_router)
    app.include_router(orders_router)
    app.include_router(webhooks_router)

    register_exception_handlers(app)
    return app


# ============================================================================
# Custom Exception Handlers
# ============================================================================


def _error_response(request: Request, status_code: int, error_code: str, message: str, details) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error_code": error_code,
            "message": message,
            "details": details,
            "request_id": getattr(request.state, "request_id", None),
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with consistent format."""
        detail = exc.detail
        if isinstance(detail, dict):
            error_code = detail.get("error_code", "ERROR")
            message = detail.get("message", str(detail))
            details = detail.get("details", {})
        else:
            error_code = "ERROR"
            message = str(detail)
            details = {}
        return _error_response(request, exc.status_code, error_code, message, details)

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        """Map domain errors escaping a route to their HTTP status."""
        return _error_response(request, status_for_kind(exc.kind), exc.kind, exc.message, exc.details)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Handle uncaught exceptions with consistent format."""
        logger.exception(
            "Unhandled exception in handler",
            path=request.url.path,
            method=request.method,
            error=str(exc),
        )
        return _error_response(request, 500, "INTERNAL_ERROR", "An internal error occurred", {})


def run() -> None:
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings)
    uvicorn.run(create_app(), host="0.0.0.0", port=8000, log_config=None)


if __name__ == "__main__":
    run()
