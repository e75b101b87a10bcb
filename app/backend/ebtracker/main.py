"""FastAPI application entrypoint."""

from fastapi import FastAPI

from ebtracker.api.router import api_router
from ebtracker.core.config import get_settings
from ebtracker.core.errors import setup_exception_handlers, success_response
from ebtracker.core.logging import configure_logging


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""

    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
    )

    setup_exception_handlers(app)
    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/", tags=["system"])
    def root() -> dict[str, object]:
        return success_response({"service": settings.app_name, "status": "running"})

    return app


app = create_app()
