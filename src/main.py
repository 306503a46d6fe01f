import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import HTMLResponse
from fastapi.staticfiles import StaticFiles

from api.v1.api import api_router
from core.config import get_settings
from core.error_handler import setup_exception_handlers, setup_logging
from core.middleware import CorrelationIdMiddleware
from dependencies.db import create_schema, engine


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    if get_settings().AUTO_CREATE_SCHEMA:
        await create_schema()
        logger.info("Database schema ready")
    try:
        yield
    finally:
        await engine.dispose()


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging()

    app = FastAPI(
        title=f"{settings.APP_NAME} API",
        description="Turn restaurant menus into shared group-ordering carts",
        version="0.1.0",
        docs_url=None,  # We'll mount docs under /api/v1/docs
        redoc_url=None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.CORS_ORIGINS),
        allow_credentials=settings.ALLOW_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    setup_exception_handlers(app)
    # Added last so it runs first and every handler sees the correlation ID
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(api_router, prefix="/api/v1")

    # Original menu files for "view original"
    storage_dir = Path(settings.STORAGE_DIR)
    storage_dir.mkdir(parents=True, exist_ok=True)
    app.mount(
        settings.STORAGE_URL_PATH,
        StaticFiles(directory=storage_dir),
        name="menu-uploads",
    )

    @app.get("/api/v1/docs", include_in_schema=False)
    def custom_swagger_ui_html() -> HTMLResponse:
        return get_swagger_ui_html(
            openapi_url="/openapi.json", title=f"{settings.APP_NAME} API Docs"
        )

    @app.get("/api/v1/redoc", include_in_schema=False)
    def redoc_html() -> HTMLResponse:
        return get_redoc_html(
            openapi_url="/openapi.json", title=f"{settings.APP_NAME} API Redoc"
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
