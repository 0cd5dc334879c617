"""FastAPI application factory for the read-only JSON API."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.staticfiles import StaticFiles

from property_search.config import Settings
from property_search.db import PropertySearchStorage
from property_search.logging import configure_logging, get_logger

logger = get_logger(__name__)

# Responses smaller than this are sent uncompressed
GZIP_MINIMUM_SIZE = 1000


def create_app(
    settings: Settings | None = None,
    *,
    storage: PropertySearchStorage | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Application settings. Loaded from env if not provided.
        storage: Storage to serve from. Opened from ``settings.database_path``
            for the lifetime of the app if not provided.
    """
    if settings is None:
        settings = Settings()

    configure_logging(json_output=False)

    owns_storage = storage is None
    app_storage = storage or PropertySearchStorage(settings.database_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if owns_storage:
            await app_storage.initialize()
        app.state.storage = app_storage
        app.state.settings = settings
        logger.info("web_server_started", database=settings.database_path)

        yield

        if owns_storage:
            await app_storage.close()
        logger.info("web_server_stopped")

    app = FastAPI(title="UK Property Search", lifespan=lifespan)
    app.add_middleware(GZipMiddleware, minimum_size=GZIP_MINIMUM_SIZE)

    from property_search.web.routes import router

    app.include_router(router)

    # Registered last so the API routes take precedence over the front end
    if settings.static_dir:
        static_dir = Path(settings.static_dir)
        if static_dir.is_dir():
            app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
        else:
            logger.warning("static_dir_missing", path=str(static_dir))

    return app
