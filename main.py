from typing import Optional
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from lms_cache.core.config import settings
from lms_cache.core.exceptions import StoreError, UnknownStoreError
from lms_cache.core.logging import configure_logging
from lms_cache.endpoints import cache_admin
from lms_cache.middleware.exceptions import (
    global_exception_handler,
    http_exception_handler,
    store_error_handler,
    unknown_store_handler,
    validation_exception_handler,
)
from lms_cache.middleware.logging import RequestLoggingMiddleware
from lms_cache.services.snapshot import create_snapshot_backend
from lms_cache.store.container import StateContainer, create_container

logger = logging.getLogger(__name__)

def create_app(container: Optional[StateContainer] = None) -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_STR}/openapi.json"
    )
    app.state.container = container or create_container(settings, snapshots=create_snapshot_backend(settings))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(Exception, global_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(UnknownStoreError, unknown_store_handler)
    app.add_exception_handler(StoreError, store_error_handler)

    app.include_router(cache_admin.router, prefix=settings.API_V1_STR, tags=["Cache"])

    @app.on_event("startup")
    async def startup_event():
        configure_logging()
        restored = await app.state.container.restore()
        if restored:
            logger.info(f"Restored snapshots for: {', '.join(restored)}")

    @app.on_event("shutdown")
    async def shutdown_event():
        state = app.state.container
        await state.persist()
        await state.session.backend.close()
        if state.snapshots is not None:
            await state.snapshots.close()

    return app

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
