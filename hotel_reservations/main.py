from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from hotel_reservations.api.router import api_router
from hotel_reservations.core.config import get_settings
from hotel_reservations.core.errors import StorageFailure
from hotel_reservations.core.logging_config import configure_logging

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging()

    app = FastAPI(title=settings.app_name)

    @app.exception_handler(StorageFailure)
    async def _storage_failure(request: Request, exc: StorageFailure):
        logger.error("%s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable"})

    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()
