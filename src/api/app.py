from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pdftool import __version__
from pdftool.config import AppConfig
from pdftool.core import ConversionService
from pdftool.errors import ConversionError
from pdftool.settings import load_settings_config

from .routers import convert, health
from .schemas import ErrorDetail

APP_NAME = "pdftool"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

STATUS_BY_CODE = {
    "NO_FILES": 400,
    "TOO_MANY_FILES": 400,
    "UNSUPPORTED_FORMAT": 400,
    "SIZE_LIMIT": 413,
}

logger = logging.getLogger(__name__)


async def conversion_error_handler(request: Request, exc: ConversionError) -> JSONResponse:
    status = STATUS_BY_CODE.get(exc.code, 500)
    if status >= 500:
        logger.error("Request failed [%s]: %s", exc.code, exc)
    return JSONResponse(status_code=status, content=ErrorDetail(error=exc.code, details=str(exc)).model_dump())


def create_app(config: AppConfig | None = None, *, service: ConversionService | None = None) -> FastAPI:
    config = config or load_settings_config()
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    service = service or ConversionService(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "%s ready (local codec: %s, remote: %s)",
            APP_NAME,
            "available" if service.capabilities.local_available else "unavailable",
            "configured" if service.capabilities.remote_available else "not configured",
        )
        try:
            yield
        finally:
            service.close()

    app = FastAPI(title=APP_NAME, version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.service = service
    app.state.started_at = time.time()

    app.add_exception_handler(ConversionError, conversion_error_handler)
    app.include_router(health.router)
    app.include_router(convert.router)
    return app


__all__ = ["APP_NAME", "STATUS_BY_CODE", "create_app"]
