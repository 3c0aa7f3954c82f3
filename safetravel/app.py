"""
FastAPI application entry point for the Safetravel API.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from safetravel.config import get_settings
from safetravel.errors import ApiError, BadRequestError
from safetravel.routes import router

logger = logging.getLogger(__name__)


async def _handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers
    )


async def _handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # Malformed bodies are plain bad requests for this API, not 422s.
    logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.errors())
    error = BadRequestError("Requête invalide")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Safetravel API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ApiError, _handle_api_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
