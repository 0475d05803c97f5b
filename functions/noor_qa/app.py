"""
FastAPI application factory for the Q&A service.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from noor_qa.config import Settings, get_settings
from noor_qa.middleware import BodySizeLimitMiddleware, SecurityHeadersMiddleware
from noor_qa.repository import DataRetrievalError, DataWriteError, QuestionRepository
from noor_qa.routes import admin_router, public_router
from noor_qa.security import LoginRateLimiter
from noor_qa.sessions import CookieOptions, KeyValueSessionStore, ServerSessionMiddleware
from noor_qa.storage import KeyValueStore, StoreError, build_key_value_store

logger = logging.getLogger(__name__)

GENERIC_SERVER_ERROR = "An internal server error occurred."


def _error(status_code: int, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(
        {"success": False, "error": message}, status_code=status_code, headers=headers
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail), getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        logger.info("Rejected malformed request to %s: %s", request.url.path, exc.errors())
        return _error(400, "Invalid request body.")

    @app.exception_handler(DataRetrievalError)
    @app.exception_handler(DataWriteError)
    @app.exception_handler(StoreError)
    async def store_error(request: Request, exc: Exception):
        logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
        return _error(500, GENERIC_SERVER_ERROR)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, GENERIC_SERVER_ERROR)


def create_app(
    settings: Optional[Settings] = None, store: Optional[KeyValueStore] = None
) -> FastAPI:
    settings = settings or get_settings()
    store = store if store is not None else build_key_value_store(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await app.state.store.close()

    app = FastAPI(title="Noor Q&A", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.questions = QuestionRepository(store)
    app.state.session_store = KeyValueSessionStore(store)
    app.state.login_limiter = LoginRateLimiter(
        store,
        limit=settings.login_rate_limit,
        window_seconds=settings.login_rate_window,
    )

    cookie = CookieOptions(
        name=settings.session_cookie_name,
        max_age=settings.session_max_age,
        secure=settings.cookie_secure,
        http_only=True,
        same_site=settings.session_same_site,
    )
    # Added innermost first; CORS ends up outermost.
    app.add_middleware(
        ServerSessionMiddleware,
        secret_key=settings.session_secret.get_secret_value(),
        cookie=cookie,
    )
    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.max_body_bytes)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(public_router, prefix=settings.api_prefix)
    app.include_router(admin_router, prefix=settings.api_prefix)
    return app
