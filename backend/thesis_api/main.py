"""FastAPI application entrypoint.

`create_app` wires configuration, storage, middleware, error handlers and
the HTTP controllers in `routes/`. The process entry point owns the
database object: it is created in the lifespan, stored on `app.state.db`
and disposed at shutdown.

Run locally with `uvicorn thesis_api.main:app --reload` from `backend/`.
"""

import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings
from .database import Database
from .errors import AppError, app_error_handler, storage_error_handler
from .routes import ROUTERS
from .utils.ai_correction import TextCorrector
from .utils.rate_limit import InMemoryRateLimiter
from .utils.storage import LocalFileStorage

API_PREFIX = "/api"

logger = logging.getLogger("thesis_api.api")


def _configure_logging(level: str):
    if not logging.getLogger().handlers:
        logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    logging.getLogger("thesis_api").setLevel(level)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()
    _configure_logging(settings.LOG_LEVEL)

    storage = LocalFileStorage(settings.UPLOAD_DIR, settings.UPLOAD_BASE_URL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db = Database(settings.DATABASE_URL)
        db.create_db_and_tables()
        app.state.db = db
        storage.ensure_root()
        logger.info("database ready (%s)", "sqlite" if db.is_sqlite else "server")
        try:
            yield
        finally:
            db.dispose()

    app = FastAPI(title="Thesis Coaching API", lifespan=lifespan)
    app.state.settings = settings
    app.state.storage = storage
    app.state.corrector = TextCorrector(settings.OPENAI_API_KEY, settings.OPENAI_MODEL)
    app.state.rate_limiter = InMemoryRateLimiter(settings.RATE_LIMIT_MAX, settings.RATE_LIMIT_WINDOW_SECONDS)

    # Wide-open CORS in dev keeps local frontends working without extra config.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.ALLOW_DEV_CORS else settings.CORS_ORIGINS,
        allow_credentials=not settings.ALLOW_DEV_CORS,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Content-Disposition"],
    )

    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next):
        if not request.url.path.startswith(API_PREFIX) or request.method == "OPTIONS":
            return await call_next(request)
        limiter: InMemoryRateLimiter = request.app.state.rate_limiter
        decision = limiter.hit(request.client.host if request.client else "unknown")
        if not decision.allowed:
            return JSONResponse(
                status_code=429,
                content={"detail": "too many requests, please try again later", "code": "rate_limited"},
                headers=limiter.headers(decision),
            )
        response = await call_next(request)
        response.headers.update(limiter.headers(decision))
        return response

    # Registered last so it runs first and every response carries the id.
    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        req_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = req_id
        started = time.perf_counter()
        response: Response
        try:
            response = await call_next(request)
        except Exception:
            elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
            logger.exception(
                "request_failed %s",
                json.dumps(
                    {
                        "request_id": req_id,
                        "path": request.url.path,
                        "method": request.method,
                        "duration_ms": elapsed_ms,
                        "client": request.client.host if request.client else "unknown",
                    },
                    ensure_ascii=True,
                ),
            )
            raise
        response.headers["X-Request-ID"] = req_id
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        if request.url.path.startswith(API_PREFIX):
            logger.info(
                "request_done %s",
                json.dumps(
                    {
                        "request_id": req_id,
                        "path": request.url.path,
                        "method": request.method,
                        "status_code": response.status_code,
                        "duration_ms": elapsed_ms,
                        "client": request.client.host if request.client else "unknown",
                    },
                    ensure_ascii=True,
                ),
            )
        return response

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(SQLAlchemyError, storage_error_handler)

    for router in ROUTERS:
        app.include_router(router, prefix=API_PREFIX)

    app.mount(settings.UPLOAD_BASE_URL, StaticFiles(directory=storage.root, check_dir=False), name="uploads")
    return app


app = create_app()
