"""FastAPI application factory with middleware, routers, and lifespan."""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .api import api_router
from .config import settings, setup_logging
from .database.base import SessionLocal
from .errors import ServiceError
from .notifications.engine import DispatchEngine
from .notifications.senders import create_channel_sender
from .notifications.store import InMemoryDeliveryLogStore, SqlDeliveryLogStore
from .preferences.store import InMemoryPreferenceStore, SqlPreferenceStore
from .rate_limit import limiter

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

_startup_time: float = 0.0


def _run_migrations() -> None:
    """Run Alembic migrations (upgrade head) on startup."""
    from alembic import command
    from alembic.config import Config

    alembic_cfg = Config()
    alembic_cfg.set_main_option("script_location", str(Path(__file__).parent.parent / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.effective_database_url)
    command.upgrade(alembic_cfg, "head")


def build_dispatch_engine(app: FastAPI) -> DispatchEngine:
    """Compose stores, channel senders and the engine, and publish them on app.state."""
    if settings.store_backend == "memory":
        logger.warning("Using in-memory stores: preferences and delivery logs are lost on restart")
        preferences = InMemoryPreferenceStore()
        logs = InMemoryDeliveryLogStore()
    else:
        _run_migrations()
        preferences = SqlPreferenceStore(SessionLocal)
        logs = SqlDeliveryLogStore(SessionLocal)

    engine = DispatchEngine(
        preferences,
        logs,
        create_channel_sender(),
        send_timeout=settings.sender_timeout_seconds,
        max_workers=settings.sender_max_workers,
    )
    app.state.preference_store = preferences
    app.state.dispatch_engine = engine
    return engine


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle."""
    global _startup_time
    _startup_time = time.time()

    setup_logging()
    logger.info("Starting NotifyHub (store backend: %s)", settings.store_backend)
    engine = build_dispatch_engine(app)

    yield

    # Waits for in-flight sends so their terminal status is still recorded;
    # the join runs off the event loop
    await asyncio.to_thread(engine.shutdown, True)
    logger.info("NotifyHub stopped")


def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> Response:
    retry_after = "60"
    return JSONResponse(
        {"error": "Too many requests", "detail": str(exc.detail), "retry_after": int(retry_after)},
        status_code=429,
        headers={"Retry-After": retry_after},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="NotifyHub",
        version=VERSION,
        lifespan=lifespan,
    )

    # --- Exception handlers ---
    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        return JSONResponse(exc.to_payload(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        problems = [
            {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", ""), "type": err.get("type", "")}
            for err in exc.errors()
        ]
        return JSONResponse({"error": "Invalid request", "detail": problems}, status_code=400)

    app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    # --- Middleware stack (LIFO: last added = outermost) ---

    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    if settings.trusted_hosts_list != ["*"]:
        app.add_middleware(
            TrustedHostMiddleware,
            allowed_hosts=settings.trusted_hosts_list,
        )

    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains"
        return response

    app.include_router(api_router)

    # --- Health check ---
    @app.get("/health")
    def health(request: Request):
        store_status = "ok"
        try:
            request.app.state.preference_store.ping()
            request.app.state.dispatch_engine.logs.ping()
        except Exception:
            logger.warning("Health check: store unreachable", exc_info=True)
            store_status = "unreachable"

        status = "ok" if store_status == "ok" else "degraded"
        uptime = round(time.time() - _startup_time, 1) if _startup_time else 0.0

        return {
            "status": status,
            "store": store_status,
            "version": VERSION,
            "uptime_seconds": uptime,
        }

    return app


app = create_app()
