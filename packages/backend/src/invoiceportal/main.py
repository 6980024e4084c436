"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (tables, Redis, heartbeat).
Middleware, CORS, sessions, and routers all registered here.

Each app owns one LiveUpdateHub (app.state.live): the connection registry,
the broadcast bus, and the heartbeat monitor live exactly as long as the
app does.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from invoiceportal import __version__
from invoiceportal.api import api_router, files_router
from invoiceportal.config import settings
from invoiceportal.log_config import configure_logging
from invoiceportal.realtime.hub import LiveUpdateHub

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at shutdown.
    """
    logger.info(
        "portal.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    from invoiceportal.db.engine import engine, init_models

    try:
        await init_models()
        logger.info("portal.database_ready")
    except Exception as e:
        # Keep serving: /api/health reports the database as down
        logger.error("portal.database_unavailable", error=str(e))

    # Redis is optional — only rate limiting depends on it
    from invoiceportal.middleware.rate_limit import close_redis, init_redis

    try:
        await init_redis()
        logger.info("portal.redis_connected", url=settings.redis_url)
    except Exception as e:
        logger.warning("portal.redis_unavailable", error=str(e))

    hub: LiveUpdateHub = app.state.live
    hub.start()

    yield

    # Shutdown
    logger.info("portal.shutdown")
    await hub.stop()
    await close_redis()
    await engine.dispose()


async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler: log the traceback, hide it from the client."""
    logger.exception("portal.unhandled_error", path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Something went wrong on the server."},
    )


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    configure_logging()

    app = FastAPI(
        title="Invoice Portal",
        description="Upload and manage PDF invoices with live dashboard updates",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.live = LiveUpdateHub(
        admin_path=settings.live_path,
        heartbeat_interval=settings.heartbeat_interval_seconds,
    )
    app.add_exception_handler(Exception, unhandled_error)

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → Security → RateLimit → Session → CORS → handler

    from invoiceportal.middleware.rate_limit import RateLimitMiddleware
    from invoiceportal.middleware.request_id import RequestIdMiddleware
    from invoiceportal.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie=settings.session_cookie,
        max_age=settings.session_max_age_seconds,
        same_site="lax",
        https_only=settings.is_production,
    )
    app.add_middleware(
        RateLimitMiddleware,
        api_limit=settings.rate_limit_api,
        api_window=settings.rate_limit_api_window_seconds,
        login_limit=settings.rate_limit_login,
        login_window=settings.rate_limit_login_window_seconds,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)

    # Mount API routes and stored files
    app.include_router(api_router)
    app.include_router(files_router)

    # Mount WebSocket route (live updates)
    from invoiceportal.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: invoiceportal.main:app)
app = create_app()
