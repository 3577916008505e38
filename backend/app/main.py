"""
User API Backend — FastAPI Application Factory
===============================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() builds the request pipeline (plus the
       rate limiter when enabled) and registers every business handler as a
       route endpoint behind it.
Who:   Called by uvicorn to start the server (uvicorn app.main:app).
When:  Once at server startup; the returned app handles all subsequent requests.

Application Architecture:
    ┌──────────────────────────────────────────────────────────────┐
    │                        FastAPI App                           │
    │                                                              │
    │  Request pipeline (per route, app.middleware):               │
    │  Errors → Correlation ID → Logging → Performance → CORS      │
    │         → [Rate Limit] → handler                             │
    │                                                              │
    │  Routes:                                                     │
    │  GET /health   POST/GET /users   GET/PUT/DELETE /users/{id}  │
    │  POST /email/send                                            │
    └──────────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:   configure logging, validate configuration
    Shutdown:  wait briefly for background tasks, dispose the database engine
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable, List, Optional, Tuple

from fastapi import FastAPI

from app import __version__
from app.adapters import endpoint
from app.config import Settings, settings
from app.database import dispose_engine
from app.logger import setup_logging
from app.middleware import default_pipeline
from app.middleware.pipeline import Handler
from app.middleware.rate_limit import limiter_from_settings
from app.routes import email, health, users
from app.services import background
from app.services.counter_store import CounterStore

logger = logging.getLogger(__name__)

# (method, path, handler)
ROUTES: List[Tuple[str, str, Handler]] = [
    ("GET", "/health", health.health_check),
    ("POST", "/users", users.create_user),
    ("GET", "/users", users.list_users),
    ("GET", "/users/{id}", users.get_user),
    ("PUT", "/users/{id}", users.update_user),
    ("DELETE", "/users/{id}", users.delete_user),
    ("POST", "/email/send", email.send_email),
]


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════


def make_lifespan(config: Settings) -> Callable:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # ── Startup ───────────────────────────────────────────────────────
        setup_logging()
        logger.info("%s %s starting up (env=%s)", config.app_name, __version__, config.app_env)

        try:
            config.validate_required_for_production()
        except ValueError as e:
            # Keep serving: health checks and error responses still work
            logger.error("Configuration error: %s", str(e))

        if config.rate_limit_enabled:
            logger.info(
                "Rate limiting enabled: %d requests / %ds",
                config.rate_limit_points,
                config.rate_limit_duration,
            )

        yield

        # ── Shutdown ──────────────────────────────────────────────────────
        logger.info("%s shutting down...", config.app_name)
        await background.drain()
        await dispose_engine()
        logger.info("Shutdown complete.")

    return lifespan


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════


def create_app(
    app_settings: Optional[Settings] = None,
    counter_store: Optional[CounterStore] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        app_settings:   Overrides the module-level settings (tests)
        counter_store:  Rate-limit counter store; defaults to the SQL-backed one
    """
    config = app_settings or settings

    app = FastAPI(
        title="User API",
        description="User management and transactional email API.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=make_lifespan(config),
    )

    pipeline = default_pipeline(config, limiter=limiter_from_settings(config, counter_store))

    for method, path, handler in ROUTES:
        app.add_api_route(
            path,
            endpoint(handler, pipeline),
            methods=[method],
            name=handler.__name__,
        )

    return app


# ── Application Instance ─────────────────────────────────────────────────
app = create_app()
