"""
FastAPI application factory.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import get_settings
from .core.database import init_db, close_db
from .core.redis import close_redis
from .api.router import router

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Deliberation",
        description="Session and turn scheduling engine for multi-agent deliberation",
        version="1.0.0",
        docs_url="/docs" if settings.env == "development" else None,
        redoc_url="/redoc" if settings.env == "development" else None,
    )

    # ── CORS ─────────────────────────────────────────────────────
    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Startup ──────────────────────────────────────────────────
    @app.on_event("startup")
    async def on_startup():
        configure_logging()
        logger.info("Starting deliberation engine (env=%s)", settings.env)

        await init_db()

        from .core.flags import get_flags
        flags = get_flags()
        logger.info(
            "Flags: redis=%s llm=%s persona_updates=%s strategies=%s cron=%s",
            flags.use_redis, flags.llm_provider, flags.enable_persona_updates,
            flags.enable_session_strategies, flags.enable_cron_endpoints,
        )
        logger.info("Deliberation engine is ready")

    # ── Shutdown ─────────────────────────────────────────────────
    @app.on_event("shutdown")
    async def on_shutdown():
        from .services.llm import close_client
        await close_client()
        await close_db()
        await close_redis()
        logger.info("Deliberation engine shut down")

    # ── Routes ───────────────────────────────────────────────────
    app.include_router(router)

    return app
