"""
Evidence engine FastAPI application entry point.

Flow: source content → chunk + embed → diff → impacts / conflicts → health → notifications
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from evidence_engine import __version__
from evidence_engine.config import get_settings
from evidence_engine.db.session import check_db_connection, engine

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info("Evidence engine starting")
    try:
        try:
            check_db_connection()
            logger.info("Database connection verified")
        except Exception as e:
            logger.critical("Database unreachable: %s", e)
            raise

        # Prompt templates ship as package data; a broken install should fail at boot.
        try:
            from evidence_engine.prompts.loader import load_prompt
            from evidence_engine.services.conflict_detection import JUDGEMENT_PROMPT
            from evidence_engine.services.impact_summary import SUMMARY_PROMPT

            load_prompt(JUDGEMENT_PROMPT)
            load_prompt(SUMMARY_PROMPT)
            logger.info("Prompt templates validated")
        except Exception as e:
            logger.critical("Prompt template validation failed at startup: %s", e)
            raise

        yield
    finally:
        logger.info("Evidence engine shutting down")
        engine.dispose()
        logger.info("Database connection pool closed")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    from evidence_engine.api.packs import router as packs_router

    app.include_router(packs_router, prefix="/api/packs", tags=["packs"])

    # Internal job endpoints (cron/scripts/extraction flow, token-authenticated)
    from evidence_engine.api.internal import router as internal_router

    app.include_router(internal_router, tags=["internal"])

    @app.get("/health")
    def health() -> dict:
        """Health check endpoint. Confirms DB connectivity."""
        from sqlalchemy import text

        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return {
                "status": "ok",
                "version": __version__,
                "database": "connected",
            }
        except Exception:
            from fastapi.responses import JSONResponse

            return JSONResponse(
                status_code=503,
                content={
                    "status": "unhealthy",
                    "version": __version__,
                    "database": "disconnected",
                },
            )

    return app


app = create_app()
