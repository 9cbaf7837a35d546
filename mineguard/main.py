"""
MineGuard Analysis API - Entry Point

This module initializes the FastAPI application with strict configuration
validation and API health checks on startup.
"""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import load_config, ConfigurationError
from .processing.pipeline import AnalysisOrchestrator
from .api.routes import router, set_orchestrator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - startup and shutdown."""
    # Startup
    logger.info("=" * 60)
    logger.info("MINEGUARD ANALYSIS API - STARTING")
    logger.info("=" * 60)

    try:
        # Load configuration (will fail fast if env vars missing)
        config = load_config()
        logger.info("Configuration loaded successfully")

        api_status = config.validate_apis()
        for api, available in api_status.items():
            status = "CONFIGURED" if available else "NOT CONFIGURED (synthetic fallback)"
            logger.info(f"  {api}: {status}")

        orchestrator = AnalysisOrchestrator.from_config(config)
        set_orchestrator(orchestrator)
        logger.info(
            f"Orchestrator initialized ({len(orchestrator.registry.districts())} district profiles, "
            f"{len(orchestrator.registry.zone_survey_sites)} zone survey sites)"
        )

        logger.info("Testing API connectivity...")
        test_results = await orchestrator.test_all_apis()

        for api, ok in test_results.items():
            status = "OK" if ok else "FAILED"
            logger.info(f"  {api}: {status}")

        if not (test_results.get("supabase_storage") and test_results.get("supabase_reports")):
            logger.error("Supabase is not responding! Uploads and report saving will fail.")
            logger.error("Please check SUPABASE_URL, SUPABASE_KEY and network connectivity.")

        logger.info("=" * 60)
        logger.info(f"Server ready on {config.backend_host}:{config.backend_port}")
        logger.info("=" * 60)

        app.state.config = config
        app.state.orchestrator = orchestrator

        yield

    except ConfigurationError as e:
        logger.error("=" * 60)
        logger.error("CONFIGURATION ERROR")
        logger.error("=" * 60)
        logger.error(str(e))
        logger.error("")
        logger.error("Please ensure all required environment variables are set.")
        logger.error("See .env.example for required variables.")
        logger.error("=" * 60)
        sys.exit(1)

    # Shutdown
    logger.info("Shutting down...")
    if hasattr(app.state, "orchestrator"):
        unsaved = app.state.orchestrator.backlog.unsaved()
        if unsaved:
            logger.warning(f"{len(unsaved)} reports were never persisted and will be lost")
        await app.state.orchestrator.close()
    set_orchestrator(None)
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    # Load config early to get CORS origins (will fail if config is invalid)
    try:
        config = load_config()
    except ConfigurationError:
        # Let lifespan handle the error with better messaging
        config = None

    app = FastAPI(
        title="MineGuard Analysis API",
        description="Satellite land-change detection and mining legality classification for Ghana",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins if config else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    # Load config to get port
    config = load_config()

    uvicorn.run(
        "mineguard.main:app",
        host=config.backend_host,
        port=config.backend_port,
        reload=False,
    )
