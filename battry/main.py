"""
Battry FastAPI Application
Main entry point for the battery diagnostics service
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .api import api_router, health
from .services import get_diagnostics_service, reset_diagnostics_service

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    settings = get_settings()
    logger.info(f"Starting {settings.app_name} in {settings.app_env} mode")

    service = get_diagnostics_service()
    await service.start()
    logger.info(f"Telemetry pump running (queue size {settings.telemetry_queue_size})")

    yield

    await reset_diagnostics_service()
    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Battery diagnostics: DCIR, OCV knee and composite health score",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/")
    async def root():
        return {
            "name": "Battry API",
            "version": "0.1.0",
            "docs": "/docs",
            "health": "/live",
            "endpoints": {
                "telemetry": f"{settings.api_prefix}/telemetry",
                "calibration": f"{settings.api_prefix}/calibration",
                "quick_test": f"{settings.api_prefix}/quick-test"
            }
        }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "battry.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
