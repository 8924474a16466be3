# main.py

"""
FastAPI CSV Aggregator API - Main Entry Point
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from csv_aggregator.core.config import Settings, settings as default_settings
from csv_aggregator.routers import job_router, upload_router
from csv_aggregator.services.aggregation_service import AggregationService
from csv_aggregator.services.job_service import JobRegistry

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings):
    """Root logger setup; a no-op when the root logger already has handlers"""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


def create_app(
        settings: Optional[Settings] = None,
        service: Optional[AggregationService] = None
) -> FastAPI:
    settings = settings or default_settings
    service = service or AggregationService.from_settings(settings, JobRegistry())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings)
        logger.info(f"Starting {settings.app_name} {settings.app_version}")
        yield
        service.shutdown(wait=True)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.aggregation_service = service

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(upload_router.router, prefix=settings.api_prefix)
    app.include_router(job_router.router, prefix=settings.api_prefix)

    @app.get("/")
    async def root():
        """API root endpoint"""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "endpoints": {
                "upload": f"{settings.api_prefix}/upload",
                "job_status": f"{settings.api_prefix}/status/{{job_id}}",
                "download": f"{settings.api_prefix}/download/{{filename}}",
                "cancel": f"{settings.api_prefix}/jobs/{{job_id}}/cancel",
                "health": "/health",
                "docs": "/docs"
            }
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "csv-aggregator",
            "timestamp": datetime.now().isoformat(),
            "version": settings.app_version,
            "active_jobs": service.registry.get_active_jobs_count()
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "csv_aggregator.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug
    )
