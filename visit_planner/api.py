"""
FastAPI application for visit planning.
Provides REST endpoints for planning a day and checking service health.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .schemas import HealthResponse, PlanRequest
from .service import PlannerService


logger = logging.getLogger(__name__)

# Global service instance
service: Optional[PlannerService] = None


def get_service() -> PlannerService:
    """Dependency to get service instance."""
    global service
    if service is None:
        service = PlannerService()
    return service


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Visit Planner API started")
    yield
    global service
    if service is not None:
        await service.close()
        service = None
    logger.info("Visit Planner API stopped")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title="Visit Planner",
        description="Sequence visits, build the day's schedule and flag conflicts",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", response_model=HealthResponse)
    async def health_check(svc: PlannerService = Depends(get_service)):
        """Health check endpoint."""
        health_data = svc.health_check()
        return HealthResponse(
            status=health_data["status"],
            version=__version__,
            google_api_configured=health_data["google_api_configured"],
            timestamp=datetime.now().isoformat(),
        )

    @app.post("/plan")
    async def plan(request: PlanRequest, svc: PlannerService = Depends(get_service)) -> Dict[str, Any]:
        """Order the stops, build the schedule and report conflicts."""
        try:
            result = await svc.plan(request)
        except Exception as e:
            logger.error(f"Planning failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))
        return result.to_dict()

    return app


app = create_app()
