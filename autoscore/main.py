"""
Autoscore API - Camera-driven dart scoring service

Watches one camera, tracks the dartboard, scores each dart as it lands and
reports turns. Optionally forwards events to a game API.

Run with:
    uvicorn autoscore.main:app --port 8000
"""
import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from autoscore.api.routes import API_VERSION, router
from autoscore.core.service import AutoscoreService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Configuration
API_TITLE = "Autoscore API"
API_DESCRIPTION = """
Automatic dart scoring from a single camera.

## Flow
1. The board is located every frame by its blue/white wedges and red rings
2. When motion settles, the frame is compared with the turn's reference
3. A new elongated dark region is a dart; its tip is scored
4. After three darts the tracker waits for the board to be cleared

## Endpoints
- `GET /v1/tracker` - Tracker status
- `POST /v1/tracker/start|stop|reset|turn` - Control
- `GET /v1/board` - Board geometry
- `GET|DELETE /v1/calibration` - Stored calibration
- `GET /v1/events` - Recent events
- `GET /health` - Service health check
"""


def create_app(service: Optional[AutoscoreService] = None) -> FastAPI:
    """
    Build the application.

    Args:
        service: Pre-built service (tests). When omitted one is built from
            the environment at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        svc = service or AutoscoreService.from_env()
        app.state.service = svc
        logger.info("Autoscore API starting")

        if os.getenv("AUTOSTART", "false").lower() == "true":
            svc.start(start_turn=True)

        yield

        logger.info("Autoscore API shutting down")
        svc.close()

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # CORS - allow all for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.get("/")
    async def root():
        """API info and links."""
        return {
            "name": API_TITLE,
            "version": API_VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()
