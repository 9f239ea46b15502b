"""
Wine List Scanner API

FastAPI backend that turns photographed or live-scanned wine lists into
matched catalog entries with scores and drinking windows.

Usage:
    uvicorn main:app --reload
"""

# Load environment variables from .env file FIRST
from dotenv import load_dotenv
load_dotenv()

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from winelist.config import Config

# Configure logging from environment
logging.basicConfig(
    level=getattr(logging, Config.log_level(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)
logger.info(f"Starting with LOG_LEVEL={Config.log_level()}, USE_MOCKS={Config.use_mocks()}")

from winelist.dependencies import ScanServices, build_services
from winelist.routes import scan_router, session_router


def create_app(services: Optional[ScanServices] = None) -> FastAPI:
    """
    Build the application.

    Args:
        services: Pre-built services. When None, they are constructed from
            the environment at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.services = services or build_services()
        logger.info("Service ready to handle requests")
        yield
        await app.state.services.aclose()

    app = FastAPI(
        title="Wine List Scanner API",
        description="Scan wine lists and get instant scores",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(scan_router, tags=["scan"])
    app.include_router(session_router, tags=["session"])

    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "Wine List Scanner API",
            "version": "0.1.0",
            "docs": "/docs",
        }

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app


app = create_app()
