"""
FastAPI main application for the Chapter Studio.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .routers import config_router, videos_router
from .services.video_orchestrator import build_orchestrator
from .utils.config_file import get_config
from .utils.file_manager import FileManager
from .utils.logger import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    config = get_config()
    setup_logging(config.log_level, config.log_file)
    logger.info("Starting Chapter Studio API...")

    # Ensure required directories exist
    directories = [
        "storage/temp",
        config.storage.local_dir,
        config.storage.metadata_dir,
    ]
    for dir_path in directories:
        Path(dir_path).mkdir(parents=True, exist_ok=True)
        logger.info(f"Ensured directory exists: {dir_path}")

    removed = FileManager().cleanup_old_temp_files()
    if removed:
        logger.info(f"Removed {removed} stale temp directories")

    app.state.orchestrator = build_orchestrator(config)

    yield

    # Shutdown
    logger.info("Shutting down Chapter Studio API...")
    await app.state.orchestrator.close()


# Create FastAPI app
app = FastAPI(
    title="Chapter Studio API",
    description="API para geração de vídeos narrados em capítulos",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify allowed origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(config_router)
app.include_router(videos_router)

# Mount static files for outputs
outputs_dir = Path("storage/outputs")
outputs_dir.mkdir(parents=True, exist_ok=True)
app.mount("/outputs", StaticFiles(directory=str(outputs_dir)), name="outputs")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Chapter Studio API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/api")
async def api_info():
    """API information."""
    return {
        "endpoints": {
            "config": "/api/config",
            "videos": "/api/videos",
        },
        "documentation": "/docs",
    }
