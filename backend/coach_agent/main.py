"""
Coach Agent API - Main Application
FastAPI surface for the agent loop that reads and writes a user's health records.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .routers import agent

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("%s v%s", settings.app_name, settings.app_version)
    if settings.git_commit:
        logger.info("Git Commit: %s", settings.git_commit[:8])
    if settings.build_date:
        logger.info("Build Date: %s", settings.build_date)
    logger.info("Models: %s, backend: %s", settings.candidate_models, settings.backend_base_url)
    yield


# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Agent loop that turns model tool calls into committed record changes",
    lifespan=lifespan,
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(agent.router)


@app.get("/")
def root():
    """Root endpoint - API status."""
    response = {
        "message": "Welcome to Coach Agent API",
        "version": settings.app_version,
        "status": "healthy",
        "docs": "/docs"
    }
    if settings.git_commit:
        response["git_commit"] = settings.git_commit[:8]
    if settings.build_date:
        response["build_date"] = settings.build_date
    return response


@app.get("/health")
def health_check():
    """Health check endpoint for monitoring."""
    return {"status": "healthy"}


@app.get("/api/version")
def version():
    """Version information endpoint."""
    response = {
        "app_name": settings.app_name,
        "version": settings.app_version,
    }
    if settings.git_commit:
        response["git_commit"] = settings.git_commit
        response["git_commit_short"] = settings.git_commit[:8]
    if settings.build_date:
        response["build_date"] = settings.build_date
    return response


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)
    uvicorn.run("coach_agent.main:app", host="0.0.0.0", port=8000, reload=True)
