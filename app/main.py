"""
WhatsApp Follow-up Relay - Main Application Entry Point

Sends follow-ups and delayed nudges to WhatsApp chats that answered with the
trigger message, and relays templated replies, using FastAPI, httpx,
SQLite, and APScheduler.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.messenger import router as messenger_router
from app.infrastructure.database import init_database
from app.infrastructure.scheduler import (
    get_scheduler,
    register_periodic_jobs,
    start_scheduler,
    stop_scheduler,
)
from app.config.settings import get_settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info("Starting WhatsApp Follow-up Relay...")

    logger.info("Initializing database...")
    await init_database()
    logger.info("Database initialized")

    logger.info("Starting scheduler...")
    await start_scheduler()
    register_periodic_jobs()
    logger.info("Scheduler started")

    logger.info("Application startup complete!")
    logger.info(f"Suppression window: {settings.suppression_window_minutes} min")
    logger.info(f"Gateway call spacing: {settings.min_call_interval_seconds}s")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await stop_scheduler()
    logger.info("Application shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="WhatsApp Follow-up Relay",
    description="Automated WhatsApp follow-ups, delayed nudges and reply relay",
    version="1.0.0",
    lifespan=lifespan
)

# Register routers
app.include_router(messenger_router, tags=["Messenger"])


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "WhatsApp Follow-up Relay",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "reply": "/reply-message",
            "follow_up": "/send-follow-up-message",
            "cleanup": "/cleanup-sent-numbers",
            "health": "/health"
        }
    }


@app.get("/scheduler/status")
async def scheduler_status():
    """Get scheduler status and pending jobs."""
    scheduler = get_scheduler()

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": str(job.next_run_time) if job.next_run_time else None
        })

    return {
        "running": scheduler.running,
        "jobs_count": len(jobs),
        "jobs": jobs
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
