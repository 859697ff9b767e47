"""
Main FastAPI application untuk StreamCraft.
"""
import logging
from fastapi import FastAPI

from streamcraft import models  # noqa: F401  (register tables on Base)
from streamcraft.config import MAX_CONCURRENT_STREAMS, SCHEDULER_INTERVAL_SECONDS
from streamcraft.database import Base, SessionLocal, engine
from streamcraft.routers import credentials, streams, system, videos
from streamcraft.services.broadcast_supervisor import BroadcastSupervisor
from streamcraft.services.scheduler import StreamScheduler

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create database tables
Base.metadata.create_all(bind=engine)

# Initialize FastAPI app
app = FastAPI(
    title="StreamCraft",
    description="API untuk menjadwalkan dan menyiarkan playlist video ke RTMP",
    version="1.0.0"
)

app.include_router(streams.router)
app.include_router(videos.router)
app.include_router(credentials.router)
app.include_router(system.router)


@app.on_event("startup")
def startup_event():
    """Build the supervisor, clean up leftovers, start the scheduler"""
    supervisor = BroadcastSupervisor(SessionLocal, max_concurrent=MAX_CONCURRENT_STREAMS)

    try:
        result = supervisor.recover_orphans()
        if result['killed_count'] > 0:
            logger.info(f"Killed {result['killed_count']} orphaned FFmpeg processes")
    except Exception as e:
        logger.error(f"Error during startup cleanup: {e}")

    scheduler = StreamScheduler(supervisor, SessionLocal, SCHEDULER_INTERVAL_SECONDS)
    scheduler.start()

    app.state.supervisor = supervisor
    app.state.scheduler = scheduler
    logger.info("🚀 Supervisor and scheduler started")


@app.on_event("shutdown")
def shutdown_event():
    """Stop the scheduler first so it cannot restart broadcasts being stopped"""
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler:
        scheduler.shutdown()

    supervisor = getattr(app.state, "supervisor", None)
    if supervisor:
        stopped = supervisor.stop_all()
        logger.info(f"Stopped {stopped} running broadcast(s)")


@app.get("/api")
def api_info():
    """API information"""
    return {
        "message": "StreamCraft API",
        "version": "1.0.0",
        "endpoints": {
            "streams": "/streams",
            "videos": "/videos",
            "credentials": "/credentials",
            "system": "/system/stats",
            "scheduler": "/scheduler/jobs",
            "docs": "/docs"
        }
    }
