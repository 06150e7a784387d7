"""FastAPI application entry point."""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from fastapi import FastAPI

from marquee.api.routes import admin, health
from marquee.tasks.scrape_job import run_scrape_all
from marquee.utils.log import configure_logging

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: configure and start the scheduler
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        run_scrape_all,
        trigger=CronTrigger(day_of_week="wed", hour=3, minute=0),
        id="weekly_scrape",
        name="Weekly run of all registered scrapers",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Scheduler started, weekly scrape registered for every Wednesday at 03:00")

    # Fire a one-off startup scrape in the background
    startup_task = asyncio.create_task(run_scrape_all())
    logger.info("Startup scrape triggered in background")

    yield

    # Shutdown: stop the scheduler and any startup scrape still running
    scheduler.shutdown(wait=False)
    startup_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await startup_task
    logger.info("Scheduler shut down")


# Create FastAPI app
app = FastAPI(
    title="Marquee API",
    description="Screening ingestion and film identity service",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(health.router)
app.include_router(admin.router, prefix="/api", tags=["admin"])
